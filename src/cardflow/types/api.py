# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or the engine modules: this prevents circular imports.
"""TypedDicts for MCP tool and HTTP route responses."""

from __future__ import annotations

from typing import Any, NotRequired, TypedDict

# ---------------------------------------------------------------------------
# Shared types
# ---------------------------------------------------------------------------


class ErrorResponse(TypedDict):
    """Standard error envelope returned by MCP and HTTP error paths."""

    error: str
    code: str


class SlimCard(TypedDict):
    """Reduced card shape for list results."""

    cardId: str
    recordKey: str
    title: str
    status: str | None
    priority: Any
    sprint: NotRequired[str | None]
    developer: NotRequired[str | None]


class CardListResponse(TypedDict):
    projectId: str
    type: str
    cards: list[SlimCard]
    count: int


class SprintListResponse(TypedDict):
    projectId: str
    sprints: list[dict[str, Any]]
    active: str | None


class ListValuesResponse(TypedDict):
    kind: str
    values: list[str]
    entries: list[dict[str, Any]]


class CacheInvalidatedResponse(TypedDict):
    status: str
    kind: str | None


class PeopleResponse(TypedDict):
    projectId: str | None
    people: list[dict[str, Any]]


class HealthResponse(TypedDict):
    status: str
    version: str
    schemaVersion: int
