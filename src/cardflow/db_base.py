"""Shared utilities and the persistence Protocol the engine depends on."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Protocol


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _today_iso() -> str:
    """Current UTC date as ``YYYY-MM-DD``."""
    return datetime.now(UTC).date().isoformat()


class StoreProtocol(Protocol):
    """Path-addressed document store consumed by the engine and its resolvers.

    ``DocumentStore`` in core.py is the production implementation; tests may
    substitute anything with the same shape.
    """

    def get(self, path: str) -> Any | None: ...

    def children(self, path: str) -> dict[str, Any]: ...

    def set(self, path: str, value: Any) -> None: ...

    def update(
        self,
        path: str,
        partial: dict[str, Any],
        *,
        expect: tuple[str, Any] | None = None,
    ) -> dict[str, Any]: ...

    def push(self, path: str, value: Any) -> str: ...

    def increment_counter(self, key: str) -> int: ...
