"""Sprint lookups: the project's active sprint and sprint reference checks."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from cardflow.core import card_collection_path
from cardflow.db_base import StoreProtocol, _today_iso
from cardflow.errors import NoSprintsInProjectError, SprintNotFoundError, Violation

SPRINT_SECTION = "SPRINTS"
ACTIVE_SPRINT_STATUSES: tuple[str, ...] = ("Active", "In Progress")


def load_sprints(store: StoreProtocol, project_id: str) -> dict[str, dict[str, Any]]:
    """Sprint records keyed by storage key, in stored order."""
    records = store.children(card_collection_path(project_id, SPRINT_SECTION))
    return {key: {**value, "recordKey": key} for key, value in records.items() if isinstance(value, dict)}


def _sprint_id(key: str, sprint: dict[str, Any]) -> str:
    return sprint.get("cardId") or key


def find_active_sprint(
    store: StoreProtocol,
    project_id: str,
    *,
    today: Callable[[], str] = _today_iso,
) -> dict[str, Any] | None:
    """First sprint flagged active, else the first whose date range contains today."""
    sprints = load_sprints(store, project_id)
    for sprint in sprints.values():
        if sprint.get("status") in ACTIVE_SPRINT_STATUSES:
            return sprint
    current = today()
    for sprint in sprints.values():
        start, end = sprint.get("startDate"), sprint.get("endDate")
        if isinstance(start, str) and isinstance(end, str) and start <= current <= end:
            return sprint
    return None


def sprint_violations(sprints: dict[str, dict[str, Any]], project_id: str, sprint_ref: Any) -> list[Violation]:
    """Check *sprint_ref* against already-loaded sprint records."""
    if sprint_ref is None or sprint_ref == "":
        return []
    if not sprints:
        return [
            Violation(
                kind=NoSprintsInProjectError.code,
                message=f'No sprints found in project {project_id}. Create a sprint before assigning "{sprint_ref}".',
                field="sprint",
                details={"value": sprint_ref},
            )
        ]
    for key, sprint in sprints.items():
        if sprint_ref in (key, sprint.get("cardId")):
            return []
    available = [{"id": _sprint_id(k, s), "title": s.get("title", "")} for k, s in sprints.items()]
    listing = ", ".join(f"{a['id']} ({a['title']})" for a in available)
    return [
        Violation(
            kind=SprintNotFoundError.code,
            message=f'Sprint "{sprint_ref}" not found in project {project_id}. Available sprints: {listing}',
            field="sprint",
            details={"value": sprint_ref, "available_sprints": available},
        )
    ]


def validate_sprint_exists(store: StoreProtocol, project_id: str, sprint_ref: Any) -> None:
    """Raise SprintNotFoundError / NoSprintsInProjectError for an unknown sprint reference."""
    if sprint_ref is None or sprint_ref == "":
        return
    for violation in sprint_violations(load_sprints(store, project_id), project_id, sprint_ref):
        raise violation.as_error()
