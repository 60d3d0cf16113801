"""Project, developer and stakeholder records (admin operations)."""

from __future__ import annotations

import logging
import re
from typing import Any

from cardflow.core import (
    DEVELOPERS_PATH,
    PROJECTS_PATH,
    STAKEHOLDERS_PATH,
    developer_path,
    project_path,
    stakeholder_path,
)
from cardflow.db_base import StoreProtocol, _now_iso, _today_iso
from cardflow.errors import CardflowError, InvalidFieldValueError, ProtectedFieldViolationError
from cardflow.priority import DEFAULT_SCALE, scale_values
from cardflow.references import validate_reference

logger = logging.getLogger(__name__)

_PROJECT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")
_ABBREVIATION_PATTERN = re.compile(r"^[A-Z0-9]{2,6}$")
PROTECTED_PROJECT_FIELDS: tuple[str, ...] = ("name", "createdAt", "createdBy", "projectId")


def get_project(store: StoreProtocol, project_id: str) -> dict[str, Any]:
    """Return the project document or raise KeyError."""
    project = store.get(project_path(project_id)) if _PROJECT_ID_PATTERN.match(project_id or "") else None
    if not isinstance(project, dict):
        msg = f"Project not found: {project_id}"
        raise KeyError(msg)
    return {**project, "projectId": project_id}


def list_projects(store: StoreProtocol) -> list[dict[str, Any]]:
    return [{**p, "projectId": key} for key, p in store.children(PROJECTS_PATH).items() if isinstance(p, dict)]


def create_project(
    store: StoreProtocol,
    project_id: str,
    *,
    name: str,
    abbreviation: str,
    scoring_system: str = DEFAULT_SCALE,
    default_validator: str | None = None,
) -> dict[str, Any]:
    if not _PROJECT_ID_PATTERN.match(project_id or ""):
        msg = f'Invalid project id "{project_id}": use letters, digits, "-" or "_" (max 64 characters)'
        raise InvalidFieldValueError(msg, details={"field": "projectId", "value": project_id})
    abbr = (abbreviation or "").strip().upper()
    if not _ABBREVIATION_PATTERN.match(abbr):
        msg = f'Invalid project abbreviation "{abbreviation}": use 2-6 letters or digits, e.g. "PLN"'
        raise InvalidFieldValueError(msg, details={"field": "abbreviation", "value": abbreviation})
    scale_values(scoring_system)
    if store.get(project_path(project_id)) is not None:
        msg = f"Project already exists: {project_id}"
        raise CardflowError(msg, details={"project_id": project_id})
    record: dict[str, Any] = {
        "name": name,
        "abbreviation": abbr,
        "scoringSystem": scoring_system,
        "stakeholders": [],
        "developers": [],
        "createdAt": _now_iso(),
    }
    if default_validator:
        validate_reference("validator", default_validator)
        record["defaultValidator"] = default_validator
    store.set(project_path(project_id), record)
    logger.info("Created project %s (%s)", project_id, abbr)
    return {**record, "projectId": project_id}


def update_project(
    store: StoreProtocol,
    project_id: str,
    updates: dict[str, Any],
    *,
    actor: str = "cardflow",
) -> dict[str, Any]:
    """Merge *updates* into a project.

    A new ``version`` prepends a changelog entry built from the transient
    ``changelogEntry`` (or ``changes``) value, newest first.
    """
    project = get_project(store, project_id)
    if not isinstance(updates, dict):
        msg = "updates must be an object"
        raise InvalidFieldValueError(msg)
    for name in PROTECTED_PROJECT_FIELDS:
        if name in updates:
            msg = f'Cannot update protected project field "{name}"'
            raise ProtectedFieldViolationError(msg, details={"field": name})
    clean = {k: v for k, v in updates.items() if v is not None}
    entry_changes = clean.pop("changelogEntry", None)
    legacy_changes = clean.pop("changes", None)
    changes = entry_changes or legacy_changes or []
    if "abbreviation" in clean:
        abbr = str(clean["abbreviation"]).strip().upper()
        if not _ABBREVIATION_PATTERN.match(abbr):
            msg = f'Invalid project abbreviation "{clean["abbreviation"]}": use 2-6 letters or digits, e.g. "PLN"'
            raise InvalidFieldValueError(msg, details={"field": "abbreviation", "value": clean["abbreviation"]})
        clean["abbreviation"] = abbr
    if "scoringSystem" in clean:
        scale_values(clean["scoringSystem"])
    if "defaultValidator" in clean:
        validate_reference("validator", clean["defaultValidator"])

    version = clean.get("version")
    if version and version != project.get("version"):
        entry = {
            "version": version,
            "date": _today_iso(),
            "changes": changes if isinstance(changes, list) else [changes],
            "updatedBy": actor,
        }
        clean["changelog"] = [entry, *(project.get("changelog") or [])]

    clean["updatedAt"] = _now_iso()
    clean["updatedBy"] = actor
    store.update(project_path(project_id), clean)
    logger.info("Updated project %s (%s)", project_id, ", ".join(sorted(clean)))
    return get_project(store, project_id)


def set_default_validator(store: StoreProtocol, project_id: str, stakeholder_id: str) -> dict[str, Any]:
    get_project(store, project_id)
    validate_reference("validator", stakeholder_id)
    store.update(project_path(project_id), {"defaultValidator": stakeholder_id})
    return get_project(store, project_id)


def _add_person(
    store: StoreProtocol,
    role: str,
    person_id: str,
    path: str,
    *,
    name: str,
    email: str,
    project_id: str | None,
    membership_field: str,
) -> dict[str, Any]:
    if not person_id:
        msg = f"{role} id is required"
        raise InvalidFieldValueError(msg, details={"field": role})
    validate_reference(role, person_id)
    project = get_project(store, project_id) if project_id is not None else None
    record = {"name": name, "email": email, "active": True}
    store.set(path, record)
    if project is not None and project_id is not None:
        members = list(project.get(membership_field) or [])
        if person_id not in members:
            members.append(person_id)
            store.update(project_path(project_id), {membership_field: members})
    logger.info("Added %s %s%s", role, person_id, f" to project {project_id}" if project_id else "")
    return {**record, "id": person_id}


def add_developer(store: StoreProtocol, developer_id: str, *, name: str, email: str, project_id: str | None = None) -> dict[str, Any]:
    return _add_person(
        store,
        "developer",
        developer_id,
        developer_path(developer_id),
        name=name,
        email=email,
        project_id=project_id,
        membership_field="developers",
    )


def add_stakeholder(store: StoreProtocol, stakeholder_id: str, *, name: str, email: str, project_id: str | None = None) -> dict[str, Any]:
    return _add_person(
        store,
        "stakeholder",
        stakeholder_id,
        stakeholder_path(stakeholder_id),
        name=name,
        email=email,
        project_id=project_id,
        membership_field="stakeholders",
    )


def _list_people(store: StoreProtocol, root: str, project_id: str | None, membership_field: str) -> list[dict[str, Any]]:
    people = store.children(root)
    if project_id is not None:
        members = set(get_project(store, project_id).get(membership_field) or [])
        people = {k: v for k, v in people.items() if k in members}
    active = [{**v, "id": k} for k, v in people.items() if isinstance(v, dict) and v.get("active", True) is not False]
    return sorted(active, key=lambda p: str(p.get("name", "")).lower())


def list_developers(store: StoreProtocol, project_id: str | None = None) -> list[dict[str, Any]]:
    """Active developers sorted by name, optionally limited to one project."""
    return _list_people(store, DEVELOPERS_PATH, project_id, "developers")


def list_stakeholders(store: StoreProtocol, project_id: str | None = None) -> list[dict[str, Any]]:
    """Active stakeholders sorted by name, optionally limited to one project."""
    return _list_people(store, STAKEHOLDERS_PATH, project_id, "stakeholders")
