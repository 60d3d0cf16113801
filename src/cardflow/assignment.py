"""Validator auto-assignment through a directory lookup port.

People are matched by contact identity (normalized email), never by
display name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from cardflow.core import developer_path, project_path, stakeholder_path
from cardflow.db_base import StoreProtocol
from cardflow.errors import NoStakeholdersInProjectError, NoValidatorAssignableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Stable contact identity.  Two people match iff their identities are equal."""

    email: str

    @classmethod
    def of(cls, raw: Any) -> Identity | None:
        if not isinstance(raw, str) or not raw.strip():
            return None
        return cls(email=raw.strip().lower())


@dataclass(frozen=True)
class Person:
    id: str
    name: str
    identity: Identity | None
    active: bool = True

    @classmethod
    def from_record(cls, person_id: str, record: dict[str, Any]) -> Person:
        return cls(
            id=person_id,
            name=str(record.get("name", "")),
            identity=Identity.of(record.get("email")),
            active=record.get("active", True) is not False,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.identity.email if self.identity else None,
            "active": self.active,
        }


class Directory(Protocol):
    """Read-only view of developers, stakeholders and project membership."""

    def developer(self, developer_id: str) -> Person | None: ...

    def stakeholder(self, stakeholder_id: str) -> Person | None: ...

    def project_stakeholders(self, project_id: str) -> list[Person]: ...

    def default_validator(self, project_id: str) -> str | None: ...


class StoreDirectory:
    """Directory backed by ``/data/developers``, ``/data/stakeholders`` and ``/projects``."""

    def __init__(self, store: StoreProtocol) -> None:
        self.store = store

    def _person(self, path: str, person_id: str) -> Person | None:
        record = self.store.get(path)
        if not isinstance(record, dict):
            return None
        return Person.from_record(person_id, record)

    def developer(self, developer_id: str) -> Person | None:
        return self._person(developer_path(developer_id), developer_id)

    def stakeholder(self, stakeholder_id: str) -> Person | None:
        return self._person(stakeholder_path(stakeholder_id), stakeholder_id)

    def _project(self, project_id: str) -> dict[str, Any]:
        project = self.store.get(project_path(project_id))
        return project if isinstance(project, dict) else {}

    def project_stakeholders(self, project_id: str) -> list[Person]:
        people: list[Person] = []
        for stakeholder_id in self._project(project_id).get("stakeholders") or []:
            person = self.stakeholder(stakeholder_id)
            if person is None:
                logger.warning("Project %s lists unknown stakeholder %s", project_id, stakeholder_id)
                continue
            people.append(person)
        return people

    def default_validator(self, project_id: str) -> str | None:
        value = self._project(project_id).get("defaultValidator")
        return value if isinstance(value, str) and value else None


def resolve_validator(
    directory: Directory,
    project_id: str,
    explicit_validator: str | None,
    developer_ref: str | None,
) -> str:
    """Pick the validator for a new task.

    An explicit validator is returned untouched.  Otherwise: the active
    project stakeholder sharing the developer's identity, then the project's
    default validator, else an error listing the active stakeholders.
    """
    if explicit_validator:
        return explicit_validator

    stakeholders = directory.project_stakeholders(project_id)
    if not stakeholders:
        msg = f"No stakeholders found in project {project_id}. Add a stakeholder before creating tasks."
        raise NoStakeholdersInProjectError(msg, details={"project_id": project_id})
    active = [s for s in stakeholders if s.active]

    developer = directory.developer(developer_ref) if developer_ref else None
    if developer is not None and developer.identity is not None:
        for stakeholder in active:
            if stakeholder.identity == developer.identity:
                logger.debug("Validator %s matched developer %s by identity", stakeholder.id, developer.id)
                return stakeholder.id

    default = directory.default_validator(project_id)
    if default and any(s.id == default for s in active):
        return default

    listing = "\n".join(f'- {s.id}: "{s.name}" ({s.identity.email if s.identity else "no email"})' for s in active)
    msg = (
        f"Could not auto-assign a validator for developer {developer_ref or '(none)'} in project {project_id}. "
        f"Set validator explicitly. Available stakeholders:\n{listing or '(no active stakeholders)'}"
    )
    raise NoValidatorAssignableError(
        msg,
        details={"project_id": project_id, "available_stakeholders": [s.to_dict() for s in active]},
    )
