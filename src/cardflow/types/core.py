# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or the engine modules: this prevents circular imports.
"""Foundational TypedDicts for persisted documents and configuration."""

from __future__ import annotations

from typing import Any, NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)
ISODate = NewType("ISODate", str)


class ProjectConfig(TypedDict, total=False):
    """Shape of .cardflow/config.json."""

    version: int
    actor: str
    default_project: str
    list_cache_ttl: float
    ai_developer: str
    developer_id: str


class ProjectRecord(TypedDict, total=False):
    """Document stored at ``/projects/{projectId}``."""

    name: str
    abbreviation: str
    scoringSystem: str
    stakeholders: list[str]
    developers: list[str]
    defaultValidator: str
    createdAt: ISOTimestamp


class PersonRecord(TypedDict, total=False):
    """Document stored at ``/data/developers/{id}`` or ``/data/stakeholders/{id}``."""

    name: str
    email: str
    active: bool


class CommitRecord(TypedDict):
    hash: str
    message: str
    date: str
    author: str


class PlanStep(TypedDict, total=False):
    description: str
    status: str
    files: list[str]


class ImplementationPlan(TypedDict, total=False):
    approach: str
    steps: list[PlanStep]
    dataModelChanges: str
    apiChanges: str
    risks: str
    outOfScope: str
    planStatus: str


class UserStory(TypedDict):
    role: str
    goal: str
    benefit: str


class AcceptanceScenario(TypedDict, total=False):
    given: str
    when: str
    then: str
    raw: str


class CardRecord(TypedDict, total=False):
    """A stored card.  Attribute names are the persisted (camelCase) keys."""

    cardId: str
    recordKey: str
    cardType: str
    group: str
    projectId: str
    title: str
    status: str
    priority: int | str | None
    description: str
    descriptionStructured: list[UserStory]
    acceptanceCriteria: str
    acceptanceCriteriaStructured: list[AcceptanceScenario]
    epic: str
    sprint: str
    developer: str
    codeveloper: str
    validator: str
    devPoints: int
    businessPoints: int
    commits: list[CommitRecord]
    implementationPlan: ImplementationPlan
    blockedByBusiness: bool
    blockedByDevelopment: bool
    bbbWhy: str
    bbbWho: str
    bbdWhy: str
    bbdWho: str
    rootCause: str
    resolution: str
    startDate: ISODate
    endDate: ISODate
    registerDate: ISODate
    year: int
    createdAt: ISOTimestamp
    createdBy: str
    updatedAt: ISOTimestamp
    updatedBy: str
    extra: dict[str, Any]
