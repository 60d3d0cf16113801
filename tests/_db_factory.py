"""Shared store and engine factories for test fixtures.

Importable by any conftest.py or test file in the test suite.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cardflow.core import CARDFLOW_DIR_NAME, DB_FILENAME, DocumentStore, write_config
from cardflow.engine import CardEngine
from cardflow.lists import ListService, TtlCache, seed_default_lists
from cardflow.projects import add_developer, add_stakeholder, create_project

TODAY = "2026-10-18"

VALID_STORY = [{"role": "user", "goal": "export data", "benefit": "share reports"}]


def fixed_today(value: str = TODAY) -> Callable[[], str]:
    return lambda: value


def make_store(tmp_path: Path, *, check_same_thread: bool = True, seed_lists: bool = True) -> DocumentStore:
    """Factory for DocumentStore instances in tests.

    Creates ``.cardflow/`` with a config.json so CLI and server discovery
    find the same database the test writes to.
    """
    cardflow_dir = tmp_path / CARDFLOW_DIR_NAME
    cardflow_dir.mkdir(exist_ok=True)
    write_config(cardflow_dir, {"version": 1, "actor": "cardflow", "default_project": "PLN"})
    store = DocumentStore(cardflow_dir / DB_FILENAME, check_same_thread=check_same_thread)
    store.initialize()
    if seed_lists:
        seed_default_lists(store)
    return store


def make_engine(store: DocumentStore, *, today: str = TODAY, **kwargs: Any) -> CardEngine:
    """CardEngine with a fixed clock and a private vocabulary cache."""
    kwargs.setdefault("lists", ListService(store, TtlCache()))
    return CardEngine(store, today=fixed_today(today), **kwargs)


@dataclass
class SeededProject:
    """A project with people, one epic and one active sprint."""

    store: DocumentStore
    engine: CardEngine
    project_id: str = "PLN"
    epic_id: str = ""
    sprint_id: str = ""
    ids: dict[str, str] = field(default_factory=dict)

    def task_fields(self, **overrides: Any) -> dict[str, Any]:
        """Minimal valid task creation payload."""
        fields: dict[str, Any] = {
            "title": "Export report",
            "descriptionStructured": [dict(s) for s in VALID_STORY],
            "acceptanceCriteria": "works",
            "epic": self.epic_id,
        }
        fields.update(overrides)
        return fields

    def ready_task_fields(self, **overrides: Any) -> dict[str, Any]:
        """Task payload holding every field needed to leave To Do."""
        fields = self.task_fields(developer="dev_ana", devPoints=2, businessPoints=5)
        fields.update(overrides)
        return fields

    def create_task(self, **overrides: Any) -> dict[str, Any]:
        return self.engine.create_card(self.project_id, "task", self.task_fields(**overrides))

    def create_ready_task(self, **overrides: Any) -> dict[str, Any]:
        return self.engine.create_card(self.project_id, "task", self.ready_task_fields(**overrides))


def seed_project(store: DocumentStore, engine: CardEngine, *, with_sprint: bool = True) -> SeededProject:
    """Create project PLN with dev_ana, stk_ana (same email), stk_bob, an epic and an active sprint."""
    create_project(store, "PLN", name="Planning", abbreviation="PLN", default_validator="stk_bob")
    add_developer(store, "dev_ana", name="Ana", email="ana@example.com", project_id="PLN")
    add_developer(store, "dev_bot", name="Bot", email="bot@example.com", project_id="PLN")
    add_stakeholder(store, "stk_ana", name="Ana", email="Ana@Example.com", project_id="PLN")
    add_stakeholder(store, "stk_bob", name="Bob", email="bob@example.com", project_id="PLN")

    seeded = SeededProject(store=store, engine=engine)
    epic = engine.create_card("PLN", "epic", {"title": "Reporting"})
    seeded.epic_id = epic["cardId"]
    seeded.ids["epic_key"] = epic["recordKey"]
    if with_sprint:
        sprint = engine.create_card(
            "PLN",
            "sprint",
            {"title": "Sprint 42", "status": "Active", "startDate": "2026-10-12", "endDate": "2026-10-25"},
        )
        seeded.sprint_id = sprint["cardId"]
        seeded.ids["sprint_key"] = sprint["recordKey"]
    return seeded
