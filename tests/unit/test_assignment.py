"""Tests for validator auto-assignment."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from cardflow.assignment import Identity, Person, StoreDirectory, resolve_validator
from cardflow.core import DocumentStore
from cardflow.errors import NoStakeholdersInProjectError, NoValidatorAssignableError
from cardflow.projects import add_developer, add_stakeholder, create_project


def _person(pid: str, email: str | None, *, active: bool = True) -> Person:
    return Person(id=pid, name=pid.split("_", 1)[-1].title(), identity=Identity.of(email), active=active)


@dataclass
class FakeDirectory:
    developers: dict[str, Person] = field(default_factory=dict)
    stakeholders: list[Person] = field(default_factory=list)
    default: str | None = None

    def developer(self, developer_id: str) -> Person | None:
        return self.developers.get(developer_id)

    def stakeholder(self, stakeholder_id: str) -> Person | None:
        return next((s for s in self.stakeholders if s.id == stakeholder_id), None)

    def project_stakeholders(self, project_id: str) -> list[Person]:
        return list(self.stakeholders)

    def default_validator(self, project_id: str) -> str | None:
        return self.default


class TestIdentity:
    def test_normalized(self) -> None:
        assert Identity.of("  Ana@Example.COM ") == Identity.of("ana@example.com")

    @pytest.mark.parametrize("raw", [None, "", "   ", 5])
    def test_missing(self, raw: object) -> None:
        assert Identity.of(raw) is None


class TestResolveValidator:
    def test_explicit_validator_returned_untouched(self) -> None:
        assert resolve_validator(FakeDirectory(), "PLN", "stk_any", "dev_ana") == "stk_any"

    def test_matches_by_identity(self) -> None:
        directory = FakeDirectory(
            developers={"dev_ana": _person("dev_ana", "ana@example.com")},
            stakeholders=[_person("stk_bob", "bob@example.com"), _person("stk_ana", "ANA@example.com")],
            default="stk_bob",
        )
        assert resolve_validator(directory, "PLN", None, "dev_ana") == "stk_ana"

    def test_same_name_different_email_does_not_match(self) -> None:
        directory = FakeDirectory(
            developers={"dev_ana": Person(id="dev_ana", name="Ana", identity=Identity.of("ana@work.io"))},
            stakeholders=[Person(id="stk_ana", name="Ana", identity=Identity.of("ana@home.io"))],
            default="stk_ana",
        )
        # Falls through to the default, not a name match.
        assert resolve_validator(directory, "PLN", None, "dev_ana") == "stk_ana"
        directory.default = None
        with pytest.raises(NoValidatorAssignableError):
            resolve_validator(directory, "PLN", None, "dev_ana")

    def test_inactive_match_skipped(self) -> None:
        directory = FakeDirectory(
            developers={"dev_ana": _person("dev_ana", "ana@example.com")},
            stakeholders=[_person("stk_ana", "ana@example.com", active=False), _person("stk_bob", "bob@example.com")],
            default="stk_bob",
        )
        assert resolve_validator(directory, "PLN", None, "dev_ana") == "stk_bob"

    def test_default_used_without_developer(self) -> None:
        directory = FakeDirectory(stakeholders=[_person("stk_bob", "bob@example.com")], default="stk_bob")
        assert resolve_validator(directory, "PLN", None, None) == "stk_bob"

    def test_inactive_default_not_used(self) -> None:
        directory = FakeDirectory(stakeholders=[_person("stk_bob", "bob@example.com", active=False)], default="stk_bob")
        with pytest.raises(NoValidatorAssignableError):
            resolve_validator(directory, "PLN", None, None)

    def test_no_stakeholders(self) -> None:
        with pytest.raises(NoStakeholdersInProjectError, match="No stakeholders found in project PLN"):
            resolve_validator(FakeDirectory(), "PLN", None, "dev_ana")

    def test_error_lists_active_stakeholders(self) -> None:
        directory = FakeDirectory(stakeholders=[_person("stk_bob", "bob@example.com"), _person("stk_cy", None)])
        with pytest.raises(NoValidatorAssignableError) as exc_info:
            resolve_validator(directory, "PLN", None, "dev_zed")
        message = exc_info.value.message
        assert "dev_zed" in message
        assert '- stk_bob: "Bob" (bob@example.com)' in message
        assert "(no email)" in message
        assert [s["id"] for s in exc_info.value.details["available_stakeholders"]] == ["stk_bob", "stk_cy"]


class TestStoreDirectory:
    def test_reads_store_records(self, store: DocumentStore) -> None:
        create_project(store, "PLN", name="Planning", abbreviation="PLN", default_validator="stk_bob")
        add_developer(store, "dev_ana", name="Ana", email="ana@example.com", project_id="PLN")
        add_stakeholder(store, "stk_ana", name="Ana", email="ana@example.com", project_id="PLN")
        add_stakeholder(store, "stk_out", name="Outsider", email="out@example.com")

        directory = StoreDirectory(store)
        assert directory.developer("dev_ana") == Person("dev_ana", "Ana", Identity("ana@example.com"))
        assert directory.developer("dev_missing") is None
        assert [p.id for p in directory.project_stakeholders("PLN")] == ["stk_ana"]
        assert directory.default_validator("PLN") == "stk_bob"
        assert resolve_validator(directory, "PLN", None, "dev_ana") == "stk_ana"

    def test_unknown_project_has_no_stakeholders(self, store: DocumentStore) -> None:
        assert StoreDirectory(store).project_stakeholders("NOPE") == []
