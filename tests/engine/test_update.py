"""Tests for CardEngine.update_card in apply mode."""

from __future__ import annotations

from typing import Any

import pytest

from cardflow.core import card_path
from cardflow.errors import (
    DirectPriorityNotAllowedError,
    EpicNotFoundError,
    InvalidFieldValueError,
    InvalidReferenceFormatError,
    InvalidSubdocumentError,
    InvalidVocabularyValueError,
    MissingRequiredFieldsError,
    ProtectedFieldViolationError,
    SprintNotFoundError,
    StaleWriteError,
    TransitionNotAllowedError,
)
from cardflow.templates import BLOCKED_EITHER
from tests._db_factory import TODAY, SeededProject, make_engine, seed_project


def _commit(h: str, message: str = "work") -> dict[str, str]:
    return {"hash": h, "message": message, "date": TODAY, "author": "ana"}


def _update(seeded: SeededProject, created: dict[str, Any], updates: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
    return seeded.engine.update_card("PLN", created["cardType"], created["recordKey"], updates, **kwargs)


class TestPartialUpdate:
    def test_fields_merged(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        result = _update(seeded, created, {"title": "Export CSV"}, actor="ana")
        assert result["cardId"] == created["cardId"]
        assert result["card"]["title"] == "Export CSV"
        assert result["card"]["acceptanceCriteria"] == "works"
        assert result["card"]["updatedBy"] == "ana"
        assert result["updatedFields"] == ["title", "updatedAt", "updatedBy"]

    def test_missing_card(self, seeded: SeededProject) -> None:
        with pytest.raises(KeyError, match="Card not found"):
            seeded.engine.update_card("PLN", "task", "nope", {"title": "x"})

    def test_updates_must_be_object(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        with pytest.raises(InvalidFieldValueError):
            _update(seeded, created, "title=x")  # type: ignore[arg-type]

    def test_status_canonicalised(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task()
        assert _update(seeded, created, {"status": "in progress"})["card"]["status"] == "In Progress"


class TestDerivedPriority:
    def test_points_update_sets_priority(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        result = _update(seeded, created, {"devPoints": 2, "businessPoints": 5})
        assert result["card"]["priority"] == 4
        assert result["sideEffects"] == {"priority": 4}
        assert "priority" in result["updatedFields"]

    def test_one_point_field_uses_stored_other(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task()
        assert _update(seeded, created, {"devPoints": 1})["card"]["priority"] == 1

    def test_direct_priority_rejected(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        with pytest.raises(DirectPriorityNotAllowedError):
            _update(seeded, created, {"priority": 1})

    def test_points_on_fibonacci_scale(self, seeded: SeededProject) -> None:
        seeded.store.update("/projects/PLN", {"scoringSystem": "fibonacci"})
        created = seeded.create_task()
        assert _update(seeded, created, {"devPoints": 1, "businessPoints": 13})["card"]["priority"] == 1
        with pytest.raises(InvalidVocabularyValueError, match='"fibonacci" scale'):
            _update(seeded, created, {"devPoints": 4})


class TestStartingWork:
    def test_active_sprint_and_start_date_injected(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task()
        assert "sprint" not in created["card"]
        result = _update(seeded, created, {"status": "In Progress"})
        assert result["card"]["status"] == "In Progress"
        assert result["card"]["sprint"] == seeded.sprint_id
        assert result["card"]["startDate"] == TODAY
        assert result["sideEffects"] == {"sprint": seeded.sprint_id, "startDate": TODAY}

    def test_existing_start_date_kept(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task(startDate="2026-10-01")
        result = _update(seeded, created, {"status": "In Progress"})
        assert result["card"]["startDate"] == "2026-10-01"
        assert "startDate" not in result["sideEffects"]

    def test_explicit_sprint_not_replaced(self, seeded: SeededProject) -> None:
        other = seeded.engine.create_card("PLN", "sprint", {"title": "Sprint 43", "startDate": "2026-10-26", "endDate": "2026-11-08"})
        created = seeded.create_ready_task(sprint=other["cardId"])
        assert _update(seeded, created, {"status": "In Progress"})["card"]["sprint"] == other["cardId"]

    def test_no_active_sprint_means_missing_sprint(self, store: Any) -> None:
        seeded = seed_project(store, make_engine(store), with_sprint=False)
        created = seeded.create_ready_task()
        with pytest.raises(MissingRequiredFieldsError) as exc_info:
            _update(seeded, created, {"status": "In Progress"})
        assert exc_info.value.missing_fields == ["sprint"]

    def test_leaving_initial_needs_all_base_fields(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        with pytest.raises(MissingRequiredFieldsError) as exc_info:
            _update(seeded, created, {"status": "In Progress"})
        assert exc_info.value.missing_fields == ["developer", "devPoints", "businessPoints"]

    def test_transition_not_in_table(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task()
        with pytest.raises(TransitionNotAllowedError) as exc_info:
            _update(seeded, created, {"status": "To Validate"})
        assert exc_info.value.details["allowed_transitions"] == ["In Progress", "Blocked"]

    def test_rejected_update_writes_nothing(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        with pytest.raises(MissingRequiredFieldsError):
            _update(seeded, created, {"status": "In Progress", "title": "Changed"})
        stored = seeded.engine.get_card("PLN", created["cardId"])
        assert stored["title"] == "Export report"
        assert stored["status"] == "To Do"


class TestBlockedGate:
    def test_blocked_requires_a_flag(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task()
        _update(seeded, created, {"status": "In Progress"})
        with pytest.raises(MissingRequiredFieldsError) as exc_info:
            _update(seeded, created, {"status": "Blocked"})
        assert exc_info.value.missing_fields == [BLOCKED_EITHER]

    def test_blocked_with_reason_and_owner(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task()
        _update(seeded, created, {"status": "In Progress"})
        updates = {"status": "Blocked", "blockedByDevelopment": True, "bbdWhy": "API down", "bbdWho": "dev_ana"}
        assert _update(seeded, created, updates)["card"]["status"] == "Blocked"

    def test_blocked_from_to_do(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task()
        updates = {"status": "Blocked", "blockedByBusiness": True, "bbbWhy": "pending budget"}
        with pytest.raises(MissingRequiredFieldsError) as exc_info:
            _update(seeded, created, updates)
        assert exc_info.value.missing_fields == ["bbbWho"]


class TestCommits:
    def test_commits_are_unioned_by_hash(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        _update(seeded, created, {"commits": [_commit("a1")]})
        result = _update(seeded, created, {"commits": [_commit("a1", "again"), _commit("b2")]})
        assert [c["hash"] for c in result["card"]["commits"]] == ["a1", "b2"]
        assert result["card"]["commits"][0]["message"] == "work"

    def test_empty_commit_list_keeps_history(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        _update(seeded, created, {"commits": [_commit("a1")]})
        assert [c["hash"] for c in _update(seeded, created, {"commits": []})["card"]["commits"]] == ["a1"]

    def test_malformed_commit(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        with pytest.raises(InvalidSubdocumentError, match=r"commits\[0\]\.author"):
            _update(seeded, created, {"commits": [{"hash": "a1", "message": "m", "date": TODAY}]})


class TestOtherRules:
    def test_protected_field_change(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        with pytest.raises(ProtectedFieldViolationError) as exc_info:
            _update(seeded, created, {"cardId": "PLN-TSK-9999"})
        assert exc_info.value.details["current"] == created["cardId"]

    def test_protected_field_unchanged_is_allowed(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        result = _update(seeded, created, {"cardId": created["cardId"], "title": "Same id"})
        assert result["updatedFields"] == ["title", "updatedAt", "updatedBy"]

    def test_reference_namespace(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        with pytest.raises(InvalidReferenceFormatError):
            _update(seeded, created, {"codeveloper": "stk_bob"})

    def test_unknown_sprint(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        with pytest.raises(SprintNotFoundError):
            _update(seeded, created, {"sprint": "PLN-SPR-0404"})

    def test_unknown_epic(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        with pytest.raises(EpicNotFoundError):
            _update(seeded, created, {"epic": "PLN-EPC-0404"})

    @pytest.mark.parametrize("blank", [None, ""])
    def test_bug_priority_cannot_be_cleared(self, seeded: SeededProject, blank: object) -> None:
        bug = seeded.engine.create_card("PLN", "bug", {"title": "Crash"})
        with pytest.raises(InvalidVocabularyValueError, match="bug priority"):
            _update(seeded, bug, {"priority": blank})
        assert seeded.engine.get_card("PLN", bug["cardId"])["priority"] == "USER EXPERIENCE ISSUE"

    def test_legacy_plan_upgraded_on_any_update(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        seeded.store.update(card_path("PLN", "TASKS", created["recordKey"]), {"implementationPlan": "old notes"})
        card = _update(seeded, created, {"title": "Touch"})["card"]
        assert card["implementationPlan"]["approach"] == "old notes"
        assert card["implementationPlan"]["planStatus"] == "proposed"


class TestStaleWrites:
    def test_matching_timestamp_applies(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        result = _update(seeded, created, {"title": "Guarded"}, expected_updated_at=created["card"]["updatedAt"])
        assert result["card"]["title"] == "Guarded"

    def test_stale_timestamp_rejected(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        _update(seeded, created, {"title": "Someone else"})
        with pytest.raises(StaleWriteError):
            _update(seeded, created, {"title": "Mine"}, expected_updated_at="2000-01-01T00:00:00+00:00")
        assert seeded.engine.get_card("PLN", created["cardId"])["title"] == "Someone else"

    def test_without_guard_last_write_wins(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        _update(seeded, created, {"title": "First"})
        assert _update(seeded, created, {"title": "Second"})["card"]["title"] == "Second"
