"""End-to-end card lifecycle scenarios: validate-only reports, plans and reminders."""

from __future__ import annotations

import re
from typing import Any

import pytest

from cardflow.errors import DirectCloseWithoutDocumentationError, ValidatorOnlyTransitionError
from cardflow.templates import BLOCKED_EITHER
from tests._db_factory import TODAY, SeededProject


def _commit(h: str) -> dict[str, str]:
    return {"hash": h, "message": "implement export", "date": TODAY, "author": "ana"}


def _update(seeded: SeededProject, created: dict[str, Any], updates: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
    return seeded.engine.update_card("PLN", created["cardType"], created["recordKey"], updates, **kwargs)


class TestLifecycleScenarios:
    def test_create_task_with_story_and_epic(self, seeded: SeededProject) -> None:
        result = seeded.create_task()
        assert re.fullmatch(r"PLN-TSK-\d{4}", result["cardId"])
        assert result["card"]["priority"] is None

    def test_points_give_priority(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        card = _update(seeded, created, {"devPoints": 2, "businessPoints": 5})["card"]
        assert isinstance(card["priority"], int)
        # Only 5/1, 4/1 and 3/1 have a higher ratio than 5/2.
        assert card["priority"] == 4

    def test_start_work_picks_active_sprint(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task()
        card = _update(seeded, created, {"status": "In Progress"})["card"]
        assert card["sprint"] == seeded.sprint_id
        assert card["startDate"] == TODAY

    def test_approval_only_status(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task()
        with pytest.raises(ValidatorOnlyTransitionError) as exc_info:
            _update(seeded, created, {"status": "Done&Validated"})
        assert "To Validate" in exc_info.value.message

    def test_close_bug_names_only_missing_field(self, seeded: SeededProject) -> None:
        bug = seeded.engine.create_card("PLN", "bug", {"title": "Crash on export"})
        with pytest.raises(DirectCloseWithoutDocumentationError) as exc_info:
            _update(seeded, bug, {"status": "Closed", "commits": [_commit("c0ffee")], "rootCause": "null row"})
        assert exc_info.value.missing_fields == ["resolution"]
        assert "resolution" in exc_info.value.message
        assert "rootCause" not in exc_info.value.message
        assert "commits" not in exc_info.value.message

    def test_close_bug_with_documentation(self, seeded: SeededProject) -> None:
        bug = seeded.engine.create_card("PLN", "bug", {"title": "Crash on export"})
        updates = {"status": "Closed", "commits": [_commit("c0ffee")], "rootCause": "null row", "resolution": "guard added"}
        assert _update(seeded, bug, updates)["card"]["status"] == "Closed"

    def test_close_bug_with_documentation_from_earlier_updates(self, seeded: SeededProject) -> None:
        bug = seeded.engine.create_card("PLN", "bug", {"title": "Crash on export"})
        _update(seeded, bug, {"commits": [_commit("c0ffee")], "rootCause": "null row"})
        closed = _update(seeded, bug, {"status": "Closed", "resolution": "guard added"})
        assert closed["card"]["status"] == "Closed"
        assert [c["hash"] for c in closed["card"]["commits"]] == ["c0ffee"]

    def test_full_task_lifecycle(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task()
        _update(seeded, created, {"status": "In Progress"})
        result = _update(seeded, created, {"status": "To Validate", "commits": [_commit("a1")]})
        assert result["card"]["status"] == "To Validate"
        assert [w["code"] for w in result["warnings"]] == ["VERSION_REMINDER"]
        reopened = _update(seeded, created, {"status": "Reopened"})
        assert reopened["card"]["status"] == "Reopened"
        back = _update(seeded, created, {"status": "In Progress", "commits": [_commit("a2")]})
        assert back["card"]["startDate"] == TODAY
        assert [c["hash"] for c in back["card"]["commits"]] == ["a1", "a2"]


class TestValidateOnly:
    def test_collects_every_violation(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        report = _update(seeded, created, {"status": "In Progress", "priority": 3, "developer": "ana"}, validate_only=True)
        assert report["valid"] is False
        assert [v["kind"] for v in report["violations"]] == [
            "direct_priority_not_allowed",
            "missing_required_fields",
            "invalid_reference_format",
        ]
        assert report["missingFields"] == ["devPoints", "businessPoints"]
        assert report["currentStatus"] == "To Do"
        assert report["targetStatus"] == "In Progress"
        assert report["cardId"] == created["cardId"]
        assert report["currentCard"]["title"] == "Export report"

    def test_never_writes(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task()
        report = _update(seeded, created, {"status": "In Progress"}, validate_only=True)
        assert report["valid"] is True
        assert report["violations"] == []
        assert report["sideEffects"] == {"sprint": seeded.sprint_id, "startDate": TODAY}
        stored = seeded.engine.get_card("PLN", created["cardId"])
        assert stored["status"] == "To Do"
        assert "sprint" not in stored

    def test_bad_status_still_checks_other_fields(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        report = _update(seeded, created, {"status": "Doing", "validator": "bob"}, validate_only=True)
        assert [v["kind"] for v in report["violations"]] == ["invalid_vocabulary_value", "invalid_reference_format"]
        assert report["targetStatus"] == "To Do"

    def test_every_bad_commit_reported(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        commits = [{"hash": "a"}, _commit("b"), "junk"]
        report = _update(seeded, created, {"commits": commits}, validate_only=True)
        indexes = {v["index"] for v in report["violations"]}
        assert indexes == {0, 2}

    def test_blocked_gate_reported_with_missing_start_fields(self, seeded: SeededProject) -> None:
        created = seeded.create_task()
        report = _update(seeded, created, {"status": "Blocked"}, validate_only=True)
        assert report["valid"] is False
        assert report["missingFields"] == ["developer", "devPoints", "businessPoints", BLOCKED_EITHER]
        assert report["targetStatus"] == "Blocked"

    def test_protected_and_closing_reported_together(self, seeded: SeededProject) -> None:
        bug = seeded.engine.create_card("PLN", "bug", {"title": "Crash"})
        report = _update(seeded, bug, {"createdBy": "mallory", "status": "Closed"}, validate_only=True)
        kinds = [v["kind"] for v in report["violations"]]
        assert kinds == ["protected_field_violation", "direct_close_without_documentation"]
        assert report["missingFields"] == ["commits", "rootCause", "resolution"]


class TestImplementationPlanProgress:
    def test_validated_plan_progresses(self, seeded: SeededProject) -> None:
        plan = {"approach": "Stream rows", "steps": [{"description": "writer"}], "planStatus": "validated"}
        created = seeded.create_ready_task(implementationPlan=plan)
        started = _update(seeded, created, {"status": "In Progress"})
        assert started["card"]["implementationPlan"]["planStatus"] == "in_progress"
        assert started["sideEffects"]["planStatus"] == "in_progress"
        assert started["warnings"] == []
        done = _update(seeded, created, {"status": "To Validate", "commits": [_commit("a1")]})
        assert done["card"]["implementationPlan"]["planStatus"] == "completed"
        assert done["card"]["implementationPlan"]["steps"] == [{"description": "writer"}]

    def test_proposed_plan_warns(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task(implementationPlan="Stream rows")
        result = _update(seeded, created, {"status": "In Progress"})
        assert [w["code"] for w in result["warnings"]] == ["PLAN_NOT_VALIDATED"]
        assert result["card"]["implementationPlan"]["planStatus"] == "proposed"

    def test_large_task_without_plan_warns(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task(devPoints=3)
        result = _update(seeded, created, {"status": "In Progress"})
        assert [w["code"] for w in result["warnings"]] == ["MISSING_IMPLEMENTATION_PLAN"]

    def test_small_task_without_plan_is_quiet(self, seeded: SeededProject) -> None:
        created = seeded.create_ready_task(devPoints=2)
        assert _update(seeded, created, {"status": "In Progress"})["warnings"] == []

    def test_fixed_bug_reminds_version_bump(self, seeded: SeededProject) -> None:
        bug = seeded.engine.create_card("PLN", "bug", {"title": "Crash"})
        result = _update(seeded, bug, {"status": "Fixed"})
        assert [w["code"] for w in result["warnings"]] == ["VERSION_REMINDER"]
