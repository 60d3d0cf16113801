"""Tests for links between cards."""

from __future__ import annotations

import pytest

from cardflow.errors import InvalidFieldValueError
from tests._db_factory import SeededProject


def _links(seeded: SeededProject, card_id: str) -> list[dict[str, str]]:
    return seeded.engine.get_card("PLN", card_id).get("relatedTasks", [])


class TestRelateCards:
    def test_related_is_recorded_on_both_cards(self, seeded: SeededProject) -> None:
        first = seeded.create_task(title="Export")
        second = seeded.create_task(title="Import")
        result = seeded.engine.relate_cards("PLN", first["cardId"], second["cardId"], "related", actor="ana")
        assert result["relation"] == f"{first['cardId']} <-> {second['cardId']} (related)"
        assert _links(seeded, first["cardId"]) == [{"id": second["cardId"], "projectId": "PLN", "title": "Import", "type": "related"}]
        assert _links(seeded, second["cardId"]) == [{"id": first["cardId"], "projectId": "PLN", "title": "Export", "type": "related"}]
        assert seeded.engine.get_card("PLN", first["cardId"])["updatedBy"] == "ana"

    def test_blocks_records_blocked_by_on_target(self, seeded: SeededProject) -> None:
        task = seeded.create_task(title="Export")
        bug = seeded.engine.create_card("PLN", "bug", {"title": "Crash"})
        result = seeded.engine.relate_cards("PLN", bug["cardId"], task["cardId"], "blocks")
        assert result["relation"] == f"{bug['cardId']} blocks {task['cardId']}"
        assert [link["type"] for link in _links(seeded, bug["cardId"])] == ["blocks"]
        assert [(link["id"], link["type"]) for link in _links(seeded, task["cardId"])] == [(bug["cardId"], "blockedBy")]

    def test_adding_twice_keeps_one_link_with_fresh_title(self, seeded: SeededProject) -> None:
        first = seeded.create_task(title="Export")
        second = seeded.create_task(title="Import")
        seeded.engine.relate_cards("PLN", first["cardId"], second["cardId"], "related")
        seeded.engine.update_card("PLN", "task", second["recordKey"], {"title": "Import CSV"})
        seeded.engine.relate_cards("PLN", first["cardId"], second["cardId"], "related")
        links = _links(seeded, first["cardId"])
        assert len(links) == 1
        assert links[0]["title"] == "Import CSV"

    def test_both_kinds_can_coexist(self, seeded: SeededProject) -> None:
        first = seeded.create_task()
        second = seeded.create_task()
        seeded.engine.relate_cards("PLN", first["cardId"], second["cardId"], "related")
        seeded.engine.relate_cards("PLN", first["cardId"], second["cardId"], "blocks")
        assert [link["type"] for link in _links(seeded, first["cardId"])] == ["related", "blocks"]
        assert [link["type"] for link in _links(seeded, second["cardId"])] == ["related", "blockedBy"]

    def test_remove_drops_only_that_kind(self, seeded: SeededProject) -> None:
        first = seeded.create_task()
        second = seeded.create_task()
        seeded.engine.relate_cards("PLN", first["cardId"], second["cardId"], "related")
        seeded.engine.relate_cards("PLN", first["cardId"], second["cardId"], "blocks")
        result = seeded.engine.relate_cards("PLN", first["cardId"], second["cardId"], "blocks", action="remove")
        assert result["message"] == "Relation removed"
        assert [link["type"] for link in _links(seeded, first["cardId"])] == ["related"]
        assert [link["type"] for link in _links(seeded, second["cardId"])] == ["related"]

    def test_remove_missing_link_is_a_no_op(self, seeded: SeededProject) -> None:
        first = seeded.create_task()
        second = seeded.create_task()
        result = seeded.engine.relate_cards("PLN", first["cardId"], second["cardId"], "related", action="remove")
        assert result["sourceCard"]["relatedTasks"] == []


class TestRelateCardsRejections:
    def test_self_link(self, seeded: SeededProject) -> None:
        task = seeded.create_task()
        with pytest.raises(InvalidFieldValueError, match="itself"):
            seeded.engine.relate_cards("PLN", task["cardId"], task["cardId"], "related")

    def test_unknown_relation_type(self, seeded: SeededProject) -> None:
        first = seeded.create_task()
        second = seeded.create_task()
        with pytest.raises(InvalidFieldValueError) as exc_info:
            seeded.engine.relate_cards("PLN", first["cardId"], second["cardId"], "blockedBy")
        assert exc_info.value.details["valid_values"] == ["related", "blocks"]

    def test_unknown_action(self, seeded: SeededProject) -> None:
        first = seeded.create_task()
        second = seeded.create_task()
        with pytest.raises(InvalidFieldValueError, match="action"):
            seeded.engine.relate_cards("PLN", first["cardId"], second["cardId"], "related", action="toggle")

    def test_missing_target(self, seeded: SeededProject) -> None:
        task = seeded.create_task()
        with pytest.raises(KeyError, match="Card not found: PLN-TSK-0404"):
            seeded.engine.relate_cards("PLN", task["cardId"], "PLN-TSK-0404", "related")
        assert _links(seeded, task["cardId"]) == []
