"""Tests for the violation value and its collector."""

from __future__ import annotations

import pytest

from cardflow.errors import (
    CardflowError,
    MissingRequiredFieldsError,
    Violation,
    ViolationCollector,
)


class TestViolation:
    def test_details_default_to_fresh_dict(self) -> None:
        first = Violation(kind="invalid_field_value", message="bad")
        second = Violation(kind="invalid_field_value", message="bad")
        assert first.details == {}
        assert first.details is not second.details
        assert first.field is None

    def test_to_dict_flattens_details(self) -> None:
        v = Violation(kind="missing_required_fields", message="m", field="status", details={"missing_fields": ["developer"]})
        assert v.to_dict() == {"kind": "missing_required_fields", "message": "m", "field": "status", "missing_fields": ["developer"]}

    def test_as_error_maps_kind(self) -> None:
        err = Violation(kind="missing_required_fields", message="m", field="status", details={"missing_fields": ["developer"]}).as_error()
        assert isinstance(err, MissingRequiredFieldsError)
        assert err.missing_fields == ["developer"]
        assert err.to_dict() == {"error": "m", "code": "missing_required_fields", "missing_fields": ["developer"], "field": "status"}

    def test_unknown_kind_falls_back_to_base(self) -> None:
        err = Violation(kind="something_else", message="m").as_error()
        assert type(err) is CardflowError


class TestViolationCollector:
    def test_fail_fast_raises_first(self) -> None:
        collector = ViolationCollector(fail_fast=True)
        with pytest.raises(MissingRequiredFieldsError):
            collector.add([Violation(kind="missing_required_fields", message="m"), Violation(kind="x", message="y")])

    def test_collect_all_keeps_every_violation(self) -> None:
        collector = ViolationCollector(fail_fast=False)
        collector.add([Violation(kind="a", message="1")])
        collector.add([Violation(kind="b", message="2")])
        assert not collector.ok
        assert [v.kind for v in collector.violations] == ["a", "b"]
        assert [v.kind for v in collector.of_kind("b")] == ["b"]
