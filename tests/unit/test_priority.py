"""Tests for derived task priority."""

from __future__ import annotations

import pytest

from cardflow.errors import InvalidVocabularyValueError
from cardflow.priority import SCALES, build_priority_table, calculate_priority, scale_values


class TestPriorityTable:
    def test_one_entry_per_pairing(self) -> None:
        assert len(build_priority_table("1-5")) == 25
        assert len(build_priority_table("fibonacci")) == 36

    def test_ranks_are_sequential(self) -> None:
        table = build_priority_table("1-5")
        assert [e.rank for e in table] == list(range(1, 26))

    def test_sorted_by_ratio_descending(self) -> None:
        ratios = [e.ratio for e in build_priority_table("1-5")]
        assert ratios == sorted(ratios, reverse=True)

    def test_top_and_bottom(self) -> None:
        table = build_priority_table("1-5")
        assert (table[0].business_value, table[0].effort, table[0].ratio) == (5, 1, 500)
        assert (table[-1].business_value, table[-1].effort, table[-1].ratio) == (1, 5, 20)

    def test_ties_keep_business_outer_order(self) -> None:
        table = build_priority_table("1-5")
        ties = [(e.business_value, e.effort) for e in table if e.ratio == 200]
        assert ties == [(2, 1), (4, 2)]

    def test_to_dict(self) -> None:
        entry = build_priority_table("1-5")[0]
        assert entry.to_dict() == {"businessValue": 5, "effort": 1, "ratio": 500, "rank": 1}


class TestCalculatePriority:
    def test_highest_value_lowest_effort_is_rank_one(self) -> None:
        assert calculate_priority(5, 1) == 1

    def test_five_business_two_effort(self) -> None:
        # Ratio 250 sits below 500, 400 and 300.
        assert calculate_priority(5, 2) == 4

    def test_tied_ratio_takes_best_rank(self) -> None:
        assert calculate_priority(4, 2) == calculate_priority(2, 1) == 5

    def test_lowest(self) -> None:
        assert calculate_priority(1, 5) == 25

    @pytest.mark.parametrize(("business", "effort"), [(0, 3), (3, 0), (None, 3), (3, None), (None, None)])
    def test_missing_or_zero_points(self, business: int | None, effort: int | None) -> None:
        assert calculate_priority(business, effort) is None

    def test_fibonacci_scale(self) -> None:
        assert calculate_priority(13, 1, "fibonacci") == 1
        assert calculate_priority(1, 13, "fibonacci") == 36

    def test_higher_ratio_never_ranks_worse(self) -> None:
        assert calculate_priority(5, 3) < calculate_priority(3, 5)


class TestScaleValues:
    def test_default_scale(self) -> None:
        assert scale_values(None) == SCALES["1-5"]

    def test_unknown_scale(self) -> None:
        with pytest.raises(InvalidVocabularyValueError, match="Unknown scoring system"):
            scale_values("tshirt")
