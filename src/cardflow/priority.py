"""Derived task priority from business value and effort points.

Every (business value, effort) pairing of a scale gets a ratio
``business / effort * 100``.  Pairings sorted by ratio (descending, stable on
business-outer / effort-inner insertion order) are ranked 1..n.  A card's
priority is the rank of the first table entry whose ratio its own ratio
reaches.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any

from cardflow.errors import InvalidVocabularyValueError

SCALES: dict[str, tuple[int, ...]] = {
    "1-5": (1, 2, 3, 4, 5),
    "fibonacci": (1, 2, 3, 5, 8, 13),
}
DEFAULT_SCALE = "1-5"


@dataclass(frozen=True)
class PriorityEntry:
    business_value: int
    effort: int
    ratio: float
    rank: int

    def to_dict(self) -> dict[str, Any]:
        return {"businessValue": self.business_value, "effort": self.effort, "ratio": self.ratio, "rank": self.rank}


def scale_values(scale: str | None) -> tuple[int, ...]:
    """Point values allowed by *scale* (``None`` means the default scale)."""
    name = scale or DEFAULT_SCALE
    try:
        return SCALES[name]
    except KeyError:
        msg = f'Unknown scoring system "{name}". Valid values: {", ".join(SCALES)}'
        raise InvalidVocabularyValueError(msg, details={"value": name, "valid_values": list(SCALES)}) from None


@functools.cache
def build_priority_table(scale: str = DEFAULT_SCALE) -> tuple[PriorityEntry, ...]:
    values = scale_values(scale)
    combos = [(biz, dev, biz / dev * 100) for biz in values for dev in values]
    combos.sort(key=lambda c: c[2], reverse=True)
    return tuple(PriorityEntry(business_value=b, effort=d, ratio=r, rank=i + 1) for i, (b, d, r) in enumerate(combos))


def calculate_priority(business_value: Any, effort: Any, scale: str = DEFAULT_SCALE) -> int | None:
    """Rank for the given points, or ``None`` when either is missing or zero.

    Tied ratios resolve to the lowest (best) rank sharing that ratio.
    """
    if not business_value or not effort:
        return None
    table = build_priority_table(scale)
    ratio = business_value / effort * 100
    for entry in table:
        if ratio >= entry.ratio:
            return entry.rank
    return len(table)
