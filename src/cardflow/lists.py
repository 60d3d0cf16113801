"""Controlled vocabularies (status and priority labels) with a TTL cache.

Each list is stored as one document mapping ``text -> order``.  Texts are
served sorted by order.  ``resolve`` canonicalises a candidate (exact match
first, then case-insensitive); ``is_valid`` accepts exact matches only.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, Literal, TypedDict

from cardflow.db_base import StoreProtocol
from cardflow.errors import EmptyVocabularySourceError, InvalidVocabularyValueError, UnknownListKindError

logger = logging.getLogger(__name__)

ListKind = Literal["bug_status", "bug_priority", "task_status"]

LIST_PATHS: dict[str, str] = {
    "bug_status": "/data/statusList/bug-card",
    "bug_priority": "/data/bugpriorityList",
    "task_status": "/data/statusList/task-card",
}

_LIST_LABELS: dict[str, str] = {
    "bug_status": "bug status",
    "bug_priority": "bug priority",
    "task_status": "task status",
}

DEFAULT_TTL_SECONDS = 300.0

DEFAULT_LISTS: dict[str, dict[str, int]] = {
    "task_status": {
        "To Do": 1,
        "In Progress": 2,
        "To Validate": 3,
        "Done&Validated": 4,
        "Blocked": 5,
        "Reopened": 6,
    },
    "bug_status": {
        "Created": 1,
        "Assigned": 2,
        "Fixed": 3,
        "Verified": 4,
        "Closed": 5,
    },
    "bug_priority": {
        "APPLICATION BLOCKER": 1,
        "DEPARTMENT BLOCKER": 2,
        "INDIVIDUAL BLOCKER": 3,
        "USER EXPERIENCE ISSUE": 4,
        "WORKFLOW IMPROVEMENT": 5,
        "WORKAROUND AVAILABLE ISSUE": 6,
    },
}


class ListEntry(TypedDict):
    text: str
    order: Any


class TtlCache:
    """Passive time-based cache: expiry is checked on read, never by a timer."""

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: str | None = None) -> None:
        """Drop one key, or every key when *key* is ``None``."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


def _list_path(kind: str) -> str:
    try:
        return LIST_PATHS[kind]
    except KeyError:
        valid = ", ".join(sorted(LIST_PATHS))
        msg = f"Unknown list type: {kind!r}. Valid list types: {valid}"
        raise UnknownListKindError(msg, details={"list_kind": kind, "valid_kinds": sorted(LIST_PATHS)}) from None


def _order_key(item: tuple[int, tuple[str, Any]]) -> tuple[int, float, int]:
    index, (_, order) = item
    if isinstance(order, bool) or not isinstance(order, int | float):
        return (1, 0.0, index)
    return (0, float(order), index)


class ListService:
    """Reads vocabularies from the store through an injected :class:`TtlCache`."""

    def __init__(self, store: StoreProtocol, cache: TtlCache | None = None) -> None:
        self.store = store
        self.cache = cache if cache is not None else TtlCache()

    def pairs(self, kind: str) -> list[ListEntry]:
        """All entries of *kind* as ``{text, order}`` sorted by order."""
        path = _list_path(kind)
        cached = self.cache.get(kind)
        if cached is not None:
            return list(cached)
        data = self.store.get(path)
        if not isinstance(data, dict) or not data:
            msg = f"Empty or null data at path {path} (list type {kind!r}). Seed the list with 'cardflow lists seed'."
            raise EmptyVocabularySourceError(msg, details={"list_kind": kind, "path": path})
        ordered = sorted(enumerate(data.items()), key=_order_key)
        entries = [ListEntry(text=text, order=order) for _, (text, order) in ordered]
        self.cache.put(kind, entries)
        logger.debug("Loaded %d values for list %s", len(entries), kind)
        return list(entries)

    def texts(self, kind: str) -> list[str]:
        return [e["text"] for e in self.pairs(kind)]

    def resolve(self, kind: str, candidate: Any) -> str:
        """Return the canonical spelling of *candidate* or raise InvalidVocabularyValueError."""
        texts = self.texts(kind)
        if isinstance(candidate, str):
            if candidate in texts:
                return candidate
            lowered = candidate.strip().lower()
            for text in texts:
                if text.lower() == lowered:
                    return text
        label = _LIST_LABELS[kind]
        msg = f'Invalid {label} "{candidate}". Valid values: {", ".join(texts)}'
        raise InvalidVocabularyValueError(msg, details={"list_kind": kind, "value": candidate, "valid_values": texts})

    def is_valid(self, kind: str, value: Any) -> bool:
        return isinstance(value, str) and value in self.texts(kind)

    def invalidate(self, kind: str | None = None) -> None:
        if kind is not None:
            _list_path(kind)
        self.cache.invalidate(kind)


def seed_default_lists(store: StoreProtocol) -> list[str]:
    """Write the canonical vocabularies, leaving existing lists alone.

    Returns the list kinds that were written.
    """
    seeded: list[str] = []
    for kind, values in DEFAULT_LISTS.items():
        path = LIST_PATHS[kind]
        if store.get(path):
            continue
        store.set(path, dict(values))
        seeded.append(kind)
    return seeded
