"""Document store, project discovery, and configuration.

Single source of truth for all SQLite operations.  The CLI, MCP server and
HTTP API all open the store through this module.  No daemon, no sync: just
direct SQLite with WAL mode.

Records are JSON documents addressed by slash-separated paths, e.g.
``/cards/PLN/TASKS_PLN/<key>`` or ``/data/statusList/task-card``.  A path
can hold a document, and its direct children can be listed in insertion
order.

Convention-based discovery: each workspace has a ``.cardflow/`` directory
containing ``cardflow.db`` (SQLite) and ``config.json``.
"""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from cardflow.db_base import _now_iso
from cardflow.errors import StaleWriteError
from cardflow.types.core import ProjectConfig

logger = logging.getLogger(__name__)

CARDFLOW_DIR_NAME = ".cardflow"
DB_FILENAME = "cardflow.db"
CONFIG_FILENAME = "config.json"

# ---------------------------------------------------------------------------
# Document paths
# ---------------------------------------------------------------------------

PROJECTS_PATH = "/projects"
DEVELOPERS_PATH = "/data/developers"
STAKEHOLDERS_PATH = "/data/stakeholders"


def project_path(project_id: str) -> str:
    return f"{PROJECTS_PATH}/{project_id}"


def card_collection_path(project_id: str, section: str) -> str:
    """Collection holding every card of one type, e.g. ``/cards/PLN/TASKS_PLN``."""
    return f"/cards/{project_id}/{section}_{project_id}"


def card_path(project_id: str, section: str, record_key: str) -> str:
    return f"{card_collection_path(project_id, section)}/{record_key}"


def developer_path(developer_id: str) -> str:
    return f"{DEVELOPERS_PATH}/{developer_id}"


def stakeholder_path(stakeholder_id: str) -> str:
    return f"{STAKEHOLDERS_PATH}/{stakeholder_id}"


def _split_path(path: str) -> tuple[str, str, str]:
    """Normalize *path* and return ``(full, parent, key)``."""
    if not isinstance(path, str):
        msg = f"path must be a string, got {type(path).__name__}"
        raise TypeError(msg)
    segments = [s for s in path.strip().split("/") if s]
    if not segments:
        msg = "path must contain at least one segment"
        raise ValueError(msg)
    for segment in segments:
        if segment in (".", ".."):
            msg = f"Invalid path segment {segment!r} in {path!r}"
            raise ValueError(msg)
    return "/".join(segments), "/".join(segments[:-1]), segments[-1]


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    path        TEXT PRIMARY KEY,
    parent      TEXT NOT NULL,
    key         TEXT NOT NULL,
    data        TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_documents_parent ON documents(parent);

CREATE TABLE IF NOT EXISTS counters (
    key    TEXT PRIMARY KEY,
    value  INTEGER NOT NULL DEFAULT 0
);
"""

CURRENT_SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Project discovery / config
# ---------------------------------------------------------------------------


def find_cardflow_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .cardflow/ directory.

    Returns the .cardflow/ directory path (not the workspace root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / CARDFLOW_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {CARDFLOW_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(cardflow_dir: Path) -> ProjectConfig:
    """Read .cardflow/config.json. Returns defaults if missing or corrupt."""
    defaults = ProjectConfig(version=1, actor="cardflow")
    config_path = cardflow_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        result = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(result, dict):
        logger.warning("Ignoring %s: top-level value is not an object", config_path)
        return defaults
    merged: ProjectConfig = {**defaults, **result}  # type: ignore[typeddict-item]
    return merged


def write_config(cardflow_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .cardflow/config.json."""
    config_path = cardflow_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


# ---------------------------------------------------------------------------
# DocumentStore
# ---------------------------------------------------------------------------


class DocumentStore:
    """SQLite-backed path-addressed JSON document store.

    Writes run inside ``BEGIN IMMEDIATE`` so read-modify-write operations
    (``update`` with an ``expect`` guard, ``increment_counter``) are atomic
    across processes sharing the same database file.
    """

    def __init__(self, db_path: str | Path, *, check_same_thread: bool = True) -> None:
        self.db_path = Path(db_path)
        self._check_same_thread = check_same_thread
        self._conn: sqlite3.Connection | None = None

    def __enter__(self) -> DocumentStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def initialize(self) -> None:
        """Create tables for a fresh database and stamp the schema version."""
        current_version = self.get_schema_version()
        if current_version == 0:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        elif current_version > CURRENT_SCHEMA_VERSION:
            msg = f"Database schema version {current_version} is newer than supported version {CURRENT_SCHEMA_VERSION}"
            raise RuntimeError(msg)
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def reconnect(self, *, check_same_thread: bool = True) -> None:
        """Reopen the connection, e.g. to hand it to a threadpool-backed server."""
        self.close()
        self._check_same_thread = check_same_thread

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @contextlib.contextmanager
    def _immediate(self) -> Iterator[sqlite3.Connection]:
        if self.conn.in_transaction:
            self.conn.commit()
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield self.conn
        except Exception:
            self.conn.rollback()
            raise
        else:
            self.conn.commit()

    # -- reads ---------------------------------------------------------------

    def _read(self, full: str) -> Any | None:
        row = self.conn.execute("SELECT data FROM documents WHERE path = ?", (full,)).fetchone()
        if row is None:
            return None
        return json.loads(row["data"])

    def get(self, path: str) -> Any | None:
        """Return the document at *path*, its children mapping, or ``None``."""
        full, _, _ = _split_path(path)
        value = self._read(full)
        if value is not None:
            return value
        return self._children(full) or None

    def _children(self, full: str) -> dict[str, Any]:
        rows = self.conn.execute(
            "SELECT key, data FROM documents WHERE parent = ? ORDER BY rowid",
            (full,),
        ).fetchall()
        return {r["key"]: json.loads(r["data"]) for r in rows}

    def children(self, path: str) -> dict[str, Any]:
        """Direct children of *path* as ``{key: document}`` in insertion order."""
        full, _, _ = _split_path(path)
        return self._children(full)

    # -- writes --------------------------------------------------------------

    def _write(self, conn: sqlite3.Connection, full: str, parent: str, key: str, value: Any) -> None:
        conn.execute(
            "INSERT INTO documents (path, parent, key, data, updated_at) VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(path) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at",
            (full, parent, key, json.dumps(value), _now_iso()),
        )

    def set(self, path: str, value: Any) -> None:
        """Replace the whole document at *path*."""
        full, parent, key = _split_path(path)
        with self._immediate() as conn:
            self._write(conn, full, parent, key, value)

    def update(
        self,
        path: str,
        partial: dict[str, Any],
        *,
        expect: tuple[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Shallow-merge *partial* into the document at *path* and return the result.

        Nested values are replaced wholesale.  When *expect* is given as
        ``(field, value)`` the stored document must still hold that value or
        :class:`StaleWriteError` is raised and nothing is written.
        """
        if not isinstance(partial, dict):
            msg = "partial update must be a dict"
            raise TypeError(msg)
        full, parent, key = _split_path(path)
        with self._immediate() as conn:
            current = self._read(full)
            if current is None:
                current = {}
            if not isinstance(current, dict):
                msg = f"Cannot merge into non-object document at {full}"
                raise TypeError(msg)
            if expect is not None:
                field_name, expected = expect
                actual = current.get(field_name)
                if actual != expected:
                    msg = (
                        f"Document /{full} was modified by another writer: "
                        f"expected {field_name}={expected!r}, found {actual!r}. Re-read and retry."
                    )
                    raise StaleWriteError(
                        msg,
                        details={"path": f"/{full}", "field": field_name, "expected": expected, "actual": actual},
                    )
            merged = {**current, **partial}
            self._write(conn, full, parent, key, merged)
        return merged

    def push(self, path: str, value: Any) -> str:
        """Append *value* under a fresh key in the collection at *path*."""
        key = uuid.uuid4().hex[:20]
        self.set(f"{path}/{key}", value)
        return key

    def increment_counter(self, key: str) -> int:
        """Atomically increment the named counter and return its new value."""
        with self._immediate() as conn:
            conn.execute("INSERT INTO counters (key, value) VALUES (?, 0) ON CONFLICT(key) DO NOTHING", (key,))
            conn.execute("UPDATE counters SET value = value + 1 WHERE key = ?", (key,))
            row = conn.execute("SELECT value FROM counters WHERE key = ?", (key,)).fetchone()
        result: int = row["value"]
        return result


def open_store(cardflow_dir: Path, *, check_same_thread: bool = True) -> DocumentStore:
    """Open and initialize the store inside a ``.cardflow/`` directory."""
    store = DocumentStore(cardflow_dir / DB_FILENAME, check_same_thread=check_same_thread)
    store.initialize()
    return store
