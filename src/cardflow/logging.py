"""Structured JSON logging for cardflow.

Writes JSONL to .cardflow/cardflow.log with rotation (5MB, 3 backups).
Engine records carry the card, project and rejection code they concern,
so one card's history can be followed with a plain ``grep`` on its ID.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

_LOG_FILENAME = "cardflow.log"
_setup_lock = threading.Lock()
_MAX_BYTES = 5 * 1024 * 1024  # 5MB
_BACKUP_COUNT = 3
_EXTRA_KEYS: tuple[tuple[str, str], ...] = (
    ("tool", "tool"),
    ("args_data", "args"),
    ("duration_ms", "duration_ms"),
    ("error", "error"),
    ("card_id", "card_id"),
    ("project_id", "project"),
    ("violation_code", "code"),
)


class _JsonFormatter(logging.Formatter):
    """One JSON object per record; MCP and engine extras are copied when present."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for attr, key in _EXTRA_KEYS:
            if hasattr(record, attr):
                entry[key] = getattr(record, attr)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry, default=str)


def setup_logging(cardflow_dir: Path, *, level: int = logging.INFO) -> logging.Logger:
    """Attach the rotating JSONL handler for *cardflow_dir* to the ``cardflow`` logger.

    Calling again with the same directory is a no-op; a different directory
    replaces the previous file handler.
    """
    logger = logging.getLogger("cardflow")
    log_path = cardflow_dir / _LOG_FILENAME
    target_filename = os.path.abspath(str(log_path))

    with _setup_lock:
        for h in logger.handlers[:]:
            if not isinstance(h, RotatingFileHandler):
                continue
            if h.baseFilename == target_filename:
                return logger
            logger.removeHandler(h)
            h.close()

        handler = RotatingFileHandler(
            str(log_path),
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
        )
        handler.setFormatter(_JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(level)
    return logger
