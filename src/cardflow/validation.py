"""Input checks shared by the MCP, HTTP and CLI entry points.

Pure functions with no MCP, FastAPI, or Click dependencies.
"""

from __future__ import annotations

import unicodedata
from typing import Any

_MAX_ACTOR_LENGTH = 128
_MAX_RECORD_KEY_LENGTH = 64


def sanitize_actor(value: Any) -> tuple[str, str | None]:
    """Validate and clean an actor name for the audit fields.

    Returns (cleaned_actor, None) on success or ("", error_message) on failure.
    """
    if not isinstance(value, str):
        return ("", "actor must be a string")
    # Control characters are rejected before strip() can hide them.
    for ch in value:
        if unicodedata.category(ch).startswith("C"):
            return ("", f"actor must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "actor must not be empty")
    if len(cleaned) > _MAX_ACTOR_LENGTH:
        return ("", f"actor must be at most {_MAX_ACTOR_LENGTH} characters")
    return (cleaned, None)


def check_record_key(value: Any) -> str | None:
    """Error message if *value* cannot be a storage key, else None."""
    if not isinstance(value, str) or not value.strip():
        return "record key must be a non-empty string"
    if "/" in value:
        return "record key must not contain '/'"
    if len(value) > _MAX_RECORD_KEY_LENGTH:
        return f"record key must be at most {_MAX_RECORD_KEY_LENGTH} characters"
    return None
