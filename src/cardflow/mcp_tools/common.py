"""Pure helpers shared across MCP tool modules.

This module has NO dependency on ``mcp_server`` module globals, so it can
be imported freely without triggering circular-import issues.
"""

from __future__ import annotations

import json
import logging
from typing import Any, TypeVar, cast

from mcp.types import TextContent

from cardflow.errors import CardflowError
from cardflow.types.api import ErrorResponse, SlimCard
from cardflow.validation import sanitize_actor

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


def _parse_args(arguments: dict[str, Any], cls: type[_T]) -> _T:
    """Cast MCP arguments to a typed dict for static analysis.

    The MCP SDK validates arguments against the tool's JSON Schema before
    the handler runs; the engine validates authoritatively.
    """
    return cast(_T, arguments)


def _text(content: object) -> list[TextContent]:
    if isinstance(content, str):
        return [TextContent(type="text", text=content)]
    return [TextContent(type="text", text=json.dumps(content, indent=2, default=str))]


def _not_found(exc: KeyError) -> list[TextContent]:
    message = exc.args[0] if exc.args else "Not found"
    return _text(ErrorResponse(error=str(message), code="not_found"))


def _rejected(exc: CardflowError) -> list[TextContent]:
    """Structured envelope for a rejected mutation or lookup."""
    return _text(exc.to_dict())


def _validate_str(value: Any, name: str) -> list[TextContent] | None:
    """Return a validation error if *value* is not ``None`` and not a ``str``."""
    if value is not None and not isinstance(value, str):
        return _text(ErrorResponse(error=f"{name} must be a string", code="validation_error"))
    return None


def _validate_object(value: Any, name: str) -> list[TextContent] | None:
    if not isinstance(value, dict):
        return _text(ErrorResponse(error=f"{name} must be an object", code="validation_error"))
    return None


def _validate_actor(value: Any) -> tuple[str, list[TextContent] | None]:
    """Sanitize actor, returning (cleaned, None) or ("", error_response)."""
    cleaned, err = sanitize_actor(value)
    if err:
        return ("", _text(ErrorResponse(error=err, code="validation_error")))
    return (cleaned, None)


def _slim_card(card: dict[str, Any]) -> SlimCard:
    """Lightweight card shape for list results."""
    return SlimCard(
        cardId=card.get("cardId", ""),
        recordKey=card.get("recordKey", ""),
        title=card.get("title", ""),
        status=card.get("status"),
        priority=card.get("priority"),
        sprint=card.get("sprint"),
        developer=card.get("developer"),
    )


def _missing_project() -> list[TextContent]:
    return _text(ErrorResponse(error="project is required (no default_project configured)", code="validation_error"))
