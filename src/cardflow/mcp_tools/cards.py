"""MCP tools for card creation, update, and lookup."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from cardflow.errors import CardflowError
from cardflow.mcp_tools.common import (
    _missing_project,
    _not_found,
    _parse_args,
    _rejected,
    _slim_card,
    _text,
    _validate_actor,
    _validate_object,
    _validate_str,
)
from cardflow.types.api import CardListResponse
from cardflow.types.inputs import CreateCardArgs, GetCardArgs, ListCardsArgs, RelateCardsArgs, UpdateCardArgs

_PROJECT_PROPERTY = {"type": "string", "description": "Project ID (defaults to default_project in config.json)"}
_TYPE_PROPERTY = {"type": "string", "description": "Card type: task, bug, epic, sprint, proposal, qa"}


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for card tools."""
    tools = [
        Tool(
            name="create_card",
            description=(
                "Create a card. Tasks need title, epic, descriptionStructured (role/goal/benefit) and "
                "acceptance criteria; the validator is auto-assigned when omitted. "
                "Use get_transition_rules first to see the type's rules."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "project": _PROJECT_PROPERTY,
                    "type": _TYPE_PROPERTY,
                    "fields": {"type": "object", "description": "Card fields (camelCase keys, e.g. devPoints, acceptanceCriteria)"},
                    "actor": {"type": "string", "description": "Agent/user identity for audit trail"},
                },
                "required": ["type", "fields"],
            },
        ),
        Tool(
            name="update_card",
            description=(
                "Partially update a card. Set validate_only=true to get every rule violation "
                "and the projected record without writing."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "project": _PROJECT_PROPERTY,
                    "type": _TYPE_PROPERTY,
                    "record_key": {"type": "string", "description": "Storage key of the card (recordKey)"},
                    "updates": {"type": "object", "description": "Fields to change; omitted fields keep their value"},
                    "validate_only": {"type": "boolean", "default": False, "description": "Report violations without writing"},
                    "expected_updated_at": {
                        "type": "string",
                        "description": "Refuse the write if the card's updatedAt differs (optimistic concurrency)",
                    },
                    "actor": {"type": "string", "description": "Agent/user identity for audit trail"},
                },
                "required": ["type", "record_key", "updates"],
            },
        ),
        Tool(
            name="get_card",
            description="Get a card by its ID (e.g. PLN-TSK-0001). Tasks include availableTransitions.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project": _PROJECT_PROPERTY,
                    "card_id": {"type": "string", "description": "Card ID"},
                },
                "required": ["card_id"],
            },
        ),
        Tool(
            name="list_cards",
            description="List cards of one type with optional filters",
            inputSchema={
                "type": "object",
                "properties": {
                    "project": _PROJECT_PROPERTY,
                    "type": _TYPE_PROPERTY,
                    "status": {"type": "string", "description": "Filter by status (case and spacing insensitive)"},
                    "sprint": {"type": "string", "description": "Filter by sprint ID"},
                    "developer": {"type": "string", "description": "Filter by developer or codeveloper ID"},
                    "year": {"type": "integer", "description": "Filter by card year"},
                },
                "required": ["type"],
            },
        ),
        Tool(
            name="relate_cards",
            description=(
                "Add or remove a link between two cards. \"related\" links both ways; "
                "\"blocks\" records blocks on the source and blockedBy on the target."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "project": _PROJECT_PROPERTY,
                    "source_card_id": {"type": "string", "description": "Source card ID (e.g. PLN-TSK-0001)"},
                    "target_card_id": {"type": "string", "description": "Target card ID (e.g. PLN-TSK-0002)"},
                    "relation_type": {"type": "string", "enum": ["related", "blocks"], "description": "Relation type"},
                    "action": {"type": "string", "enum": ["add", "remove"], "default": "add", "description": "Add or remove the link"},
                    "actor": {"type": "string", "description": "Agent/user identity for audit trail"},
                },
                "required": ["source_card_id", "target_card_id", "relation_type"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "create_card": _handle_create_card,
        "update_card": _handle_update_card,
        "get_card": _handle_get_card,
        "list_cards": _handle_list_cards,
        "relate_cards": _handle_relate_cards,
    }
    return tools, handlers


async def _handle_create_card(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_engine, _resolve_project

    args = _parse_args(arguments, CreateCardArgs)
    err = _validate_object(args.get("fields"), "fields")
    if err:
        return err
    actor, actor_err = _validate_actor(args.get("actor", "mcp"))
    if actor_err:
        return actor_err
    project = _resolve_project(args.get("project"))
    if project is None:
        return _missing_project()
    try:
        result = _get_engine().create_card(project, args["type"], args["fields"], actor=actor)
    except KeyError as exc:
        return _not_found(exc)
    except CardflowError as exc:
        return _rejected(exc)
    return _text(result)


async def _handle_update_card(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_engine, _resolve_project

    args = _parse_args(arguments, UpdateCardArgs)
    err = _validate_object(args.get("updates"), "updates")
    if err:
        return err
    err = _validate_str(args.get("expected_updated_at"), "expected_updated_at")
    if err:
        return err
    actor, actor_err = _validate_actor(args.get("actor", "mcp"))
    if actor_err:
        return actor_err
    project = _resolve_project(args.get("project"))
    if project is None:
        return _missing_project()
    try:
        result = _get_engine().update_card(
            project,
            args["type"],
            args["record_key"],
            args["updates"],
            validate_only=bool(args.get("validate_only", False)),
            actor=actor,
            expected_updated_at=args.get("expected_updated_at"),
        )
    except KeyError as exc:
        return _not_found(exc)
    except CardflowError as exc:
        return _rejected(exc)
    return _text(result)


async def _handle_get_card(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_engine, _resolve_project

    args = _parse_args(arguments, GetCardArgs)
    project = _resolve_project(args.get("project"))
    if project is None:
        return _missing_project()
    try:
        return _text(_get_engine().get_card(project, args["card_id"]))
    except KeyError as exc:
        return _not_found(exc)
    except CardflowError as exc:
        return _rejected(exc)


async def _handle_list_cards(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_engine, _resolve_project

    args = _parse_args(arguments, ListCardsArgs)
    project = _resolve_project(args.get("project"))
    if project is None:
        return _missing_project()
    try:
        cards = _get_engine().list_cards(
            project,
            args["type"],
            status=args.get("status"),
            sprint=args.get("sprint"),
            developer=args.get("developer"),
            year=args.get("year"),
        )
    except KeyError as exc:
        return _not_found(exc)
    except CardflowError as exc:
        return _rejected(exc)
    return _text(
        CardListResponse(
            projectId=project,
            type=args["type"],
            cards=[_slim_card(c) for c in cards],
            count=len(cards),
        )
    )


async def _handle_relate_cards(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_engine, _resolve_project

    args = _parse_args(arguments, RelateCardsArgs)
    actor, actor_err = _validate_actor(args.get("actor", "mcp"))
    if actor_err:
        return actor_err
    project = _resolve_project(args.get("project"))
    if project is None:
        return _missing_project()
    try:
        result = _get_engine().relate_cards(
            project,
            args["source_card_id"],
            args["target_card_id"],
            args["relation_type"],
            action=args.get("action", "add"),
            actor=actor,
        )
    except KeyError as exc:
        return _not_found(exc)
    except CardflowError as exc:
        return _rejected(exc)
    return _text(result)
