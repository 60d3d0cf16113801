"""MCP tools for transition rules, sprints, and controlled vocabularies."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from cardflow.errors import CardflowError
from cardflow.lists import LIST_PATHS
from cardflow.mcp_tools.common import _missing_project, _not_found, _parse_args, _rejected, _text
from cardflow.types.api import CacheInvalidatedResponse, ErrorResponse, ListValuesResponse, SprintListResponse
from cardflow.types.inputs import (
    GetActiveSprintArgs,
    GetAvailableTransitionsArgs,
    GetListValuesArgs,
    GetTransitionRulesArgs,
    InvalidateListCacheArgs,
    ListSprintsArgs,
)

_PROJECT_PROPERTY = {"type": "string", "description": "Project ID (defaults to default_project in config.json)"}
_LIST_KINDS = sorted(LIST_PATHS)


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for workflow tools."""
    tools = [
        Tool(
            name="get_transition_rules",
            description="Status tables, per-transition required fields, gates and valid statuses for a card type",
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {"type": "string", "description": "Card type: task, bug, epic, sprint, proposal, qa"},
                },
                "required": ["type"],
            },
        ),
        Tool(
            name="get_available_transitions",
            description="For each status: whether the card could move there now and which fields are missing",
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
            name="list_sprints",
            description="List sprints of a project, flagging the active one",
            inputSchema={
                "type": "object",
                "properties": {
                    "project": _PROJECT_PROPERTY,
                    "year": {"type": "integer", "description": "Only sprints of this year"},
                },
            },
        ),
        Tool(
            name="get_active_sprint",
            description="The sprint tasks are attached to when they leave To Do without a sprint",
            inputSchema={"type": "object", "properties": {"project": _PROJECT_PROPERTY}},
        ),
        Tool(
            name="get_list_values",
            description="Current values of a controlled vocabulary list (cached)",
            inputSchema={
                "type": "object",
                "properties": {
                    "kind": {"type": "string", "enum": _LIST_KINDS, "description": "List kind"},
                },
                "required": ["kind"],
            },
        ),
        Tool(
            name="invalidate_list_cache",
            description="Drop cached vocabulary lists so the next read hits the store",
            inputSchema={
                "type": "object",
                "properties": {
                    "kind": {"type": "string", "enum": _LIST_KINDS, "description": "List kind (all lists if omitted)"},
                },
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "get_transition_rules": _handle_get_transition_rules,
        "get_available_transitions": _handle_get_available_transitions,
        "list_sprints": _handle_list_sprints,
        "get_active_sprint": _handle_get_active_sprint,
        "get_list_values": _handle_get_list_values,
        "invalidate_list_cache": _handle_invalidate_list_cache,
    }
    return tools, handlers


async def _handle_get_transition_rules(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_engine

    args = _parse_args(arguments, GetTransitionRulesArgs)
    try:
        return _text(_get_engine().get_transition_rules(args["type"]))
    except CardflowError as exc:
        return _rejected(exc)


async def _handle_get_available_transitions(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_engine, _resolve_project

    args = _parse_args(arguments, GetAvailableTransitionsArgs)
    project = _resolve_project(args.get("project"))
    if project is None:
        return _missing_project()
    engine = _get_engine()
    try:
        card = engine.get_card(project, args["card_id"])
        result = engine.calculate_available_transitions(card)
    except KeyError as exc:
        return _not_found(exc)
    except CardflowError as exc:
        return _rejected(exc)
    return _text({"cardId": card["cardId"], **result})


async def _handle_list_sprints(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_engine, _resolve_project

    args = _parse_args(arguments, ListSprintsArgs)
    project = _resolve_project(args.get("project"))
    if project is None:
        return _missing_project()
    engine = _get_engine()
    try:
        sprints = engine.list_sprints(project, year=args.get("year"))
        active = engine.get_active_sprint(project)
    except KeyError as exc:
        return _not_found(exc)
    return _text(
        SprintListResponse(
            projectId=project,
            sprints=sprints,
            active=(active.get("cardId") or active["recordKey"]) if active else None,
        )
    )


async def _handle_get_active_sprint(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_engine, _resolve_project

    args = _parse_args(arguments, GetActiveSprintArgs)
    project = _resolve_project(args.get("project"))
    if project is None:
        return _missing_project()
    try:
        active = _get_engine().get_active_sprint(project)
    except KeyError as exc:
        return _not_found(exc)
    if active is None:
        return _text(ErrorResponse(error=f"No active sprint in project {project}", code="not_found"))
    return _text(active)


async def _handle_get_list_values(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_engine

    args = _parse_args(arguments, GetListValuesArgs)
    try:
        entries = _get_engine().lists.pairs(args["kind"])
    except CardflowError as exc:
        return _rejected(exc)
    return _text(
        ListValuesResponse(
            kind=args["kind"],
            values=[e["text"] for e in entries],
            entries=[dict(e) for e in entries],
        )
    )


async def _handle_invalidate_list_cache(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_engine

    args = _parse_args(arguments, InvalidateListCacheArgs)
    kind = args.get("kind")
    try:
        _get_engine().lists.invalidate(kind)
    except CardflowError as exc:
        return _rejected(exc)
    return _text(CacheInvalidatedResponse(status="invalidated", kind=kind))
