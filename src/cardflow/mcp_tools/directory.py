"""MCP tools for projects, developers, and stakeholders."""

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
    _text,
    _validate_actor,
    _validate_object,
)
from cardflow.projects import get_project, list_developers, list_projects, list_stakeholders, update_project
from cardflow.types.api import PeopleResponse
from cardflow.types.inputs import GetProjectArgs, ListPeopleArgs, UpdateProjectArgs

_PROJECT_FILTER = {"type": "string", "description": "Only members of this project (all people if omitted)"}
_PROJECT_PROPERTY = {"type": "string", "description": "Project ID (defaults to default_project in config.json)"}


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for directory tools."""
    tools = [
        Tool(
            name="list_developers",
            description="Active developers (dev_ IDs), sorted by name",
            inputSchema={"type": "object", "properties": {"project": _PROJECT_FILTER}},
        ),
        Tool(
            name="list_stakeholders",
            description="Active stakeholders (stk_ IDs), sorted by name. Validators are chosen from these.",
            inputSchema={"type": "object", "properties": {"project": _PROJECT_FILTER}},
        ),
        Tool(
            name="list_projects",
            description="All projects with their abbreviation and scoring system",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_project",
            description="Project settings: abbreviation, scoringSystem, members, defaultValidator",
            inputSchema={
                "type": "object",
                "properties": {"project": _PROJECT_PROPERTY},
            },
        ),
        Tool(
            name="update_project",
            description=(
                "Update project settings (description, version, repoUrl, scoringSystem, defaultValidator, ...). "
                "name, createdAt and createdBy are protected. A new version adds a changelog entry "
                "from changelogEntry."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "project": _PROJECT_PROPERTY,
                    "updates": {"type": "object", "description": "Fields to change"},
                    "actor": {"type": "string", "description": "Agent/user identity for audit trail"},
                },
                "required": ["updates"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "list_developers": _handle_list_developers,
        "list_stakeholders": _handle_list_stakeholders,
        "list_projects": _handle_list_projects,
        "get_project": _handle_get_project,
        "update_project": _handle_update_project,
    }
    return tools, handlers


async def _handle_list_developers(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_db

    args = _parse_args(arguments, ListPeopleArgs)
    try:
        people = list_developers(_get_db(), args.get("project"))
    except KeyError as exc:
        return _not_found(exc)
    return _text(PeopleResponse(projectId=args.get("project"), people=people))


async def _handle_list_stakeholders(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_db

    args = _parse_args(arguments, ListPeopleArgs)
    try:
        people = list_stakeholders(_get_db(), args.get("project"))
    except KeyError as exc:
        return _not_found(exc)
    return _text(PeopleResponse(projectId=args.get("project"), people=people))


async def _handle_list_projects(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_db

    return _text(list_projects(_get_db()))


async def _handle_get_project(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_db, _resolve_project

    args = _parse_args(arguments, GetProjectArgs)
    project = _resolve_project(args.get("project"))
    if project is None:
        return _missing_project()
    try:
        return _text(get_project(_get_db(), project))
    except KeyError as exc:
        return _not_found(exc)


async def _handle_update_project(arguments: dict[str, Any]) -> list[TextContent]:
    from cardflow.mcp_server import _get_db, _resolve_project

    args = _parse_args(arguments, UpdateProjectArgs)
    err = _validate_object(args.get("updates"), "updates")
    if err:
        return err
    actor, actor_err = _validate_actor(args.get("actor", "mcp"))
    if actor_err:
        return actor_err
    project = _resolve_project(args.get("project"))
    if project is None:
        return _missing_project()
    try:
        return _text(update_project(_get_db(), project, args["updates"], actor=actor))
    except KeyError as exc:
        return _not_found(exc)
    except CardflowError as exc:
        return _rejected(exc)
