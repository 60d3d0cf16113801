"""MCP server for the cardflow card engine.

Primary interface for agents. Direct SQLite, no daemon.
Exposes card lifecycle operations as MCP tools.

Usage:
    cardflow-mcp                              # Auto-discover .cardflow/ from cwd
    cardflow-mcp --project /path/to/project   # Explicit project root
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import GetPromptResult, Prompt, PromptMessage, TextContent, Tool

from cardflow.core import CARDFLOW_DIR_NAME, DocumentStore, find_cardflow_root, open_store, read_config
from cardflow.engine import CardEngine
from cardflow.lists import DEFAULT_TTL_SECONDS, TtlCache
from cardflow.mcp_tools import cards, directory, workflow
from cardflow.mcp_tools.common import _text
from cardflow.types.core import ProjectConfig

server = Server("cardflow")
db: DocumentStore | None = None
_cardflow_dir: Path | None = None
_config: ProjectConfig = {}
_logger: logging.Logger | None = None
# One vocabulary cache per process, shared by every engine instance.
_list_cache: TtlCache = TtlCache(DEFAULT_TTL_SECONDS)

_TOOLS: list[Tool] = []
_HANDLERS: dict[str, Callable[..., Any]] = {}
for _module in (cards, workflow, directory):
    _tools, _handlers = _module.register()
    _TOOLS.extend(_tools)
    _HANDLERS.update(_handlers)


def _get_db() -> DocumentStore:
    if db is None:
        msg = "Database not initialized"
        raise RuntimeError(msg)
    return db


def _get_engine() -> CardEngine:
    return CardEngine.from_config(_get_db(), _config, cache=_list_cache)


def _resolve_project(value: str | None) -> str | None:
    """Explicit project argument, else ``default_project`` from config.json."""
    if value:
        return value
    default = _config.get("default_project")
    return default if isinstance(default, str) and default else None


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_WORKFLOW_TEXT_STATIC = """\
# Cardflow Workflow

You are working in a project whose planning board is managed by **cardflow**.
Every card change is validated; a rejected change returns a structured error
with a `code` and the fields you need to fix.

## Quick start
1. Use `get_transition_rules` for the card type before changing a status
2. Use `get_available_transitions <card_id>` to see which statuses are reachable now
3. Use `update_card` with `validate_only=true` to get every violation at once
4. Apply the change with `update_card`; priority, sprint and startDate are derived

## Conventions
- Card IDs: `{PROJECT}-{TYPE}-{nnnn}` (e.g. `PLN-TSK-0001`)
- Developers are `dev_...`, stakeholders and validators are `stk_...`
- Task priority is calculated from businessPoints / devPoints: never set it directly
- Only the validator moves a task to Done&Validated: use To Validate instead
- Link cards with `relate_cards` (`related` both ways, or `blocks` / `blockedBy`)
"""


def _build_workflow_text() -> str:
    lines = [_WORKFLOW_TEXT_STATIC, "\n## Card Types\n"]
    for tpl in _get_engine().registry.list_types():
        states = " → ".join(s.name for s in tpl.states)
        lines.append(f"- **{tpl.type}** ({tpl.display_name}, `{tpl.abbreviation}`): {states}")
    return "\n".join(lines) + "\n"


@server.list_prompts()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_prompts() -> list[Prompt]:
    return [
        Prompt(
            name="cardflow-workflow",
            description="Cardflow rules and card types. Use at session start.",
        ),
    ]


@server.get_prompt()  # type: ignore[untyped-decorator,no-untyped-call]
async def get_workflow_prompt(name: str, arguments: dict[str, str] | None = None) -> GetPromptResult:
    if name != "cardflow-workflow":
        msg = f"Unknown prompt: {name}"
        raise ValueError(msg)
    text = _build_workflow_text() if db is not None else _WORKFLOW_TEXT_STATIC
    return GetPromptResult(
        description="Cardflow workflow guide",
        messages=[PromptMessage(role="user", content=TextContent(type="text", text=text))],
    )


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_tools() -> list[Tool]:
    return list(_TOOLS)


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    store = _get_db()
    handler = _HANDLERS.get(name)
    if handler is None:
        return _text({"error": f"Unknown tool: {name}", "code": "unknown_tool"})
    t0 = time.monotonic()

    try:
        result: list[TextContent] = await handler(arguments or {})
    except Exception:
        if _logger:
            _logger.error("tool_error", extra={"tool": name, "args_data": arguments}, exc_info=True)
        raise
    else:
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        if _logger:
            _logger.info("tool_call", extra={"tool": name, "args_data": arguments, "duration_ms": duration_ms})
        return result
    finally:
        # Writes commit inside their own transaction; anything still open
        # here belongs to a failed call.
        if store.conn.in_transaction:
            store.conn.rollback()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


async def _run(project_path: Path | None) -> None:
    global db, _cardflow_dir, _config, _logger, _list_cache

    if project_path:
        cardflow_dir = project_path / CARDFLOW_DIR_NAME
        if not cardflow_dir.is_dir():
            print(f"Error: {cardflow_dir} not found. Run 'cardflow init' first.", file=sys.stderr)
            sys.exit(1)
    else:
        try:
            cardflow_dir = find_cardflow_root()
        except FileNotFoundError:
            print(f"Error: No {CARDFLOW_DIR_NAME}/ found. Run 'cardflow init' first.", file=sys.stderr)
            sys.exit(1)

    _cardflow_dir = cardflow_dir
    _config = read_config(cardflow_dir)
    _list_cache = TtlCache(float(_config.get("list_cache_ttl", DEFAULT_TTL_SECONDS)))
    db = open_store(cardflow_dir)

    from cardflow.logging import setup_logging

    _logger = setup_logging(cardflow_dir)
    _logger.info("mcp_server_start", extra={"tool": "server", "args_data": {"project": str(cardflow_dir.parent)}})

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    import asyncio

    parser = argparse.ArgumentParser(description="Cardflow MCP server")
    parser.add_argument("--project", type=Path, default=None, help="Project root (auto-discovers .cardflow/ if omitted)")
    args = parser.parse_args()

    asyncio.run(_run(args.project))


if __name__ == "__main__":
    main()
