"""Shared CLI helpers.

Provides ``get_store()``, ``get_engine()`` and project resolution so the
``cli_commands/*.py`` modules can reach them without circular imports.
"""

from __future__ import annotations

import json as json_mod
import sys
from typing import Any, NoReturn

import click

from cardflow.core import CARDFLOW_DIR_NAME, DocumentStore, find_cardflow_root, open_store, read_config
from cardflow.engine import CardEngine
from cardflow.errors import CardflowError
from cardflow.types.core import ProjectConfig
from cardflow.validation import sanitize_actor


def get_config() -> ProjectConfig:
    try:
        cardflow_dir = find_cardflow_root()
    except FileNotFoundError:
        click.echo(f"No {CARDFLOW_DIR_NAME}/ found. Run 'cardflow init' first.", err=True)
        sys.exit(1)
    return read_config(cardflow_dir)


def get_store() -> DocumentStore:
    """Discover .cardflow/ and return an initialized DocumentStore."""
    try:
        cardflow_dir = find_cardflow_root()
    except FileNotFoundError:
        click.echo(f"No {CARDFLOW_DIR_NAME}/ found. Run 'cardflow init' first.", err=True)
        sys.exit(1)
    return open_store(cardflow_dir)


def get_engine(store: DocumentStore) -> CardEngine:
    return CardEngine.from_config(store, get_config())


def resolve_project(project: str | None) -> str:
    """``--project`` if given, else ``default_project`` from config.json."""
    if project:
        return project
    default = get_config().get("default_project")
    if not default:
        click.echo("No project given and no default_project in config.json. Use --project.", err=True)
        sys.exit(1)
    return str(default)


def fail(error: CardflowError | KeyError | str, as_json: bool) -> NoReturn:
    """Report *error* on stderr (or as a JSON envelope on stdout) and exit 1."""
    if isinstance(error, CardflowError):
        envelope: dict[str, Any] = error.to_dict()
    elif isinstance(error, KeyError):
        envelope = {"error": str(error.args[0]) if error.args else "Not found", "code": "not_found"}
    else:
        envelope = {"error": error, "code": "validation_error"}
    if as_json:
        click.echo(json_mod.dumps(envelope, indent=2, default=str))
    else:
        click.echo(f"Error: {envelope['error']}", err=True)
    sys.exit(1)


def echo_json(data: Any) -> None:
    click.echo(json_mod.dumps(data, indent=2, default=str))


def parse_fields(field: tuple[str, ...], fields_json: str | None, as_json: bool) -> dict[str, Any]:
    """Merge ``--fields-json`` with repeated ``--field key=value`` options.

    Values that parse as JSON (numbers, booleans, lists) keep their JSON
    type; anything else is taken as a string.
    """
    fields: dict[str, Any] = {}
    if fields_json:
        try:
            loaded = json_mod.loads(fields_json)
        except json_mod.JSONDecodeError as e:
            fail(f"--fields-json is not valid JSON: {e}", as_json)
        if not isinstance(loaded, dict):
            fail("--fields-json must be a JSON object", as_json)
        fields.update(loaded)
    for f in field:
        if "=" not in f:
            fail(f"Invalid field format: {f} (expected key=value)", as_json)
        k, v = f.split("=", 1)
        try:
            fields[k] = json_mod.loads(v)
        except json_mod.JSONDecodeError:
            fields[k] = v
    return fields


def resolve_actor(ctx: click.Context) -> str:
    """``--actor`` if given, else the ``actor`` from config.json."""
    actor = (ctx.obj or {}).get("actor") or get_config().get("actor", "cardflow")
    cleaned, err = sanitize_actor(actor)
    if err:
        click.echo(f"Error: {err}", err=True)
        sys.exit(1)
    return cleaned
