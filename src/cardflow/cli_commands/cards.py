"""CLI commands for cards: create, update, show, list, relate."""

from __future__ import annotations

from typing import Any

import click

from cardflow.cli_common import echo_json, fail, get_engine, get_store, parse_fields, resolve_actor, resolve_project
from cardflow.errors import CardflowError


def _print_warnings(warnings: list[dict[str, str]]) -> None:
    for w in warnings:
        click.echo(f"  Warning [{w['code']}]: {w['message']}")


@click.command()
@click.argument("card_type")
@click.option("--project", "project_id", default=None, help="Project ID (default: config default_project)")
@click.option("--title", default=None, help="Card title")
@click.option("--field", "-f", multiple=True, help="Field as key=value; JSON values allowed (repeatable)")
@click.option("--fields-json", default=None, help="All fields as one JSON object")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create(
    ctx: click.Context,
    card_type: str,
    project_id: str | None,
    title: str | None,
    field: tuple[str, ...],
    fields_json: str | None,
    as_json: bool,
) -> None:
    """Create a card of CARD_TYPE (task, bug, epic, sprint, proposal, qa)."""
    fields = parse_fields(field, fields_json, as_json)
    if title is not None:
        fields["title"] = title
    pid = resolve_project(project_id)
    actor = resolve_actor(ctx)
    with get_store() as store:
        try:
            result = get_engine(store).create_card(pid, card_type, fields, actor=actor)
        except (KeyError, CardflowError) as e:
            fail(e, as_json)
    if as_json:
        echo_json(result)
        return
    click.echo(f"Created {result['cardId']}: {result['card'].get('title', '')}")
    click.echo(f"  Record key: {result['recordKey']}")
    for name, value in result["sideEffects"].items():
        click.echo(f"  Set {name}: {value}")
    _print_warnings(result["warnings"])
    if result.get("planAction") == "CREATE_PLAN":
        click.echo("Next: add an implementationPlan before starting work")


@click.command()
@click.argument("card_type")
@click.argument("record_key")
@click.option("--project", "project_id", default=None, help="Project ID (default: config default_project)")
@click.option("--status", default=None, help="New status")
@click.option("--field", "-f", multiple=True, help="Field as key=value; JSON values allowed (repeatable)")
@click.option("--fields-json", default=None, help="All changes as one JSON object")
@click.option("--validate-only", is_flag=True, help="Report every violation without writing")
@click.option("--expect-updated-at", default=None, help="Refuse the write if updatedAt differs")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def update(
    ctx: click.Context,
    card_type: str,
    record_key: str,
    project_id: str | None,
    status: str | None,
    field: tuple[str, ...],
    fields_json: str | None,
    validate_only: bool,
    expect_updated_at: str | None,
    as_json: bool,
) -> None:
    """Update the card RECORD_KEY of CARD_TYPE."""
    updates = parse_fields(field, fields_json, as_json)
    if status is not None:
        updates["status"] = status
    if not updates:
        fail("Nothing to update: pass --status, --field or --fields-json", as_json)
    pid = resolve_project(project_id)
    actor = resolve_actor(ctx)
    with get_store() as store:
        try:
            result = get_engine(store).update_card(
                pid,
                card_type,
                record_key,
                updates,
                validate_only=validate_only,
                actor=actor,
                expected_updated_at=expect_updated_at,
            )
        except (KeyError, CardflowError) as e:
            fail(e, as_json)
    if as_json:
        echo_json(result)
        if validate_only and not result["valid"]:
            ctx.exit(1)
        return
    if validate_only:
        _print_report(ctx, result)
        return
    click.echo(f"Updated {result['cardId']}: {', '.join(result['updatedFields'])}")
    for name, value in result["sideEffects"].items():
        click.echo(f"  Set {name}: {value}")
    _print_warnings(result["warnings"])


def _print_report(ctx: click.Context, report: dict[str, Any]) -> None:
    status = f"{report['currentStatus']} -> {report['targetStatus']}"
    if report["valid"]:
        click.echo(f"{report['cardId']}: valid ({status})")
        _print_warnings(report["warnings"])
        return
    click.echo(f"{report['cardId']}: {len(report['violations'])} violation(s) ({status})")
    for v in report["violations"]:
        click.echo(f"  [{v['kind']}] {v['message']}")
    ctx.exit(1)


@click.command()
@click.argument("card_id")
@click.option("--project", "project_id", default=None, help="Project ID (default: config default_project)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(card_id: str, project_id: str | None, as_json: bool) -> None:
    """Show card details."""
    pid = resolve_project(project_id)
    with get_store() as store:
        try:
            card = get_engine(store).get_card(pid, card_id)
        except (KeyError, CardflowError) as e:
            fail(e, as_json)
    if as_json:
        echo_json(card)
        return
    click.echo(f"{card['cardId']}: {card.get('title', '')}")
    click.echo(f"  Type: {card.get('cardType')}  Status: {card.get('status')}  Priority: {card.get('priority')}")
    for name in ("developer", "codeveloper", "validator", "epic", "sprint", "startDate", "devPoints", "businessPoints"):
        if card.get(name) not in (None, ""):
            click.echo(f"  {name}: {card[name]}")
    click.echo(f"  Record key: {card['recordKey']}")
    available = card.get("availableTransitions")
    if available:
        ready = [to for to, option in available["perTargetStatus"].items() if option["allowed"]]
        click.echo(f"  Can move to: {', '.join(ready) or '-'}")


@click.command("list")
@click.argument("card_type")
@click.option("--project", "project_id", default=None, help="Project ID (default: config default_project)")
@click.option("--status", default=None, help="Filter by status")
@click.option("--sprint", default=None, help="Filter by sprint ID")
@click.option("--developer", default=None, help="Filter by developer or codeveloper")
@click.option("--year", default=None, type=int, help="Filter by year")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_cmd(
    card_type: str,
    project_id: str | None,
    status: str | None,
    sprint: str | None,
    developer: str | None,
    year: int | None,
    as_json: bool,
) -> None:
    """List cards of CARD_TYPE."""
    pid = resolve_project(project_id)
    with get_store() as store:
        try:
            cards = get_engine(store).list_cards(pid, card_type, status=status, sprint=sprint, developer=developer, year=year)
        except (KeyError, CardflowError) as e:
            fail(e, as_json)
    if as_json:
        echo_json(cards)
        return
    if not cards:
        click.echo("No cards.")
    for c in cards:
        click.echo(f"{c.get('cardId', ''):<16} {c.get('status') or '-':<16} {c.get('title', '')}")


@click.command()
@click.argument("source_card_id")
@click.argument("target_card_id")
@click.option(
    "--type",
    "relation_type",
    type=click.Choice(["related", "blocks"]),
    default="related",
    help="related (both ways) or blocks (SOURCE blocks TARGET)",
)
@click.option("--remove", is_flag=True, help="Remove the link instead of adding it")
@click.option("--project", "project_id", default=None, help="Project ID (default: config default_project)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def relate(
    ctx: click.Context,
    source_card_id: str,
    target_card_id: str,
    relation_type: str,
    remove: bool,
    project_id: str | None,
    as_json: bool,
) -> None:
    """Link SOURCE_CARD_ID to TARGET_CARD_ID."""
    pid = resolve_project(project_id)
    actor = resolve_actor(ctx)
    with get_store() as store:
        try:
            result = get_engine(store).relate_cards(
                pid,
                source_card_id,
                target_card_id,
                relation_type,
                action="remove" if remove else "add",
                actor=actor,
            )
        except (KeyError, CardflowError) as e:
            fail(e, as_json)
    if as_json:
        echo_json(result)
        return
    click.echo(f"{result['message']}: {result['relation']}")
