"""CLI commands for transition rules, available transitions, and sprints."""

from __future__ import annotations

import click

from cardflow.cli_common import echo_json, fail, get_engine, get_store, resolve_project
from cardflow.errors import CardflowError


@click.command()
@click.argument("card_type")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def rules(card_type: str, as_json: bool) -> None:
    """Show the status rules of CARD_TYPE."""
    with get_store() as store:
        try:
            data = get_engine(store).get_transition_rules(card_type)
        except CardflowError as e:
            fail(e, as_json)
    if as_json:
        echo_json(data)
        return
    click.echo(f"{data['type']} (initial: {data['initialStatus']})")
    if data["transitions"] is None:
        click.echo("  Any status may follow any other.")
    else:
        for source, targets in data["transitions"].items():
            click.echo(f"  {source} -> {', '.join(targets) or '(none)'}")
    if data["requiredToLeaveInitial"]:
        click.echo(f"  Required to leave {data['initialStatus']}: {', '.join(data['requiredToLeaveInitial'])}")
    for name, fields in data["requiredFieldsPerTransition"].items():
        if fields:
            click.echo(f"  {name}: {', '.join(fields)}")
    if data["validatorOnlyStatuses"]:
        click.echo(f"  Validator only: {', '.join(data['validatorOnlyStatuses'])}")


@click.command()
@click.argument("card_id")
@click.option("--project", "project_id", default=None, help="Project ID (default: config default_project)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def transitions(card_id: str, project_id: str | None, as_json: bool) -> None:
    """Show which statuses CARD_ID can move to now."""
    pid = resolve_project(project_id)
    with get_store() as store:
        engine = get_engine(store)
        try:
            card = engine.get_card(pid, card_id)
            data = engine.calculate_available_transitions(card)
        except (KeyError, CardflowError) as e:
            fail(e, as_json)
    if as_json:
        echo_json({"cardId": card_id, **data})
        return
    click.echo(f"{card_id} is {data['currentStatus']}")
    for target, option in data["perTargetStatus"].items():
        if option["allowed"]:
            click.echo(f"  ok   {target}")
        else:
            missing = ", ".join(option["missingFields"])
            click.echo(f"  no   {target}: {missing or option['reason']}")


@click.command()
@click.option("--project", "project_id", default=None, help="Project ID (default: config default_project)")
@click.option("--year", default=None, type=int, help="Only sprints of this year")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def sprints(project_id: str | None, year: int | None, as_json: bool) -> None:
    """List sprints, marking the active one."""
    pid = resolve_project(project_id)
    with get_store() as store:
        engine = get_engine(store)
        try:
            found = engine.list_sprints(pid, year=year)
            active = engine.get_active_sprint(pid)
        except KeyError as e:
            fail(e, as_json)
    active_key = active["recordKey"] if active else None
    if as_json:
        echo_json({"projectId": pid, "sprints": found, "active": active.get("cardId") if active else None})
        return
    if not found:
        click.echo("No sprints.")
    for s in found:
        marker = "*" if s["recordKey"] == active_key else " "
        click.echo(f"{marker} {s.get('cardId', ''):<16} {s.get('startDate', '?')}..{s.get('endDate', '?')}  {s.get('title', '')}")
