"""CLI for the cardflow card engine.

Convention-based: discovers .cardflow/ by walking up from cwd.

Usage:
    cardflow init --project PLN --abbreviation PLN      # Initialize .cardflow/ in cwd
    cardflow project create PLN --name Planning --abbreviation PLN
    cardflow stakeholder add stk_ana --name Ana --email ana@x.io --project PLN
    cardflow create task --field title="Login" --fields-json '{...}'
    cardflow update task <recordKey> --field status="In Progress" --validate-only
    cardflow show PLN-TSK-0001                          # Show card details
    cardflow list task --status "To Do"                 # List cards
    cardflow rules task                                 # Transition rules
    cardflow transitions PLN-TSK-0001                   # Reachable statuses now
    cardflow serve                                      # JSON HTTP API
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from cardflow import __version__
from cardflow.cli_commands import admin, cards, server, workflow
from cardflow.core import CARDFLOW_DIR_NAME, DB_FILENAME, open_store, write_config
from cardflow.errors import CardflowError
from cardflow.lists import seed_default_lists
from cardflow.projects import create_project


@click.group()
@click.version_option(version=__version__, prog_name="cardflow")
@click.option("--actor", default=None, help="Actor identity for audit trail (default: config actor)")
@click.pass_context
def cli(ctx: click.Context, actor: str | None) -> None:
    """Cardflow: validated card lifecycle for sprint boards."""
    ctx.ensure_object(dict)
    ctx.obj["actor"] = actor


@cli.command()
@click.option("--project", "project_id", default=None, help="Create this project and make it the default")
@click.option("--name", default=None, help="Project display name (default: project id)")
@click.option("--abbreviation", default=None, help="Card ID prefix, 2-6 letters/digits (default: project id)")
def init(project_id: str | None, name: str | None, abbreviation: str | None) -> None:
    """Initialize .cardflow/ in the current directory."""
    cwd = Path.cwd()
    cardflow_dir = cwd / CARDFLOW_DIR_NAME

    if cardflow_dir.exists():
        click.echo(f"{CARDFLOW_DIR_NAME}/ already exists in {cwd}")
        # Still ensure the schema and vocabularies exist
        with open_store(cardflow_dir) as store:
            seed_default_lists(store)
        return

    cardflow_dir.mkdir()
    config: dict[str, object] = {"version": 1, "actor": "cardflow"}
    if project_id:
        config["default_project"] = project_id
    write_config(cardflow_dir, config)

    with open_store(cardflow_dir) as store:
        seeded = seed_default_lists(store)
        if project_id:
            try:
                create_project(store, project_id, name=name or project_id, abbreviation=abbreviation or project_id)
            except CardflowError as e:
                click.echo(f"Error: {e}", err=True)
                sys.exit(1)

    click.echo(f"Initialized {CARDFLOW_DIR_NAME}/ in {cwd}")
    click.echo(f"  Database: {cardflow_dir / DB_FILENAME}")
    click.echo(f"  Lists seeded: {', '.join(seeded) or 'none'}")
    if project_id:
        click.echo(f"  Default project: {project_id}")
    click.echo("\nNext: cardflow stakeholder add")


cli.add_command(admin.project)
cli.add_command(admin.developer)
cli.add_command(admin.stakeholder)
cli.add_command(admin.lists)
cli.add_command(cards.create)
cli.add_command(cards.update)
cli.add_command(cards.show)
cli.add_command(cards.list_cmd)
cli.add_command(cards.relate)
cli.add_command(workflow.rules)
cli.add_command(workflow.transitions)
cli.add_command(workflow.sprints)
cli.add_command(server.serve)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
