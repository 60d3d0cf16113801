"""CLI commands for projects, people, and vocabulary lists."""

from __future__ import annotations

import click

from cardflow.cli_common import echo_json, fail, get_engine, get_store, parse_fields, resolve_actor, resolve_project
from cardflow.errors import CardflowError
from cardflow.lists import LIST_PATHS, seed_default_lists
from cardflow.priority import SCALES
from cardflow.projects import (
    add_developer,
    add_stakeholder,
    create_project,
    get_project,
    list_developers,
    list_projects,
    list_stakeholders,
    set_default_validator,
    update_project,
)

# ---------------------------------------------------------------------------
# project
# ---------------------------------------------------------------------------


@click.group()
def project() -> None:
    """Manage projects."""


@project.command("create")
@click.argument("project_id")
@click.option("--name", required=True, help="Display name")
@click.option("--abbreviation", required=True, help="Card ID prefix (2-6 letters/digits)")
@click.option("--scoring", type=click.Choice(sorted(SCALES)), default="1-5", help="Point scale")
@click.option("--default-validator", default=None, help="Fallback validator (stk_ id)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def project_create(
    project_id: str,
    name: str,
    abbreviation: str,
    scoring: str,
    default_validator: str | None,
    as_json: bool,
) -> None:
    """Create a project."""
    with get_store() as store:
        try:
            record = create_project(
                store,
                project_id,
                name=name,
                abbreviation=abbreviation,
                scoring_system=scoring,
                default_validator=default_validator,
            )
        except CardflowError as e:
            fail(e, as_json)
    if as_json:
        echo_json(record)
    else:
        click.echo(f"Created project {project_id} ({record['abbreviation']}, scale {scoring})")


@project.command("show")
@click.argument("project_id", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def project_show(project_id: str | None, as_json: bool) -> None:
    """Show project settings."""
    pid = resolve_project(project_id)
    with get_store() as store:
        try:
            record = get_project(store, pid)
        except KeyError as e:
            fail(e, as_json)
    if as_json:
        echo_json(record)
        return
    click.echo(f"{pid}: {record.get('name', '')}")
    click.echo(f"  Abbreviation: {record.get('abbreviation', '')}")
    click.echo(f"  Scoring: {record.get('scoringSystem', '1-5')}")
    click.echo(f"  Default validator: {record.get('defaultValidator') or '-'}")
    click.echo(f"  Developers: {', '.join(record.get('developers') or []) or '-'}")
    click.echo(f"  Stakeholders: {', '.join(record.get('stakeholders') or []) or '-'}")


@project.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def project_list(as_json: bool) -> None:
    """List projects."""
    with get_store() as store:
        projects = list_projects(store)
    if as_json:
        echo_json(projects)
        return
    if not projects:
        click.echo("No projects.")
    for p in projects:
        click.echo(f"{p['projectId']:<16} {p.get('abbreviation', ''):<8} {p.get('name', '')}")


@project.command("set-validator")
@click.argument("stakeholder_id")
@click.option("--project", "project_id", default=None, help="Project ID (default: config default_project)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def project_set_validator(stakeholder_id: str, project_id: str | None, as_json: bool) -> None:
    """Set the project's fallback validator."""
    pid = resolve_project(project_id)
    with get_store() as store:
        try:
            record = set_default_validator(store, pid, stakeholder_id)
        except (KeyError, CardflowError) as e:
            fail(e, as_json)
    if as_json:
        echo_json(record)
    else:
        click.echo(f"Default validator for {pid}: {stakeholder_id}")


@project.command("update")
@click.option("--project", "project_id", default=None, help="Project ID (default: config default_project)")
@click.option("--field", "-f", multiple=True, help="Setting as key=value; JSON values allowed (repeatable)")
@click.option("--fields-json", default=None, help="All changes as one JSON object")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def project_update(
    ctx: click.Context,
    project_id: str | None,
    field: tuple[str, ...],
    fields_json: str | None,
    as_json: bool,
) -> None:
    """Update project settings (a new version adds a changelog entry)."""
    updates = parse_fields(field, fields_json, as_json)
    if not updates:
        fail("Nothing to update: pass --field or --fields-json", as_json)
    pid = resolve_project(project_id)
    actor = resolve_actor(ctx)
    with get_store() as store:
        try:
            record = update_project(store, pid, updates, actor=actor)
        except (KeyError, CardflowError) as e:
            fail(e, as_json)
    if as_json:
        echo_json(record)
    else:
        click.echo(f"Updated project {pid}: {', '.join(sorted(updates))}")


# ---------------------------------------------------------------------------
# developer / stakeholder
# ---------------------------------------------------------------------------


def _print_people(people: list[dict[str, object]], as_json: bool) -> None:
    if as_json:
        echo_json(people)
        return
    if not people:
        click.echo("Nobody found.")
    for p in people:
        click.echo(f"{p['id']:<20} {p.get('name', '')} <{p.get('email', '')}>")


@click.group()
def developer() -> None:
    """Manage developers (dev_ IDs)."""


@developer.command("add")
@click.argument("developer_id")
@click.option("--name", required=True, help="Display name")
@click.option("--email", required=True, help="Contact email (identity used for validator matching)")
@click.option("--project", "project_id", default=None, help="Also add to this project's developers")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def developer_add(developer_id: str, name: str, email: str, project_id: str | None, as_json: bool) -> None:
    """Add a developer."""
    with get_store() as store:
        try:
            record = add_developer(store, developer_id, name=name, email=email, project_id=project_id)
        except (KeyError, CardflowError) as e:
            fail(e, as_json)
    if as_json:
        echo_json(record)
    else:
        click.echo(f"Added developer {developer_id}")


@developer.command("list")
@click.option("--project", "project_id", default=None, help="Only members of this project")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def developer_list(project_id: str | None, as_json: bool) -> None:
    """List active developers."""
    with get_store() as store:
        try:
            people = list_developers(store, project_id)
        except KeyError as e:
            fail(e, as_json)
    _print_people(people, as_json)


@click.group()
def stakeholder() -> None:
    """Manage stakeholders (stk_ IDs)."""


@stakeholder.command("add")
@click.argument("stakeholder_id")
@click.option("--name", required=True, help="Display name")
@click.option("--email", required=True, help="Contact email (identity used for validator matching)")
@click.option("--project", "project_id", default=None, help="Also add to this project's stakeholders")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def stakeholder_add(stakeholder_id: str, name: str, email: str, project_id: str | None, as_json: bool) -> None:
    """Add a stakeholder."""
    with get_store() as store:
        try:
            record = add_stakeholder(store, stakeholder_id, name=name, email=email, project_id=project_id)
        except (KeyError, CardflowError) as e:
            fail(e, as_json)
    if as_json:
        echo_json(record)
    else:
        click.echo(f"Added stakeholder {stakeholder_id}")


@stakeholder.command("list")
@click.option("--project", "project_id", default=None, help="Only members of this project")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def stakeholder_list(project_id: str | None, as_json: bool) -> None:
    """List active stakeholders."""
    with get_store() as store:
        try:
            people = list_stakeholders(store, project_id)
        except KeyError as e:
            fail(e, as_json)
    _print_people(people, as_json)


# ---------------------------------------------------------------------------
# lists
# ---------------------------------------------------------------------------


@click.group()
def lists() -> None:
    """Inspect and seed controlled vocabularies."""


@lists.command("show")
@click.argument("kind", type=click.Choice(sorted(LIST_PATHS)))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def lists_show(kind: str, as_json: bool) -> None:
    """Show the values of one list, in order."""
    with get_store() as store:
        try:
            entries = get_engine(store).lists.pairs(kind)
        except CardflowError as e:
            fail(e, as_json)
    if as_json:
        echo_json({"kind": kind, "values": [e["text"] for e in entries], "entries": entries})
        return
    for entry in entries:
        click.echo(f"{entry['order']!s:>4}  {entry['text']}")


@lists.command("seed")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def lists_seed(as_json: bool) -> None:
    """Write the default vocabularies (existing lists are kept)."""
    with get_store() as store:
        seeded = seed_default_lists(store)
    if as_json:
        echo_json({"seeded": seeded})
    else:
        click.echo(f"Seeded: {', '.join(seeded)}" if seeded else "All lists already present.")
