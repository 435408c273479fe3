from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import echo_key_values, render_commit, render_options, render_plan, render_units


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


class MenuKind(str, Enum):
    meter = "meter"
    group = "group"


app = typer.Typer(
    help="Utilities for interacting with the unit compatibility service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("unit")
def unit_command(
    ctx: typer.Context,
    unit_id: int = typer.Argument(..., help="Unit id."),
) -> None:
    """Show the units compatible with a unit."""
    state = _get_state(ctx)
    render_units(f"Units compatible with unit {unit_id}", state.client.units_for_unit(unit_id))


@app.command("meters")
def meters_command(
    ctx: typer.Context,
    meter_ids: List[int] = typer.Argument(..., help="Meter ids."),
) -> None:
    """Show the units compatible with every given meter."""
    state = _get_state(ctx)
    label = ", ".join(map(str, meter_ids))
    render_units(f"Units compatible with meters {label}", state.client.units_for_meters(meter_ids))


@app.command("group")
def group_command(
    ctx: typer.Context,
    group_id: int = typer.Argument(..., help="Group id."),
) -> None:
    """Show the units compatible with a group's deep meters."""
    state = _get_state(ctx)
    render_units(f"Units compatible with group {group_id}", state.client.units_for_group(group_id))


@app.command("options")
def options_command(
    ctx: typer.Context,
    group_id: int = typer.Argument(..., help="Group being edited."),
    kind: MenuKind = typer.Option(MenuKind.meter, "--kind", "-k", help="Which menu to show."),
) -> None:
    """Show the meter or group menu for editing a group."""
    state = _get_state(ctx)
    render_options(state.client.menu_options(group_id, kind.value))


@app.command("load-hierarchy")
def load_hierarchy_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Hierarchy JSON file."),
) -> None:
    """Replace the units, meters and groups."""
    state = _get_state(ctx)
    summary = state.client.load_hierarchy(file)
    typer.secho("Hierarchy loaded.", fg=typer.colors.GREEN)
    echo_key_values(summary.items())


@app.command("load-array")
def load_array_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Conversion array JSON file."),
) -> None:
    """Load the precomputed conversion array."""
    state = _get_state(ctx)
    status = state.client.load_conversion_array(file)
    typer.secho("Conversion array loaded.", fg=typer.colors.GREEN)
    echo_key_values(status.items())


@app.command("change")
def change_command(
    ctx: typer.Context,
    group_id: int = typer.Argument(..., help="Group being edited."),
    add_meter: List[int] = typer.Option([], "--add-meter", help="Meter to add (repeatable)."),
    remove_meter: List[int] = typer.Option([], "--remove-meter", help="Meter to remove (repeatable)."),
    add_group: List[int] = typer.Option([], "--add-group", help="Group to add (repeatable)."),
    remove_group: List[int] = typer.Option([], "--remove-group", help="Group to remove (repeatable)."),
    default_unit: Optional[int] = typer.Option(None, "--default-unit", help="New default graphic unit."),
    commit: bool = typer.Option(False, "--commit/--dry-run", help="Commit the default unit updates."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Accept warnings without prompting."),
) -> None:
    """Preview, and optionally commit, a group edit."""
    state = _get_state(ctx)
    change = {
        "add_meters": add_meter,
        "remove_meters": remove_meter,
        "add_groups": add_group,
        "remove_groups": remove_group,
        "default_graphic_unit": default_unit,
    }
    plan = state.client.plan_change(group_id, change)
    render_plan(plan)

    if not commit:
        return

    decision = plan.get("decision")
    if decision == "cancel":
        typer.secho("Change cancelled; nothing committed.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    confirmed = yes
    if decision == "confirm" and not confirmed:
        confirmed = typer.confirm("Some groups lose compatible units. Continue?")
        if not confirmed:
            typer.echo("Aborted.")
            return

    typer.echo()
    render_commit(state.client.commit_change(group_id, change, confirmed=confirmed))
