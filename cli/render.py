from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_CASE_COLORS = {
    "NO_CHANGE": typer.colors.GREEN,
    "LOST_COMPATIBLE_UNITS": typer.colors.YELLOW,
    "LOST_DEFAULT_GRAPHIC_UNIT": typer.colors.MAGENTA,
    "NO_COMPATIBLE_UNITS": typer.colors.RED,
}

_DECISION_COLORS = {
    "apply": typer.colors.GREEN,
    "confirm": typer.colors.YELLOW,
    "cancel": typer.colors.RED,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_units(title: str, unit_ids: List[int]) -> None:
    echo_heading(title)
    if unit_ids:
        typer.echo(", ".join(str(unit_id) for unit_id in unit_ids))
    else:
        typer.echo("No compatible units.")


def render_options(options: List[Dict[str, Any]]) -> None:
    echo_heading("Menu Options")
    if not options:
        typer.echo("No options available.")
        return
    for option in options:
        case = option.get("change_case")
        marker = " (disabled)" if option.get("disabled") else ""
        typer.secho(
            f"  - [{option.get('id')}] {option.get('label')}: {case}{marker}",
            fg=_CASE_COLORS.get(case),
        )


def render_plan(plan: Dict[str, Any]) -> None:
    echo_heading("Change Plan")
    decision = plan.get("decision")
    typer.secho(f"decision: {decision}", fg=_DECISION_COLORS.get(decision))
    if plan.get("reason"):
        typer.echo(f"reason: {plan['reason']}")
    for outcome in plan.get("outcomes") or []:
        update = outcome.get("default_graphic_unit_update")
        suffix = f" -> default unit {update}" if update is not None else ""
        typer.secho(
            f"  - group {outcome.get('group_id')}: {outcome.get('change_case')}{suffix}",
            fg=_CASE_COLORS.get(outcome.get("change_case")),
        )


def render_commit(payload: Dict[str, Any]) -> None:
    render_plan(payload.get("plan") or {})
    typer.echo()
    echo_key_values(
        [
            ("committed", payload.get("committed")),
            ("updated_groups", ", ".join(map(str, payload.get("updated_groups") or [])) or "none"),
        ]
    )
