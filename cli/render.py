from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_LEVEL_COLORS = {
    "high": typer.colors.RED,
    "medium": typer.colors.YELLOW,
    "low": typer.colors.GREEN,
    "very_low": typer.colors.GREEN,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def echo_risk(probability: float, level: str) -> None:
    typer.secho(
        f"risk: {round(probability * 100)}% ({level.upper()})",
        fg=_LEVEL_COLORS.get(level),
    )


def render_mines(mines: List[Dict[str, Any]]) -> None:
    echo_heading("Mines")
    if not mines:
        typer.echo("No mines registered. Run `generate` first.")
        return
    for mine in mines:
        probability = mine.get("current_risk_probability") or 0.0
        typer.echo(
            f"  - {mine.get('name')} [{mine.get('id')}] "
            f"{mine.get('location')}, {mine.get('state')}: "
            f"{round(probability * 100)}% {str(mine.get('current_risk_level')).upper()}"
        )


def render_reading(reading: Dict[str, Any]) -> None:
    echo_key_values(
        [
            ("timestamp", reading.get("timestamp")),
            ("displacement", _fmt(reading.get("displacement"), "mm")),
            ("strain", _fmt(reading.get("strain"), "ue")),
            ("pore_pressure", _fmt(reading.get("pore_pressure"), "kPa")),
            ("rainfall", _fmt(reading.get("rainfall"), "mm")),
            ("temperature", _fmt(reading.get("temperature"), "C")),
            ("dem_slope", _fmt(reading.get("dem_slope"), "deg")),
            ("crack_score", _fmt(reading.get("crack_score"), "/10")),
        ]
    )


def render_readings(readings: List[Dict[str, Any]]) -> None:
    echo_heading("Readings")
    if not readings:
        typer.echo("No readings recorded.")
        return
    for reading in readings:
        typer.echo(
            f"  - {reading.get('timestamp')}: "
            f"disp={_fmt(reading.get('displacement'))} "
            f"strain={_fmt(reading.get('strain'))} "
            f"pp={_fmt(reading.get('pore_pressure'))} "
            f"rain={_fmt(reading.get('rainfall'))} "
            f"crack={_fmt(reading.get('crack_score'))}"
        )


def render_job_result(title: str, payload: Dict[str, Any]) -> None:
    echo_heading(title)
    echo_key_values(
        [
            ("success", payload.get("success")),
            ("message", payload.get("message")),
        ]
    )
    if "total_records" in payload:
        typer.echo(f"total_records: {payload['total_records']}")
    mines = payload.get("mines") or payload.get("synced_mines") or []
    if mines:
        typer.echo("mines:")
        for name in mines:
            typer.echo(f"  - {name}")
    failed = payload.get("failed_mines") or []
    if failed:
        typer.secho("failed_mines:", fg=typer.colors.RED)
        for name in failed:
            typer.echo(f"  - {name}")


def _fmt(value: Any, unit: str = "") -> str:
    if value is None:
        return "-"
    return f"{float(value):.2f}{unit}"
