from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import (
    echo_heading,
    echo_risk,
    render_job_result,
    render_mines,
    render_reading,
    render_readings,
)
from datastore.sensor_store import MockSensorStore
from models.records import RiskAssessment, SensorReading
from services.controller import Mode, SensorDataController, SessionSnapshot
from services.generator import ReadingGenerator
from services.risk import ThresholdBandModel, get_risk_model


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the rockfall monitor service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Monitor API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("mines")
def mines_command(ctx: typer.Context) -> None:
    """List mines with their current risk summary."""
    state = _get_state(ctx)
    render_mines(state.client.list_mines())


@app.command("readings")
def readings_command(
    ctx: typer.Context,
    mine_id: str = typer.Argument(..., help="Mine identifier."),
    limit: int = typer.Option(10, "--limit", "-n", min=1, max=500, help="Number of readings."),
) -> None:
    """Show the latest readings for a mine."""
    state = _get_state(ctx)
    render_readings(state.client.get_readings(mine_id, limit))


@app.command("score")
def score_command(
    ctx: typer.Context,
    mine_id: str = typer.Option("default-mine", "--mine-id", help="Mine identifier."),
    displacement: float = typer.Option(0.0, min=0, help="Displacement in mm."),
    strain: float = typer.Option(0.0, min=0, help="Strain in microstrain."),
    pore_pressure: float = typer.Option(0.0, min=0, help="Pore pressure in kPa."),
    rainfall: float = typer.Option(0.0, min=0, help="Rainfall in mm."),
    temperature: float = typer.Option(24.0, help="Temperature in degrees Celsius."),
    dem_slope: float = typer.Option(15.5, min=0, help="Slope in degrees."),
    crack_score: float = typer.Option(0.0, min=0, max=10, help="Crack score 0-10."),
    model: str = typer.Option(ThresholdBandModel.name, "--model", "-m", help="Risk model name."),
) -> None:
    """Score a reading through the service."""
    state = _get_state(ctx)
    reading = {
        "mine_id": mine_id,
        "displacement": displacement,
        "strain": strain,
        "pore_pressure": pore_pressure,
        "rainfall": rainfall,
        "temperature": temperature,
        "dem_slope": dem_slope,
        "crack_score": crack_score,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    payload = state.client.score(reading, model)
    echo_heading(f"Risk ({payload.get('model')})")
    echo_risk(float(payload.get("probability", 0.0)), str(payload.get("level")))


@app.command("generate")
def generate_command(ctx: typer.Context) -> None:
    """Create predefined mines, backfill their history and refresh mine risk."""
    state = _get_state(ctx)
    typer.echo(f"Generating mine data on {state.config.base_url} ...")
    render_job_result("Mine Data Generation", state.client.generate_mine_data())


@app.command("sync-weather")
def sync_weather_command(ctx: typer.Context) -> None:
    """Append one weather-blended reading per mine."""
    state = _get_state(ctx)
    render_job_result("Weather Synchronisation", state.client.sync_weather_data())


@app.command("monitor")
def monitor_command(
    mine_id: str = typer.Option("default-mine", "--mine-id", help="Mine identifier."),
    ticks: int = typer.Option(5, "--ticks", "-t", min=1, help="Number of updates to show."),
    interval: float = typer.Option(1.0, "--interval", min=0.001, help="Seconds between updates."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for reproducible readings."),
    model: str = typer.Option(ThresholdBandModel.name, "--model", "-m", help="Risk model name."),
) -> None:
    """Run a local simulated monitoring session and print each update."""
    try:
        risk_model = get_risk_model(model)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    async def run() -> None:
        updates: asyncio.Queue[SessionSnapshot] = asyncio.Queue()
        controller = SensorDataController(
            MockSensorStore(),
            mode=Mode.simulated,
            mine_id=mine_id,
            generator=ReadingGenerator(seed=seed),
            risk_model=risk_model,
            update_interval=interval,
            on_update=updates.put_nowait,
            on_critical=_echo_critical,
        )
        await controller.start()
        try:
            seeded = await updates.get()
            echo_heading(f"Session ready: {len(seeded.readings)} historical readings")
            _render_snapshot(seeded)
            for _ in range(ticks):
                _render_snapshot(await updates.get())
        finally:
            await controller.stop()

    asyncio.run(run())


def _render_snapshot(snapshot: SessionSnapshot) -> None:
    typer.echo()
    if snapshot.current_reading is not None:
        render_reading(snapshot.current_reading.to_dict())
    if snapshot.risk is not None:
        echo_risk(snapshot.risk.probability, snapshot.risk.level.value)


def _echo_critical(mine_id: str, risk: RiskAssessment, reading: SensorReading) -> None:
    typer.secho(
        f"CRITICAL: {mine_id} at {round(risk.probability * 100)}% risk",
        fg=typer.colors.RED,
        bold=True,
        err=True,
    )
