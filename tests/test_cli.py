from __future__ import annotations

from typing import Any, Dict, List

import pytest
from typer.testing import CliRunner

from cli.app import app


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.score_calls: List[tuple[Dict[str, Any], str]] = []
        self.readings_calls: List[tuple[str, int]] = []
        self.closed = False

    def list_mines(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": "mine-1",
                "name": "Jharia Coalfield",
                "location": "Dhanbad",
                "state": "Jharkhand",
                "current_risk_probability": 0.42,
                "current_risk_level": "medium",
            }
        ]

    def get_readings(self, mine_id: str, limit: int) -> List[Dict[str, Any]]:
        self.readings_calls.append((mine_id, limit))
        return [
            {
                "mine_id": mine_id,
                "timestamp": "2024-06-01T12:00:00+00:00",
                "displacement": 2.5,
                "strain": 150.0,
                "pore_pressure": 45.0,
                "rainfall": 5.0,
                "crack_score": 3.0,
            }
        ]

    def score(self, reading: Dict[str, Any], model: str) -> Dict[str, Any]:
        self.score_calls.append((reading, model))
        return {"probability": 0.75, "level": "high", "model": model}

    def generate_mine_data(self) -> Dict[str, Any]:
        return {
            "success": True,
            "message": "Generated sensor data for 2 mines",
            "total_records": 600,
            "mines": ["Jharia Coalfield", "Korba Coalfield"],
            "failed_mines": [],
        }

    def sync_weather_data(self) -> Dict[str, Any]:
        return {
            "success": True,
            "message": "Weather data synchronized for 1 mines",
            "timestamp": "2024-06-01T12:00:00+00:00",
            "synced_mines": ["Jharia Coalfield"],
            "failed_mines": ["Korba Coalfield"],
        }

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def stub(monkeypatch) -> StubClient:
    client = StubClient(config=None)

    def factory(config):
        client.config = config
        return client

    monkeypatch.setattr("cli.app.ApiClient", factory)
    return client


def test_mines_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["mines"])

    assert result.exit_code == 0
    assert "Jharia Coalfield [mine-1] Dhanbad, Jharkhand: 42% MEDIUM" in result.stdout
    assert stub.closed is True


def test_readings_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["readings", "mine-1", "--limit", "3"])

    assert result.exit_code == 0
    assert stub.readings_calls == [("mine-1", 3)]
    assert "disp=2.50" in result.stdout
    assert "strain=150.00" in result.stdout


def test_score_command_sends_reading_and_model(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(
        app,
        ["score", "--displacement", "6", "--strain", "220", "--model", "weighted_fraction"],
    )

    assert result.exit_code == 0
    ((reading, model),) = stub.score_calls
    assert model == "weighted_fraction"
    assert reading["displacement"] == 6.0
    assert reading["strain"] == 220.0
    assert reading["mine_id"] == "default-mine"
    assert "risk: 75% (HIGH)" in result.stdout


def test_generate_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["--base-url", "http://monitor:9000/", "generate"])

    assert result.exit_code == 0
    assert stub.config.base_url == "http://monitor:9000"
    assert "Generating mine data on http://monitor:9000" in result.stdout
    assert "Mine Data Generation" in result.stdout
    assert "total_records: 600" in result.stdout
    assert "Korba Coalfield" in result.stdout


def test_sync_weather_command_lists_failures(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["sync-weather"])

    assert result.exit_code == 0
    assert "Weather Synchronisation" in result.stdout
    assert "failed_mines:" in result.stdout
    assert "Korba Coalfield" in result.stdout


def test_monitor_runs_local_session(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(
        app, ["monitor", "--ticks", "2", "--interval", "0.01", "--seed", "3"]
    )

    assert result.exit_code == 0
    assert "Session ready: 25 historical readings" in result.stdout
    assert result.stdout.count("risk:") == 3
    assert "displacement:" in result.stdout


def test_monitor_rejects_unknown_model(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["monitor", "--model", "linear"])

    assert result.exit_code != 0
