import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from datastore.errors import PersistenceFailure
from datastore.sensor_store import MockSensorStore
from models.records import MineType, RiskLevel, SensorReading

_BASE = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _reading(mine_id: str, minutes: int) -> SensorReading:
    return SensorReading(
        mine_id=mine_id,
        displacement=2.0,
        strain=140.0,
        pore_pressure=42.0,
        rainfall=4.0,
        temperature=23.0,
        dem_slope=15.0,
        crack_score=3.0,
        timestamp=_BASE + timedelta(minutes=minutes),
    )


def test_fetch_latest_is_newest_first_and_scoped() -> None:
    store = MockSensorStore()
    store.insert_many([_reading("mine-a", 2), _reading("mine-a", 0), _reading("mine-b", 5)])
    store.insert(_reading("mine-a", 1))

    rows = store.fetch_latest("mine-a", 10)

    assert [row.timestamp.minute for row in rows] == [2, 1, 0]
    assert all(row.id for row in rows)
    assert len(store.fetch_latest(None, 2)) == 2
    assert store.fetch_latest(None, 10)[0].mine_id == "mine-b"


def test_fetch_latest_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError):
        MockSensorStore().fetch_latest("mine-a", 0)


def test_store_persists_and_reloads(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    store = MockSensorStore(persistence_path=path)
    mine = store.create_mine("Goa Iron Ore", "Panaji", "Goa", 15.3, 74.1, MineType.iron_ore)
    store.insert(_reading(mine.id, 0))
    store.upsert_mine_risk(mine.id, 0.82, RiskLevel.high, _BASE)

    fresh = MockSensorStore(persistence_path=path)

    loaded = fresh.get_mine(mine.id)
    assert loaded is not None
    assert loaded.name == "Goa Iron Ore"
    assert loaded.mine_type is MineType.iron_ore
    assert loaded.current_risk_level is RiskLevel.high
    assert loaded.current_risk_probability == 0.82
    assert loaded.last_updated == _BASE
    (reading,) = fresh.fetch_latest(mine.id, 5)
    assert reading.timestamp == _BASE
    assert reading.strain == 140.0


def test_corrupt_store_file_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.write_text("{not json")

    store = MockSensorStore(persistence_path=path)

    assert store.list_mines() == []
    assert store.fetch_latest(None, 5) == []


def test_upsert_for_unknown_mine_fails() -> None:
    with pytest.raises(PersistenceFailure):
        MockSensorStore().upsert_mine_risk("missing", 0.5, RiskLevel.medium, _BASE)


def test_write_failure_rolls_back_the_insert(tmp_path: Path) -> None:
    # A directory where the JSON file should be makes every write fail.
    path = tmp_path / "store.json"
    path.mkdir()
    store = MockSensorStore(persistence_path=path)

    with pytest.raises(PersistenceFailure):
        store.insert(_reading("mine-a", 0))
    with pytest.raises(PersistenceFailure):
        store.insert_many([_reading("mine-a", 1), _reading("mine-a", 2)])

    assert store.fetch_latest(None, 10) == []


def test_write_failure_rolls_back_mine_changes(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    store = MockSensorStore(persistence_path=path)
    mine = store.create_mine("Jharia Coalfield", "Dhanbad", "Jharkhand", 23.8, 86.4, MineType.coal)
    # Replace the file with a directory so later writes fail.
    path.unlink()
    path.mkdir()

    with pytest.raises(PersistenceFailure):
        store.upsert_mine_risk(mine.id, 0.95, RiskLevel.high, _BASE)
    with pytest.raises(PersistenceFailure):
        store.create_mine("Korba Coalfield", "Korba", "Chhattisgarh", 22.4, 82.8, MineType.coal)

    unchanged = store.get_mine(mine.id)
    assert unchanged.current_risk_level is RiskLevel.low
    assert unchanged.current_risk_probability == 0.0
    assert unchanged.last_updated is None
    assert [existing.name for existing in store.list_mines()] == ["Jharia Coalfield"]


def test_returned_mines_are_copies() -> None:
    store = MockSensorStore()
    mine = store.create_mine("Korba Coalfield", "Korba", "Chhattisgarh", 22.4, 82.8, MineType.coal)

    store.get_mine(mine.id).name = "changed"

    assert store.get_mine(mine.id).name == "Korba Coalfield"
    assert store.get_mine_by_name("Korba Coalfield").id == mine.id
    assert store.get_mine_by_name("Unknown") is None


def test_subscription_receives_matching_inserts_in_order() -> None:
    store = MockSensorStore()

    async def scenario() -> list:
        subscription = store.subscribe_inserts("mine-a")
        store.insert(_reading("mine-a", 0))
        store.insert(_reading("mine-b", 1))
        store.insert_many([_reading("mine-a", 2), _reading("mine-a", 3)])
        subscription.close()
        store.insert(_reading("mine-a", 4))
        return [reading async for reading in subscription]

    received = asyncio.run(scenario())

    assert [reading.timestamp.minute for reading in received] == [0, 2, 3]
    assert all(reading.id for reading in received)
