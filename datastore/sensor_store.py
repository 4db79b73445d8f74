from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional, Protocol
from uuid import uuid4

from datastore.errors import PersistenceFailure
from models.records import Mine, MineType, RiskLevel, SensorReading
from settings import get_settings


class InsertSubscription:
    """Async iterator over readings inserted after the subscription was opened.

    Must be created on the event loop that will consume it; inserts from any
    thread are handed over with ``call_soon_threadsafe`` so arrival order is
    the store's insert order.
    """

    def __init__(
        self,
        mine_id: Optional[str],
        on_close: Callable[["InsertSubscription"], None],
    ) -> None:
        self.mine_id = mine_id
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[Optional[SensorReading]] = asyncio.Queue()
        self._on_close = on_close
        self.closed = False

    def matches(self, reading: SensorReading) -> bool:
        return self.mine_id is None or reading.mine_id == self.mine_id

    def deliver(self, reading: SensorReading) -> None:
        if self.closed or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, reading)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._on_close(self)
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, None)

    def __aiter__(self) -> "InsertSubscription":
        return self

    async def __anext__(self) -> SensorReading:
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item


class SensorStore(Protocol):
    def fetch_latest(self, mine_id: Optional[str], limit: int) -> List[SensorReading]:
        ...

    def insert(self, reading: SensorReading) -> SensorReading:
        ...

    def insert_many(self, readings: Iterable[SensorReading]) -> int:
        ...

    def subscribe_inserts(self, mine_id: Optional[str] = None) -> InsertSubscription:
        ...

    def upsert_mine_risk(
        self, mine_id: str, probability: float, level: RiskLevel, updated_at: datetime
    ) -> None:
        ...

    def list_mines(self) -> List[Mine]:
        ...

    def get_mine(self, mine_id: str) -> Optional[Mine]:
        ...

    def get_mine_by_name(self, name: str) -> Optional[Mine]:
        ...

    def create_mine(
        self,
        name: str,
        location: str,
        state: str,
        latitude: float,
        longitude: float,
        mine_type: MineType,
        current_risk_probability: float = 0.0,
    ) -> Mine:
        ...


class MockSensorStore:
    """In-process ``mines`` + ``sensor_data`` tables with optional JSON persistence."""

    def __init__(self, name: str = "sensor_store", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self._readings: List[SensorReading] = []
        self._mines: Dict[str, Mine] = {}
        self._subscriptions: List[InsertSubscription] = []
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def fetch_latest(self, mine_id: Optional[str] = None, limit: int = 50) -> List[SensorReading]:
        """Newest-first readings, optionally scoped to one mine."""
        if limit <= 0:
            raise ValueError("limit must be positive.")
        with self._lock:
            rows = [
                reading
                for reading in reversed(self._readings)
                if mine_id is None or reading.mine_id == mine_id
            ]
        # Stable sort keeps later inserts first among equal timestamps.
        rows.sort(key=lambda reading: reading.timestamp, reverse=True)
        return rows[:limit]

    def insert(self, reading: SensorReading) -> SensorReading:
        stored = reading if reading.id else reading.with_id(str(uuid4()))
        with self._lock:
            self._readings.append(stored)
            try:
                self._persist()
            except PersistenceFailure:
                self._readings.pop()
                raise
            for subscription in list(self._subscriptions):
                if subscription.matches(stored):
                    subscription.deliver(stored)
        return stored

    def insert_many(self, readings: Iterable[SensorReading]) -> int:
        batch = [reading if reading.id else reading.with_id(str(uuid4())) for reading in readings]
        if not batch:
            return 0
        with self._lock:
            self._readings.extend(batch)
            try:
                self._persist()
            except PersistenceFailure:
                del self._readings[-len(batch):]
                raise
            for subscription in list(self._subscriptions):
                for reading in batch:
                    if subscription.matches(reading):
                        subscription.deliver(reading)
        return len(batch)

    def subscribe_inserts(self, mine_id: Optional[str] = None) -> InsertSubscription:
        subscription = InsertSubscription(mine_id, on_close=self._unsubscribe)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def upsert_mine_risk(
        self, mine_id: str, probability: float, level: RiskLevel, updated_at: datetime
    ) -> None:
        with self._lock:
            mine = self._mines.get(mine_id)
            if mine is None:
                raise PersistenceFailure(f"Mine {mine_id!r} not found in store {self.name!r}.")
            self._mines[mine_id] = replace(
                mine,
                current_risk_probability=probability,
                current_risk_level=level,
                last_updated=updated_at,
            )
            try:
                self._persist()
            except PersistenceFailure:
                self._mines[mine_id] = mine
                raise

    def list_mines(self) -> List[Mine]:
        with self._lock:
            return [replace(mine) for mine in self._mines.values()]

    def get_mine(self, mine_id: str) -> Optional[Mine]:
        with self._lock:
            mine = self._mines.get(mine_id)
            return replace(mine) if mine is not None else None

    def get_mine_by_name(self, name: str) -> Optional[Mine]:
        with self._lock:
            for mine in self._mines.values():
                if mine.name == name:
                    return replace(mine)
        return None

    def create_mine(
        self,
        name: str,
        location: str,
        state: str,
        latitude: float,
        longitude: float,
        mine_type: MineType,
        current_risk_probability: float = 0.0,
    ) -> Mine:
        mine = Mine(
            id=str(uuid4()),
            name=name,
            location=location,
            state=state,
            latitude=latitude,
            longitude=longitude,
            mine_type=mine_type,
            current_risk_level=RiskLevel.low,
            current_risk_probability=current_risk_probability,
        )
        with self._lock:
            self._mines[mine.id] = mine
            try:
                self._persist()
            except PersistenceFailure:
                del self._mines[mine.id]
                raise
        return replace(mine)

    def _unsubscribe(self, subscription: InsertSubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            "mines": {mine_id: mine.to_dict() for mine_id, mine in self._mines.items()},
            "sensor_data": [reading.to_dict() for reading in self._readings],
        }
        try:
            self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))
        except OSError as exc:
            raise PersistenceFailure(
                f"Could not write store {self.name!r} to {self.persistence_path}."
            ) from exc

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for mine_id, payload in data.get("mines", {}).items():
            self._mines[mine_id] = Mine.from_dict(payload)
        self._readings = [SensorReading.from_dict(row) for row in data.get("sensor_data", [])]


@lru_cache
def build_default_store(path: Optional[str] = None) -> MockSensorStore:
    settings = get_settings()
    store_path = settings.store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return MockSensorStore(persistence_path=persistence)
