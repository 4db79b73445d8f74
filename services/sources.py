"""Event sources that feed new readings into a monitoring session.

Both sources are async iterators of ``SensorReading``; the controller consumes
them the same way and only the ``persist`` flag differs.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Callable, Optional, Protocol, Set

from datastore.sensor_store import InsertSubscription
from models.records import SensorReading
from services.generator import ReadingGenerator


class ReadingSource(Protocol):
    persist: bool

    def __aiter__(self) -> AsyncIterator[SensorReading]:
        ...

    def close(self) -> None:
        ...


class IntervalSource:
    """Generates one reading every ``interval`` seconds from the latest known reading."""

    persist = True

    def __init__(
        self,
        generator: ReadingGenerator,
        mine_id: str,
        interval: float,
        latest: Callable[[], Optional[SensorReading]],
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive.")
        self.generator = generator
        self.mine_id = mine_id
        self.interval = interval
        self._latest = latest
        self._closed = False

    def __aiter__(self) -> "IntervalSource":
        return self

    async def __anext__(self) -> SensorReading:
        if self._closed:
            raise StopAsyncIteration
        await asyncio.sleep(self.interval)
        if self._closed:
            raise StopAsyncIteration
        return self.generator.generate(self._latest(), self.mine_id)

    def close(self) -> None:
        self._closed = True


class SubscriptionSource:
    """Readings pushed by the store as rows are inserted.

    Rows whose id is in ``skip_ids`` were already seen by the initial fetch
    and are dropped.
    """

    persist = False

    def __init__(
        self,
        subscription: InsertSubscription,
        skip_ids: Optional[Set[str]] = None,
    ) -> None:
        self.subscription = subscription
        self._skip_ids = set(skip_ids or ())

    def __aiter__(self) -> "SubscriptionSource":
        return self

    async def __anext__(self) -> SensorReading:
        while True:
            reading = await self.subscription.__anext__()
            if reading.id is None or reading.id not in self._skip_ids:
                return reading

    def close(self) -> None:
        self.subscription.close()
