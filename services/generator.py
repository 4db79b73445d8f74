"""Synthetic sensor reading generation."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from models.records import SensorReading


@dataclass(frozen=True)
class Baseline:
    displacement: float = 2.5
    strain: float = 150.0
    pore_pressure: float = 45.0
    rainfall: float = 5.0
    temperature: float = 24.0
    dem_slope: float = 15.5
    crack_score: float = 3.0


NORMAL_BASELINE = Baseline()

# Full width of the uniform noise applied per tick, i.e. +-half of each value.
DISPLACEMENT_SPAN = 0.8
STRAIN_SPAN = 30.0
PORE_PRESSURE_SPAN = 8.0
RAINFALL_SPAN = 15.0
RAINFALL_BIAS = 0.3
TEMPERATURE_SPAN = 4.0
SLOPE_SPAN = 0.5
CRACK_SPAN = 2.0

_MIN_STEP = timedelta(microseconds=1)


def mine_seed(mine_id: str) -> int:
    """Stable per-mine seed: sum of character codes modulo 1000."""
    return sum(ord(char) for char in mine_id) % 1000


def mine_baseline(mine_id: str) -> Baseline:
    seed = mine_seed(mine_id)
    return Baseline(
        displacement=1.5 + (seed % 10) / 5,
        strain=120.0 + seed % 80,
        pore_pressure=35.0 + seed % 30,
        crack_score=2.0 + seed % 6,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReadingGenerator:
    """Produces readings either from the normal baseline or as a random walk.

    Passing ``seed`` makes the stream reproducible; ``clock`` lets callers pin
    the timestamps of generated readings.
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._random = random.Random(seed)
        self._clock = clock

    def _centered(self, bias: float = 0.5) -> float:
        return self._random.random() - bias

    def generate(self, previous: Optional[SensorReading], mine_id: str) -> SensorReading:
        base = previous if previous is not None else NORMAL_BASELINE
        now = self._clock()
        if previous is not None and now <= previous.timestamp:
            now = previous.timestamp + _MIN_STEP

        return SensorReading(
            mine_id=mine_id,
            displacement=base.displacement + self._centered() * DISPLACEMENT_SPAN,
            strain=base.strain + self._centered() * STRAIN_SPAN,
            pore_pressure=base.pore_pressure + self._centered() * PORE_PRESSURE_SPAN,
            rainfall=base.rainfall + self._centered(RAINFALL_BIAS) * RAINFALL_SPAN,
            temperature=base.temperature + self._centered() * TEMPERATURE_SPAN,
            dem_slope=base.dem_slope + self._centered() * SLOPE_SPAN,
            crack_score=base.crack_score + self._centered() * CRACK_SPAN,
            timestamp=now,
        ).clamped()

    def history(
        self,
        mine_id: str,
        hours: int = 24,
        now: Optional[datetime] = None,
    ) -> List[SensorReading]:
        """Hourly readings from ``now - hours`` up to ``now``, oldest first."""
        anchor = now or self._clock()
        readings = []
        for offset in range(hours, -1, -1):
            reading = self.generate(None, mine_id)
            readings.append(replace(reading, timestamp=anchor - timedelta(hours=offset)))
        return readings

    def backfill(self, mine_id: str, base_time: datetime, offset_hours: int) -> SensorReading:
        """Historical reading ``offset_hours`` before ``base_time`` with a slow daily-like drift."""
        baseline = mine_baseline(mine_id)
        drift = math.sin(offset_hours * 0.1) * 0.5
        noise = self._centered() * 0.8

        return SensorReading(
            mine_id=mine_id,
            displacement=baseline.displacement + drift + noise,
            strain=baseline.strain + drift * 20 + noise * 30,
            pore_pressure=baseline.pore_pressure + drift * 10 + noise * 8,
            rainfall=baseline.rainfall + self._centered(RAINFALL_BIAS) * RAINFALL_SPAN,
            temperature=baseline.temperature + self._centered() * TEMPERATURE_SPAN,
            dem_slope=baseline.dem_slope + self._centered() * SLOPE_SPAN,
            crack_score=baseline.crack_score + noise * 2,
            timestamp=base_time - timedelta(hours=offset_hours),
        ).clamped()

    def backfill_series(
        self, mine_id: str, count: int, base_time: Optional[datetime] = None
    ) -> List[SensorReading]:
        """``count`` hourly backfill readings ending at ``base_time``, oldest first."""
        anchor = base_time or self._clock()
        return [self.backfill(mine_id, anchor, offset) for offset in range(count - 1, -1, -1)]

    def weather_reading(
        self, mine_id: str, temperature: float, rainfall: float
    ) -> SensorReading:
        """Fresh reading blended with observed weather for the mine's location."""
        return SensorReading(
            mine_id=mine_id,
            displacement=self._random.uniform(1.0, 3.0),
            strain=self._random.uniform(100.0, 150.0),
            pore_pressure=self._random.uniform(40.0, 60.0),
            rainfall=rainfall,
            temperature=temperature,
            dem_slope=NORMAL_BASELINE.dem_slope,
            crack_score=self._random.uniform(2.0, 5.0),
            timestamp=self._clock(),
        ).clamped()
