"""Bulk data generation and weather synchronisation jobs."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Dict, List, Optional, Tuple

from app.schemas import GenerateMineDataResponse, SyncWeatherResponse
from datastore.errors import StoreError
from datastore.sensor_store import SensorStore, build_default_store
from integrations.weather import (
    FALLBACK_OBSERVATION,
    WeatherSource,
    WeatherUnavailable,
    build_default_weather_client,
)
from models.records import Mine, MineType, SensorReading
from services.aggregator import MineRiskAggregator
from services.generator import ReadingGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MineSite:
    name: str
    location: str
    state: str
    latitude: float
    longitude: float

    @property
    def mine_type(self) -> MineType:
        return MineType.iron_ore if "Iron" in self.name else MineType.coal


PREDEFINED_MINES: Tuple[MineSite, ...] = (
    MineSite("Bellary Iron Ore", "Bellary", "Karnataka", 15.1394, 76.9214),
    MineSite("Bailadila Iron Ore", "Dantewada", "Chhattisgarh", 18.6298, 81.3509),
    MineSite("Goa Iron Ore", "Panaji", "Goa", 15.2993, 74.1240),
    MineSite("Jharia Coalfield", "Dhanbad", "Jharkhand", 23.7644, 86.4084),
    MineSite("Korba Coalfield", "Korba", "Chhattisgarh", 22.3595, 82.7501),
    MineSite("Raniganj Coalfield", "Asansol", "West Bengal", 23.6739, 87.0100),
    MineSite("Singrauli Coalfield", "Singrauli", "Madhya Pradesh", 24.1970, 82.6750),
    MineSite("Talcher Coalfield", "Angul", "Odisha", 20.9517, 85.2453),
)


class BatchJobService:
    """Runs the per-mine batch jobs; one mine's failure never aborts the run."""

    def __init__(
        self,
        store: SensorStore,
        weather: WeatherSource,
        generator: Optional[ReadingGenerator] = None,
        aggregator: Optional[MineRiskAggregator] = None,
        readings_per_mine: int = 300,
        batch_size: int = 100,
        request_delay: float = 0.1,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.weather = weather
        self.generator = generator or ReadingGenerator()
        self.aggregator = aggregator or MineRiskAggregator(store)
        self.readings_per_mine = readings_per_mine
        self.batch_size = batch_size
        self.request_delay = request_delay
        self._clock = clock
        self._random = random.Random()

    def ensure_mines(self) -> List[Mine]:
        """Create any predefined mine that is missing; return the ones created."""
        created: List[Mine] = []
        for site in PREDEFINED_MINES:
            if self.store.get_mine_by_name(site.name) is not None:
                continue
            try:
                mine = self.store.create_mine(
                    name=site.name,
                    location=site.location,
                    state=site.state,
                    latitude=site.latitude,
                    longitude=site.longitude,
                    mine_type=site.mine_type,
                    current_risk_probability=0.15 + self._random.random() * 0.3,
                )
            except StoreError as exc:
                logger.error(
                    "Failed to create mine", extra={"mine_name": site.name, "reason": str(exc)}
                )
                continue
            logger.info("Created mine", extra={"mine_id": mine.id, "mine_name": mine.name})
            created.append(mine)
        return created

    def generate_mine_data(self) -> GenerateMineDataResponse:
        try:
            self.ensure_mines()
            mines = self.store.list_mines()
        except StoreError as exc:
            logger.error("Mine data generation failed", extra={"reason": str(exc)})
            return GenerateMineDataResponse(
                success=False, message=f"Failed to generate mine data: {exc}"
            )

        base_time = self._clock()
        series: Dict[str, List[SensorReading]] = {
            mine.id: self.generator.backfill_series(mine.id, self.readings_per_mine, base_time)
            for mine in mines
        }
        all_readings = [reading for mine in mines for reading in series[mine.id]]
        logger.info(
            "Generated backfill readings",
            extra={"record_count": len(all_readings)},
        )

        inserted, newest = self._insert_in_batches(all_readings)

        # Only readings the store accepted feed the mine summary.
        aggregation = self.aggregator.update_mines((mine, newest.get(mine.id)) for mine in mines)
        names = {mine.id: mine.name for mine in mines}
        failed = [mine.name for mine in mines if mine.id not in newest]
        failed.extend(names[mine_id] for mine_id in aggregation.failed)
        return GenerateMineDataResponse(
            success=True,
            message=f"Generated sensor data for {len(mines)} mines",
            total_records=inserted,
            mines=[mine.name for mine in mines],
            failed_mines=failed,
        )

    def sync_weather_data(self) -> SyncWeatherResponse:
        try:
            mines = self.store.list_mines()
        except StoreError as exc:
            logger.error("Weather synchronisation failed", extra={"reason": str(exc)})
            return SyncWeatherResponse(
                success=False,
                message=f"Failed to sync weather data: {exc}",
                timestamp=self._clock(),
            )

        synced: List[Tuple[Mine, SensorReading]] = []
        failed: List[str] = []
        for index, mine in enumerate(mines):
            if index and self.request_delay > 0:
                time.sleep(self.request_delay)

            try:
                observation = self.weather.fetch_current(mine.latitude, mine.longitude)
            except WeatherUnavailable as exc:
                logger.warning(
                    "Weather unavailable; using default conditions",
                    extra={"mine_id": mine.id, "mine_name": mine.name, "reason": str(exc)},
                )
                observation = FALLBACK_OBSERVATION

            reading = self.generator.weather_reading(
                mine.id, observation.temperature, observation.rainfall
            )
            try:
                stored = self.store.insert(reading)
            except StoreError as exc:
                logger.error(
                    "Failed to store weather reading",
                    extra={"mine_id": mine.id, "mine_name": mine.name, "reason": str(exc)},
                )
                failed.append(mine.name)
                continue
            synced.append((mine, stored))

        aggregation = self.aggregator.update_mines(synced)
        names = {mine.id: mine.name for mine in mines}
        failed.extend(names[mine_id] for mine_id in aggregation.failed)

        return SyncWeatherResponse(
            success=True,
            message=f"Weather data synchronized for {len(synced)} mines",
            timestamp=self._clock(),
            synced_mines=[mine.name for mine, _ in synced],
            failed_mines=failed,
        )

    def _insert_in_batches(
        self, readings: List[SensorReading]
    ) -> Tuple[int, Dict[str, SensorReading]]:
        """Insert in batches; return the count and the newest committed reading per mine."""
        inserted = 0
        newest: Dict[str, SensorReading] = {}
        for start in range(0, len(readings), self.batch_size):
            batch_number = start // self.batch_size + 1
            batch = readings[start : start + self.batch_size]
            try:
                inserted += self.store.insert_many(batch)
            except StoreError as exc:
                logger.error(
                    "Failed to insert reading batch",
                    extra={"batch": batch_number, "reason": str(exc)},
                )
                continue
            for reading in batch:
                newest[reading.mine_id] = reading
            logger.debug(
                "Inserted reading batch",
                extra={"batch": batch_number, "record_count": inserted},
            )
        return inserted, newest


@lru_cache
def build_default_jobs() -> BatchJobService:
    """Factory that wires the batch jobs with the default store and weather client."""
    return BatchJobService(store=build_default_store(), weather=build_default_weather_client())
