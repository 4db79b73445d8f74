"""Mine-level risk aggregation and reading analytics."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from datastore.errors import StoreError
from datastore.sensor_store import SensorStore
from models.records import Mine, RiskAssessment, RiskLevel, SensorReading
from services.risk import RiskModel, WeightedFractionModel

logger = logging.getLogger(__name__)


@dataclass
class MineRiskUpdate:
    mine_id: str
    mine_name: str
    assessment: RiskAssessment


@dataclass
class AggregationResult:
    """Outcome of one batch pass; failures never abort the pass."""

    updated: List[MineRiskUpdate] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def processed_count(self) -> int:
        return len(self.updated) + len(self.failed)


class MineRiskAggregator:
    """Scores each mine's newest reading and writes the summary back to the store."""

    def __init__(
        self,
        store: SensorStore,
        risk_model: Optional[RiskModel] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.risk_model = risk_model or WeightedFractionModel()
        self._clock = clock

    def update_mine(self, mine: Mine, reading: SensorReading) -> MineRiskUpdate:
        assessment = self.risk_model.score(reading)
        self.store.upsert_mine_risk(
            mine.id, assessment.probability, assessment.level, self._clock()
        )
        return MineRiskUpdate(mine_id=mine.id, mine_name=mine.name, assessment=assessment)

    def update_mines(
        self, latest_readings: Iterable[Tuple[Mine, Optional[SensorReading]]]
    ) -> AggregationResult:
        result = AggregationResult()
        for mine, reading in latest_readings:
            if reading is None:
                logger.info(
                    "No reading available; risk left unchanged",
                    extra={"mine_id": mine.id, "mine_name": mine.name},
                )
                continue
            try:
                update = self.update_mine(mine, reading)
            except StoreError as exc:
                logger.error(
                    "Failed to persist mine risk",
                    extra={"mine_id": mine.id, "mine_name": mine.name, "reason": str(exc)},
                )
                result.failed.append(mine.id)
                continue
            logger.info(
                "Mine risk updated",
                extra={
                    "mine_id": mine.id,
                    "mine_name": mine.name,
                    "probability": update.assessment.probability,
                    "risk_level": update.assessment.level.value,
                },
            )
            result.updated.append(update)
        return result


@dataclass
class ReadingAnalytics:
    """Dashboard statistics over a set of readings."""

    row_count: int = 0
    averages: Dict[str, float] = field(default_factory=dict)
    per_mine_count: Dict[str, int] = field(default_factory=dict)
    risk_level_counts: Dict[str, int] = field(default_factory=dict)


# Rounding used on the dashboard: strain to a whole number, the rest to one decimal.
_AVERAGE_PRECISION = {
    "displacement": 1,
    "strain": 0,
    "pore_pressure": 1,
    "rainfall": 1,
    "temperature": 1,
    "dem_slope": 1,
    "crack_score": 1,
}


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def __init__(self, risk_model: Optional[RiskModel] = None) -> None:
        self.risk_model = risk_model or WeightedFractionModel()

    def summarize(self, readings: Iterable[SensorReading]) -> ReadingAnalytics:
        summary = ReadingAnalytics(
            risk_level_counts={level.value: 0 for level in RiskLevel},
        )
        totals = {name: 0.0 for name in _AVERAGE_PRECISION}

        for reading in readings:
            summary.row_count += 1
            for name in totals:
                totals[name] += getattr(reading, name)
            summary.per_mine_count[reading.mine_id] = (
                summary.per_mine_count.get(reading.mine_id, 0) + 1
            )
            level = self.risk_model.score(reading).level
            summary.risk_level_counts[level.value] += 1

        if summary.row_count:
            for name, precision in _AVERAGE_PRECISION.items():
                summary.averages[name] = round(totals[name] / summary.row_count, precision)

        return summary
