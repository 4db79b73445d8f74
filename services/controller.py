"""Monitoring session: rolling reading window, update loop and risk recomputation."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, Optional, Set, Tuple

from datastore.errors import FetchFailure
from datastore.sensor_store import SensorStore
from models.records import RiskAssessment, SensorReading
from services.generator import ReadingGenerator
from services.risk import RiskModel, ThresholdBandModel
from services.sources import IntervalSource, ReadingSource, SubscriptionSource

logger = logging.getLogger(__name__)

DEFAULT_MINE_ID = "default-mine"


class Mode(str, Enum):
    simulated = "simulated"
    live = "live"


class SessionState(str, Enum):
    idle = "idle"
    loading = "loading"
    ready = "ready"
    updating = "updating"
    error = "error"


class Degradation(str, Enum):
    """Why a live session is running on generated data."""

    no_data = "no_data"
    fetch_failure = "fetch_failure"


@dataclass(frozen=True)
class SessionSnapshot:
    mode: Mode
    mine_id: Optional[str]
    state: SessionState
    readings: Tuple[SensorReading, ...]
    current_reading: Optional[SensorReading]
    risk: Optional[RiskAssessment]
    last_update: Optional[datetime]
    degradation: Optional[Degradation] = None
    error: Optional[str] = None

    def to_dict(self, include_readings: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "mode": self.mode.value,
            "mine_id": self.mine_id,
            "state": self.state.value,
            "current_reading": self.current_reading.to_dict() if self.current_reading else None,
            "risk": (
                {
                    "probability": self.risk.probability,
                    "level": self.risk.level.value,
                    "model": self.risk.model,
                }
                if self.risk
                else None
            ),
            "last_update": self.last_update.isoformat() if self.last_update else None,
            "degradation": self.degradation.value if self.degradation else None,
            "error": self.error,
        }
        if include_readings:
            payload["readings"] = [reading.to_dict() for reading in self.readings]
        return payload


CriticalCallback = Callable[[str, RiskAssessment, SensorReading], None]
UpdateCallback = Callable[[SessionSnapshot], None]


class SensorDataController:
    """Owns one monitoring session keyed by ``(mode, mine_id)``.

    The window is mutated only by this object and only while the session is
    active; results of fetches or ticks that complete after ``stop()`` are
    dropped. Critical risk is reported through ``on_critical``; deciding how to
    alert is left to the consumer.
    """

    def __init__(
        self,
        store: SensorStore,
        mode: Mode = Mode.simulated,
        mine_id: Optional[str] = None,
        *,
        generator: Optional[ReadingGenerator] = None,
        risk_model: Optional[RiskModel] = None,
        update_interval: float = 5.0,
        window_size: int = 50,
        history_hours: int = 24,
        critical_threshold: float = 0.8,
        on_critical: Optional[CriticalCallback] = None,
        on_update: Optional[UpdateCallback] = None,
    ) -> None:
        if window_size <= 0:
            raise ValueError("window_size must be positive.")
        self.store = store
        self.mode = Mode(mode)
        self.mine_id = mine_id
        self.generator = generator or ReadingGenerator()
        self.risk_model = risk_model or ThresholdBandModel()
        self.update_interval = update_interval
        self.window_size = window_size
        self.history_hours = history_hours
        self.critical_threshold = critical_threshold
        self.on_critical = on_critical
        self.on_update = on_update

        self._window: Deque[SensorReading] = deque(maxlen=window_size)
        self._current: Optional[SensorReading] = None
        self._risk: Optional[RiskAssessment] = None
        self._last_update: Optional[datetime] = None
        self._state = SessionState.idle
        self._degradation: Optional[Degradation] = None
        self._error: Optional[str] = None

        self._started = False
        self._active = False
        self._source: Optional[ReadingSource] = None
        self._pump: Optional[asyncio.Task[None]] = None
        self._pending_writes: Set[asyncio.Task[Any]] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def active(self) -> bool:
        return self._active

    @property
    def generated_mine_id(self) -> str:
        return self.mine_id or DEFAULT_MINE_ID

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            mode=self.mode,
            mine_id=self.mine_id,
            state=self._state,
            readings=tuple(self._window),
            current_reading=self._current,
            risk=self._risk,
            last_update=self._last_update,
            degradation=self._degradation,
            error=self._error,
        )

    async def start(self) -> SessionSnapshot:
        if self._started:
            raise RuntimeError("Monitoring session has already been started.")
        self._started = True
        self._active = True
        self._set_state(SessionState.loading)

        if self.mode is Mode.simulated:
            self._seed(self.generator.history(self.generated_mine_id, hours=self.history_hours))
            self._run(self._interval_source())
            return self.snapshot()

        # Subscribe before fetching so rows committed during the fetch are not lost.
        subscription = self.store.subscribe_inserts(self.mine_id)
        try:
            rows = await asyncio.to_thread(self.store.fetch_latest, self.mine_id, self.window_size)
        except FetchFailure as exc:
            subscription.close()
            if not self._active:
                return self.snapshot()
            self._error = str(exc)
            self._set_state(SessionState.error)
            logger.error(
                "Live sensor fetch failed; continuing on generated data",
                extra={"mine_id": self.mine_id, "reason": str(exc)},
            )
            self._fallback(Degradation.fetch_failure)
            self._run(self._interval_source())
            return self.snapshot()

        if not self._active:
            subscription.close()
            return self.snapshot()

        if rows:
            self._seed(list(reversed(rows)))
        else:
            logger.warning(
                "No live sensor data; falling back to generated data",
                extra={"mine_id": self.mine_id},
            )
            self._fallback(Degradation.no_data)
        seeded = {row.id for row in rows if row.id is not None}
        self._run(SubscriptionSource(subscription, skip_ids=seeded))
        return self.snapshot()

    def tick(self) -> Optional[SensorReading]:
        """Generate and apply one reading continuing from the newest window entry.

        Must be called from the event loop running the session. Returns
        ``None`` when the session is no longer active.
        """
        if self._source is not None and not self._source.persist:
            raise RuntimeError("Live sessions are driven by store inserts, not ticks.")
        if not self._active:
            return None
        reading = self.generator.generate(self._latest(), self.generated_mine_id)
        return self._accept(reading, persist=True)

    async def stop(self) -> None:
        """Release the timer or subscription. Safe to call repeatedly."""
        was_active = self._active
        self._active = False
        if self._source is not None:
            self._source.close()
            self._source = None
        pump, self._pump = self._pump, None
        if pump is not None and not pump.done():
            pump.cancel()
            if pump is not asyncio.current_task():
                try:
                    await pump
                except asyncio.CancelledError:
                    pass
        if was_active:
            self._state = SessionState.idle
            logger.info(
                "Monitoring session stopped",
                extra={"mine_id": self.mine_id, "mode": self.mode.value},
            )

    async def flush(self) -> None:
        """Wait for outstanding best-effort writes; their failures are only logged."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    def _latest(self) -> Optional[SensorReading]:
        return self._window[-1] if self._window else None

    def _interval_source(self) -> IntervalSource:
        return IntervalSource(
            self.generator,
            self.generated_mine_id,
            self.update_interval,
            latest=self._latest,
        )

    def _run(self, source: ReadingSource) -> None:
        self._source = source
        self._pump = asyncio.create_task(self._consume(source))

    async def _consume(self, source: ReadingSource) -> None:
        async for reading in source:
            if not self._active:
                break
            self._accept(reading, persist=source.persist)

    def _fallback(self, degradation: Degradation) -> None:
        self._degradation = degradation
        self._seed(self.generator.history(self.generated_mine_id, hours=self.history_hours))

    def _seed(self, readings: list[SensorReading]) -> None:
        self._window.clear()
        self._window.extend(readings)
        self._current = self._window[-1] if self._window else None
        self._recompute()
        self._set_state(SessionState.ready)
        logger.info(
            "Monitoring session ready",
            extra={
                "mine_id": self.mine_id,
                "mode": self.mode.value,
                "record_count": len(self._window),
                "degradation": self._degradation.value if self._degradation else None,
            },
        )
        self._publish()

    def _accept(self, reading: SensorReading, persist: bool) -> Optional[SensorReading]:
        if not self._active:
            return None
        if self.mine_id is not None and reading.mine_id != self.mine_id:
            return None

        self._set_state(SessionState.updating)
        self._window.append(reading)
        self._current = reading
        self._recompute()
        self._set_state(SessionState.ready)

        if persist:
            self._persist_detached(reading)
        self._publish()
        return reading

    def _recompute(self) -> None:
        self._risk = self.risk_model.score(self._current) if self._current else None
        self._last_update = datetime.now(timezone.utc)

    def _publish(self) -> None:
        if self.on_update is not None:
            try:
                self.on_update(self.snapshot())
            except Exception:  # noqa: BLE001
                logger.exception("Session update callback failed", extra={"mine_id": self.mine_id})

        risk, reading = self._risk, self._current
        if risk is None or reading is None or risk.probability <= self.critical_threshold:
            return
        logger.warning(
            "Critical rockfall risk",
            extra={
                "mine_id": reading.mine_id,
                "probability": risk.probability,
                "risk_level": risk.level.value,
            },
        )
        if self.on_critical is not None:
            try:
                self.on_critical(reading.mine_id, risk, reading)
            except Exception:  # noqa: BLE001
                logger.exception("Critical risk callback failed", extra={"mine_id": reading.mine_id})

    def _persist_detached(self, reading: SensorReading) -> None:
        task = asyncio.create_task(asyncio.to_thread(self.store.insert, reading))
        self._pending_writes.add(task)
        task.add_done_callback(self._write_finished)

    def _write_finished(self, task: asyncio.Task[Any]) -> None:
        self._pending_writes.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "Best-effort persistence of generated reading failed",
                extra={"mine_id": self.mine_id, "reason": str(exc)},
            )

    def _set_state(self, state: SessionState) -> None:
        self._state = state
