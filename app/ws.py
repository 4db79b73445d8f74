"""WebSocket stream of a live monitoring session."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Set

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from app.api import get_dispatcher, get_store
from datastore.sensor_store import MockSensorStore
from integrations.alerts import AlertDispatcher, notify_safely
from models.records import Mine, RiskAssessment, SensorReading
from services.controller import Mode, SensorDataController, SessionSnapshot
from settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


class SessionRelay:
    """Session consumer: queues snapshots for the socket and raises alerts.

    One alert is sent per excursion above the critical threshold; the latch
    resets once risk falls back to or below it.
    """

    def __init__(
        self,
        dispatcher: AlertDispatcher,
        mine: Optional[Mine],
        critical_threshold: float,
    ) -> None:
        self.dispatcher = dispatcher
        self.mine = mine
        self.critical_threshold = critical_threshold
        self.queue: asyncio.Queue[SessionSnapshot] = asyncio.Queue()
        self._alerted = False
        self._alerts: Set[asyncio.Task[Any]] = set()

    def on_update(self, snapshot: SessionSnapshot) -> None:
        if snapshot.risk is not None and snapshot.risk.probability <= self.critical_threshold:
            self._alerted = False
        self.queue.put_nowait(snapshot)

    def on_critical(self, mine_id: str, risk: RiskAssessment, reading: SensorReading) -> None:
        if self._alerted:
            return
        self._alerted = True
        name = self.mine.name if self.mine else mine_id
        location = f"{self.mine.location}, {self.mine.state}" if self.mine else "unknown"
        task = asyncio.create_task(
            asyncio.to_thread(
                notify_safely, self.dispatcher, mine_id, name, location, risk.probability
            )
        )
        self._alerts.add(task)
        task.add_done_callback(self._alerts.discard)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Return once the client goes away; inbound messages are ignored."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/mines/{mine_id}")
async def monitor_mine(
    websocket: WebSocket,
    mine_id: str,
    mode: Mode = Query(Mode.simulated),
    interval: Optional[float] = Query(None, gt=0),
    max_updates: Optional[int] = Query(None, ge=1),
    store: MockSensorStore = Depends(get_store),
    dispatcher: AlertDispatcher = Depends(get_dispatcher),
) -> None:
    await websocket.accept()
    settings = get_settings()
    relay = SessionRelay(
        dispatcher=dispatcher,
        mine=store.get_mine(mine_id),
        critical_threshold=settings.critical_threshold,
    )
    controller = SensorDataController(
        store,
        mode=mode,
        mine_id=mine_id,
        update_interval=interval or settings.update_interval,
        window_size=settings.window_size,
        critical_threshold=settings.critical_threshold,
        on_critical=relay.on_critical,
        on_update=relay.on_update,
    )

    sent = 0
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        await controller.start()
        while max_updates is None or sent < max_updates:
            update = asyncio.create_task(relay.queue.get())
            await asyncio.wait({update, disconnected}, return_when=asyncio.FIRST_COMPLETED)
            if disconnected.done():
                update.cancel()
                logger.info("Monitoring client disconnected", extra={"mine_id": mine_id})
                return
            snapshot = update.result()
            await websocket.send_json(snapshot.to_dict(include_readings=sent == 0))
            sent += 1
        await websocket.close()
    except WebSocketDisconnect:
        logger.info("Monitoring client disconnected", extra={"mine_id": mine_id})
    finally:
        disconnected.cancel()
        await controller.stop()
