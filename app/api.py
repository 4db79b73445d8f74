"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from app.schemas import (
    AlertRequest,
    AlertResponse,
    GenerateMineDataResponse,
    MinePayload,
    ReadingAnalyticsPayload,
    RiskAssessmentPayload,
    SensorReadingPayload,
    SyncWeatherResponse,
)
from datastore.errors import StoreError
from datastore.sensor_store import MockSensorStore, build_default_store
from integrations.alerts import AlertDispatcher, DispatchFailure, build_default_dispatcher
from services.aggregator import Aggregator
from services.jobs import BatchJobService, build_default_jobs
from services.risk import ThresholdBandModel, get_risk_model

router = APIRouter()


def get_store() -> MockSensorStore:
    return build_default_store()


def get_jobs() -> BatchJobService:
    return build_default_jobs()


def get_dispatcher() -> AlertDispatcher:
    return build_default_dispatcher()


def _store_unavailable(exc: StoreError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get(
    "/mines",
    response_model=List[MinePayload],
    summary="List monitored mines with their current risk summary.",
)
async def list_mines(store: MockSensorStore = Depends(get_store)) -> List[MinePayload]:
    try:
        mines = store.list_mines()
    except StoreError as exc:
        raise _store_unavailable(exc) from exc
    return [MinePayload.from_mine(mine) for mine in sorted(mines, key=lambda mine: mine.name)]


@router.get(
    "/mines/{mine_id}/readings",
    response_model=List[SensorReadingPayload],
    summary="Latest sensor readings for a mine, newest first.",
)
async def list_readings(
    mine_id: str,
    limit: int = Query(50, ge=1, le=500),
    store: MockSensorStore = Depends(get_store),
) -> List[SensorReadingPayload]:
    try:
        if store.get_mine(mine_id) is None:
            raise KeyError(f"Mine {mine_id!r} not found.")
        readings = store.fetch_latest(mine_id, limit)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_unavailable(exc) from exc
    return [SensorReadingPayload.from_reading(reading) for reading in readings]


@router.get(
    "/mines/{mine_id}/analytics",
    response_model=ReadingAnalyticsPayload,
    summary="Averages and risk-level distribution over a mine's recent readings.",
)
async def mine_analytics(
    mine_id: str,
    limit: int = Query(300, ge=1, le=5000),
    store: MockSensorStore = Depends(get_store),
) -> ReadingAnalyticsPayload:
    try:
        if store.get_mine(mine_id) is None:
            raise KeyError(f"Mine {mine_id!r} not found.")
        readings = store.fetch_latest(mine_id, limit)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_unavailable(exc) from exc
    summary = Aggregator().summarize(readings)
    return ReadingAnalyticsPayload(
        row_count=summary.row_count,
        averages=summary.averages,
        per_mine_count=summary.per_mine_count,
        risk_level_counts=summary.risk_level_counts,
    )


@router.post(
    "/risk/score",
    response_model=RiskAssessmentPayload,
    summary="Score a single reading with the selected risk model.",
)
async def score_reading(
    reading: SensorReadingPayload = Body(...),
    model: str = Query(ThresholdBandModel.name, description="Risk model name."),
) -> RiskAssessmentPayload:
    try:
        risk_model = get_risk_model(model)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return RiskAssessmentPayload.from_assessment(risk_model.score(reading.to_reading()))


@router.post(
    "/jobs/generate-mine-data",
    response_model=GenerateMineDataResponse,
    summary="Ensure predefined mines exist, backfill readings and refresh mine risk.",
)
def generate_mine_data(jobs: BatchJobService = Depends(get_jobs)) -> GenerateMineDataResponse:
    result = jobs.generate_mine_data()
    if not result.success:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.message)
    return result


@router.post(
    "/jobs/sync-weather-data",
    response_model=SyncWeatherResponse,
    summary="Append one weather-blended reading per mine.",
)
def sync_weather_data(jobs: BatchJobService = Depends(get_jobs)) -> SyncWeatherResponse:
    result = jobs.sync_weather_data()
    if not result.success:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.message)
    return result


@router.post(
    "/alerts",
    response_model=AlertResponse,
    summary="Notify stakeholders about high rockfall risk at a mine.",
)
def send_alert(
    request: AlertRequest,
    dispatcher: AlertDispatcher = Depends(get_dispatcher),
) -> AlertResponse:
    try:
        dispatcher.notify(
            request.mine_id, request.mine_name, request.location, request.risk_probability
        )
    except DispatchFailure as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return AlertResponse(success=True, message="Alert notifications sent")


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
