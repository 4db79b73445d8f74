from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from app.ws import router as ws_router
from datastore.sensor_store import build_default_store
from integrations.alerts import build_default_dispatcher
from integrations.weather import build_default_weather_client
from logging_config import configure_logging
from services.jobs import build_default_jobs


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    build_default_store()
    try:
        yield
    finally:
        build_default_dispatcher().close()
        build_default_weather_client().close()
        build_default_jobs.cache_clear()
        build_default_dispatcher.cache_clear()
        build_default_weather_client.cache_clear()
        build_default_store.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Rockfall Monitor",
        description="Mine sensor ingestion, rockfall risk scoring and alerting.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    app.include_router(ws_router)
    return app

app = create_app()
