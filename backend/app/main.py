"""FastAPI application for the dashboard backend's real-time layer."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .realtime import RealtimeSettings, create_realtime_router, create_realtime_services

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Install a root handler once for the service process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: RealtimeSettings | None = None) -> FastAPI:
    """Build the app. Services are created once here and shared by reference."""
    if settings is None:
        settings = RealtimeSettings.from_env()
    configure_logging(settings.log_level)

    services = create_realtime_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        services.start()
        try:
            yield
        finally:
            await services.aclose()

    app = FastAPI(title="DeFi Dashboard Real-time", lifespan=lifespan)
    app.state.realtime = services
    app.include_router(create_realtime_router(services))
    return app
