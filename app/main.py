"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import api_router
from app.config import AppSettings, get_settings
from app.core.logging import setup_logging
from app.core.telemetry import setup_telemetry
from app.services.monitor import AlertMonitor
from app.services.sessions import TradingServices
from tradedesk.persistence import SqlStateStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    monitor: AlertMonitor | None = app.state.monitor
    if monitor is not None and app.state.settings.alert_monitor_enabled:
        monitor.start()
    try:
        yield
    finally:
        if monitor is not None:
            await monitor.stop()
        app.state.services.close()


def create_app(settings: AppSettings | None = None, *, services: TradingServices | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)
    logger.info("Starting %s with settings %s", settings.app_name, settings.dict_for_logging())

    services = services or TradingServices.from_settings(settings)

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=_lifespan)
    app.state.settings = settings
    app.state.services = services
    app.state.monitor = AlertMonitor(
        services,
        interval=settings.alert_check_interval_seconds,
        initial_delay=settings.alert_initial_delay_seconds,
    )

    engine = services.store.engine if isinstance(services.store, SqlStateStore) else None
    setup_telemetry(app, settings, engine=engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, object]:
        """Return service readiness metadata."""

        monitor: AlertMonitor = app.state.monitor
        return {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "timezone": settings.timezone,
            "alert_monitor_running": monitor.is_running,
        }

    return app


app = create_app()

__all__ = ["app", "create_app"]
