"""Application factory for the Managarr API."""
from contextlib import asynccontextmanager
import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routers import bulk, health, instances, proxy, reports, tmdb
from .routers import settings as settings_routes
from .settings import ManagarrSettings
from .state import AppState

logger = logging.getLogger(__name__)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request validation failures as 400 with the field details."""

    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "errors": jsonable_encoder(exc.errors())},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    poller = app.state.app_state.health_poller
    if poller is not None:
        logger.info("Starting health poller")
        await poller.start()
    try:
        yield
    finally:
        if poller is not None:
            await poller.stop()


def create_app(
    settings: ManagarrSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    ``transport`` replaces the network for every outbound upstream call.
    """

    resolved_settings = settings or ManagarrSettings()
    app_state = AppState(settings=resolved_settings, transport=transport)

    app = FastAPI(title="Managarr API", version="0.1.0", lifespan=lifespan)
    app.state.app_state = app_state
    app.state.settings = app_state.settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if resolved_settings.is_production else [resolved_settings.client_url],
        allow_credentials=not resolved_settings.is_production,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    for router in (
        health.router,
        instances.router,
        settings_routes.router,
        tmdb.router,
        reports.router,
        bulk.router,
        proxy.sonarr_router,
        proxy.radarr_router,
        proxy.plex_router,
    ):
        app.include_router(router, prefix="/api")

    return app
