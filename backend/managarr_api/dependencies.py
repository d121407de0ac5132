"""FastAPI dependencies for the Managarr API."""
from fastapi import Depends, Request

from .services import BulkActionService, HealthService, ReportService, TmdbClient, UpstreamProxy
from .services.connection_test import ConnectionTester
from .state import AppState
from .stores.instance_store import InstanceStore
from .stores.settings_store import SettingsStore


def get_app_state(request: Request) -> AppState:
    """Resolve the shared application state from the FastAPI request."""
    return request.app.state.app_state


def get_instance_store(app_state: AppState = Depends(get_app_state)) -> InstanceStore:
    """Return the instance registry dependency."""
    return app_state.instance_store


def get_settings_store(app_state: AppState = Depends(get_app_state)) -> SettingsStore:
    return app_state.settings_store


def get_proxy(app_state: AppState = Depends(get_app_state)) -> UpstreamProxy:
    return app_state.proxy


def get_tester(app_state: AppState = Depends(get_app_state)) -> ConnectionTester:
    return app_state.tester


def get_health_service(app_state: AppState = Depends(get_app_state)) -> HealthService:
    return app_state.health


def get_tmdb(app_state: AppState = Depends(get_app_state)) -> TmdbClient:
    return app_state.tmdb


def get_reports(app_state: AppState = Depends(get_app_state)) -> ReportService:
    """Return the cross-instance report service."""
    return app_state.reports


def get_bulk(app_state: AppState = Depends(get_app_state)) -> BulkActionService:
    return app_state.bulk
