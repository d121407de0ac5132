"""Shared state container for the Managarr API."""
from __future__ import annotations

from dataclasses import dataclass

import httpx
from sqlalchemy.engine import Engine

from .db import create_engine_from_settings, init_database
from .services import (
    BulkActionService,
    ConnectionTester,
    HealthService,
    Poller,
    ReportService,
    TmdbClient,
    UpstreamProxy,
)
from .settings import ManagarrSettings
from .stores.instance_store import InstanceStore
from .stores.settings_store import SettingsStore


@dataclass(slots=True)
class AppState:
    """Encapsulates the stores and services shared across routers."""

    settings: ManagarrSettings
    engine: Engine
    instance_store: InstanceStore
    settings_store: SettingsStore
    proxy: UpstreamProxy
    tester: ConnectionTester
    tmdb: TmdbClient
    reports: ReportService
    bulk: BulkActionService
    health: HealthService
    health_poller: Poller | None

    def __init__(
        self,
        settings: ManagarrSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.engine = create_engine_from_settings(settings)
        init_database(self.engine)
        self.instance_store = InstanceStore(self.engine)
        self.settings_store = SettingsStore(self.engine)

        self.proxy = UpstreamProxy(
            self.instance_store.get_connection,
            timeout=settings.upstream_timeout,
            transport=transport,
        )
        self.tester = ConnectionTester(
            timeout=settings.connection_test_timeout, transport=transport
        )
        self.tmdb = TmdbClient(
            self.settings_store.tmdb_api_key,
            base_url=settings.tmdb_base_url,
            image_base_url=settings.tmdb_image_base_url,
            transport=transport,
        )
        self.reports = ReportService(
            self.proxy,
            lambda kind: self.instance_store.list_connections(instance_type=kind),
            self.settings_store.excluded_plex_libraries,
            concurrency=settings.fanout_concurrency,
        )
        self.bulk = BulkActionService(self.proxy)
        self.health = HealthService(
            self.tester,
            lambda: self.instance_store.list_connections(enabled_only=False),
            self.instance_store.get_connection,
            concurrency=settings.fanout_concurrency,
        )
        self.health_poller = None
        if settings.health_poll_interval > 0:
            self.health_poller = Poller(
                self.health.check_all,
                settings.health_poll_interval,
                self.health.record,
            )
