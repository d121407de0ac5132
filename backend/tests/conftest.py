"""Shared fixtures: an isolated database and in-process fake upstream servers."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Union

import httpx
import pytest
from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.managarr_api import create_app  # noqa: E402
from backend.managarr_api.settings import ManagarrSettings  # noqa: E402

Route = Union[Callable[[httpx.Request], httpx.Response], tuple[int, Any]]


class FakeServer:
    """One Sonarr, Radarr, Plex or TMDB server answering canned routes."""

    def __init__(self, kind: str, api_key: str) -> None:
        self.kind = kind
        self.api_key = api_key
        self.routes: dict[tuple[str, str], Route] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, payload: Any = None, *, status: int = 200) -> "FakeServer":
        self.routes[(method.upper(), path)] = (status, payload)
        return self

    def handler(self, method: str, path: str, handler: Callable[[httpx.Request], httpx.Response]) -> "FakeServer":
        self.routes[(method.upper(), path)] = handler
        return self

    def calls(self, method: str | None = None) -> list[httpx.Request]:
        return [r for r in self.requests if method is None or r.method == method.upper()]

    def authorized(self, request: httpx.Request) -> bool:
        if self.kind == "plex":
            return request.headers.get("X-Plex-Token") == self.api_key
        if self.kind == "tmdb":
            return request.url.params.get("api_key") == self.api_key
        return request.headers.get("X-Api-Key") == self.api_key

    def respond(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.authorized(request):
            return httpx.Response(401, json={"message": "Unauthorized"})
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "NotFound"})
        if callable(route):
            return route(request)
        status, payload = route
        if payload is None:
            return httpx.Response(status)
        return httpx.Response(status, json=payload)


class FakeUpstream:
    """Route outbound requests to fake servers by host name.

    Unknown hosts behave like a refused connection.
    """

    def __init__(self) -> None:
        self.servers: dict[str, FakeServer] = {}
        self.transport = httpx.MockTransport(self._handle)

    def server(self, host: str, kind: str, api_key: str = "secret") -> FakeServer:
        server = FakeServer(kind, api_key)
        self.servers[host] = server
        return server

    def _handle(self, request: httpx.Request) -> httpx.Response:
        server = self.servers.get(request.url.host)
        if server is None:
            raise httpx.ConnectError("Connection refused", request=request)
        return server.respond(request)


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def settings(tmp_path: Path) -> ManagarrSettings:
    """Settings backed by an isolated SQLite database with the poller disabled."""

    return ManagarrSettings(
        database_url=f"sqlite:///{tmp_path / 'managarr.db'}",
        health_poll_interval=0,
        tmdb_base_url="http://tmdb.test/3",
    )


@pytest.fixture()
def client(settings: ManagarrSettings, upstream: FakeUpstream) -> TestClient:
    app = create_app(settings=settings, transport=upstream.transport)
    return TestClient(app)


@pytest.fixture()
def add_instance(client: TestClient) -> Callable[..., dict[str, Any]]:
    """Register an instance through the API and return its public record."""

    def _add(
        name: str,
        instance_type: str,
        host: str,
        *,
        api_key: str = "secret",
        is_enabled: bool = True,
    ) -> dict[str, Any]:
        response = client.post(
            "/api/instances",
            json={
                "name": name,
                "type": instance_type,
                "url": f"http://{host}:8080",
                "api_key": api_key,
                "is_enabled": is_enabled,
            },
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _add
