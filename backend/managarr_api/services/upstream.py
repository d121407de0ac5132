"""Proxy for Sonarr, Radarr and Plex REST APIs with credential injection."""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable

import httpx

from ..stores.instance_store import InstanceConnection

logger = logging.getLogger(__name__)

ARR_API_PREFIX = "/api/v3"
BODY_METHODS = {"POST", "PUT", "PATCH"}
KIND_LABELS = {"sonarr": "Sonarr", "radarr": "Radarr", "plex": "Plex"}


class UpstreamError(RuntimeError):
    """Raised when a request cannot be relayed to, or is rejected by, an upstream server."""

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class InstanceNotFoundError(UpstreamError):
    def __init__(self) -> None:
        super().__init__("Instance not found", status_code=404)


class InstanceDisabledError(UpstreamError):
    def __init__(self) -> None:
        super().__init__("Instance is disabled", status_code=400)


class InstanceTypeMismatchError(UpstreamError):
    def __init__(self, kind: str) -> None:
        super().__init__(f"Not a {KIND_LABELS.get(kind, kind)} instance", status_code=400)


@dataclass(slots=True)
class ProxyResponse:
    """Upstream response relayed byte for byte."""

    status_code: int
    content: bytes
    media_type: str | None


def auth_headers(kind: str, api_key: str) -> dict[str, str]:
    """Return the credential headers used by the given kind of server."""

    if kind == "plex":
        return {"X-Plex-Token": api_key, "Accept": "application/json"}
    return {"X-Api-Key": api_key, "Content-Type": "application/json"}


def build_upstream_url(instance: InstanceConnection, path: str) -> str:
    """Join the instance base URL and a path suffix, adding the v3 prefix for *arr servers."""

    suffix = path if path.startswith("/") else f"/{path}"
    if instance.type == "plex":
        return f"{instance.base_url}{suffix}"
    return f"{instance.base_url}{ARR_API_PREFIX}{suffix}"


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return f"Upstream responded with HTTP {response.status_code}"


class UpstreamProxy:
    """Resolve instances and relay requests to them.

    ``resolve`` maps an instance id to its connection details; it returns
    ``None`` for unknown ids. ``transport`` lets tests substitute an
    in-process upstream.
    """

    def __init__(
        self,
        resolve: Callable[[str], InstanceConnection | None],
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._resolve = resolve
        self._timeout = timeout
        self._transport = transport

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def resolve(self, instance_id: str, kind: str | None = None) -> InstanceConnection:
        """Look up an instance, checking that it exists, is enabled and matches ``kind``."""

        instance = self._resolve(instance_id)
        if instance is None:
            raise InstanceNotFoundError()
        if kind is not None and instance.type != kind:
            raise InstanceTypeMismatchError(kind)
        if not instance.is_enabled:
            raise InstanceDisabledError()
        return instance

    async def forward(
        self,
        instance_id: str,
        kind: str,
        method: str,
        path: str,
        *,
        query: str = "",
        body: bytes | None = None,
        content_type: str | None = None,
    ) -> ProxyResponse:
        """Relay one inbound request to the instance and return the raw upstream response.

        ``content_type`` is the inbound body's media type; Plex receives it as sent.
        """

        instance = self.resolve(instance_id, kind)
        url = build_upstream_url(instance, path)
        if query:
            url = f"{url}?{query}"
        response = await self._send(instance, method, url, content=body, content_type=content_type)
        return ProxyResponse(
            status_code=response.status_code,
            content=response.content,
            media_type=response.headers.get("content-type"),
        )

    async def fetch_json(
        self,
        instance: InstanceConnection,
        path: str,
        *,
        method: str = "GET",
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Call the instance and decode the JSON body, raising ``UpstreamError`` on failure."""

        url = build_upstream_url(instance, path)
        response = await self._send(instance, method, url, params=params, json=json)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(f"{instance.name} returned invalid JSON") from exc

    async def _send(
        self,
        instance: InstanceConnection,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        content: bytes | None = None,
        json: Any = None,
        content_type: str | None = None,
    ) -> httpx.Response:
        method = method.upper()
        request_kwargs: dict[str, Any] = {"headers": auth_headers(instance.type, instance.api_key)}
        if params:
            request_kwargs["params"] = params
        if method in BODY_METHODS:
            if json is not None:
                request_kwargs["json"] = json
            elif content:
                request_kwargs["content"] = content
                if content_type and instance.type == "plex":
                    request_kwargs["headers"]["Content-Type"] = content_type

        try:
            async with self.client() as client:
                response = await client.request(method, url, **request_kwargs)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            message = _error_message(exc.response)
            logger.warning(
                "%s %s on %s failed with HTTP %s: %s",
                method,
                url,
                instance.name,
                exc.response.status_code,
                message,
            )
            raise UpstreamError(message, status_code=exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s on %s failed: %s", method, url, instance.name, exc)
            raise UpstreamError(str(exc) or "Proxy request failed") from exc
        return response
