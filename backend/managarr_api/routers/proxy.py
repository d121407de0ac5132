"""Credential-injecting passthrough to Sonarr, Radarr and Plex."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from ..dependencies import get_proxy
from ..services.upstream import UpstreamError, UpstreamProxy

logger = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


async def relay(
    proxy: UpstreamProxy,
    kind: str,
    instance_id: str,
    path: str,
    request: Request,
) -> Response:
    """Forward ``request`` to the instance and relay the upstream status and body."""

    body = await request.body() if request.method in {"POST", "PUT", "PATCH"} else None
    try:
        upstream = await proxy.forward(
            instance_id,
            kind,
            request.method,
            path,
            query=request.url.query,
            body=body,
            content_type=request.headers.get("content-type"),
        )
    except UpstreamError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    except Exception as exc:  # pragma: no cover - unexpected proxy failures
        logger.exception("Proxy request to %s %s failed", kind, instance_id)
        raise HTTPException(status_code=500, detail="Proxy request failed") from exc
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.media_type,
    )


def _arr_router(kind: str, default_path: str) -> APIRouter:
    router = APIRouter(prefix=f"/{kind}", tags=[kind])

    @router.get("/{instance_id}")
    async def list_default(
        instance_id: str, request: Request, proxy: UpstreamProxy = Depends(get_proxy)
    ) -> Response:
        return await relay(proxy, kind, instance_id, default_path, request)

    @router.api_route("/{instance_id}/{path:path}", methods=PROXY_METHODS)
    async def passthrough(
        instance_id: str,
        path: str,
        request: Request,
        proxy: UpstreamProxy = Depends(get_proxy),
    ) -> Response:
        return await relay(proxy, kind, instance_id, path, request)

    return router


sonarr_router = _arr_router("sonarr", "/series")
radarr_router = _arr_router("radarr", "/movie")

plex_router = APIRouter(prefix="/plex", tags=["plex"])


@plex_router.get("/{instance_id}/libraries")
async def plex_libraries(
    instance_id: str, request: Request, proxy: UpstreamProxy = Depends(get_proxy)
) -> Response:
    """List the library sections of a Plex server."""

    return await relay(proxy, "plex", instance_id, "/library/sections", request)


@plex_router.get("/{instance_id}/libraries/{library_id}")
async def plex_library_items(
    instance_id: str,
    library_id: str,
    request: Request,
    proxy: UpstreamProxy = Depends(get_proxy),
) -> Response:
    return await relay(proxy, "plex", instance_id, f"/library/sections/{library_id}/all", request)


@plex_router.get("/{instance_id}/metadata/{rating_key}")
async def plex_metadata(
    instance_id: str,
    rating_key: str,
    request: Request,
    proxy: UpstreamProxy = Depends(get_proxy),
) -> Response:
    return await relay(proxy, "plex", instance_id, f"/library/metadata/{rating_key}", request)


@plex_router.api_route("/{instance_id}/{path:path}", methods=PROXY_METHODS)
async def plex_passthrough(
    instance_id: str,
    path: str,
    request: Request,
    proxy: UpstreamProxy = Depends(get_proxy),
) -> Response:
    return await relay(proxy, "plex", instance_id, path, request)
