"""TMDB metadata passthrough used for poster artwork."""
from __future__ import annotations

import logging
from typing import Any, Callable, Literal

import httpx

logger = logging.getLogger(__name__)

FIND_SOURCES = {"tvdb_id", "imdb_id"}


class TmdbError(RuntimeError):
    """Raised when TMDB cannot serve a metadata request."""

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.status_code = status_code


class TmdbClient:
    """Thin TMDB v3 client keyed by the API key stored in settings."""

    def __init__(
        self,
        api_key: Callable[[], str | None],
        *,
        base_url: str = "https://api.themoviedb.org/3",
        image_base_url: str = "https://image.tmdb.org/t/p/w300",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._image_base_url = image_base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def movie(self, tmdb_id: int) -> dict[str, Any]:
        return await self._get(f"/movie/{tmdb_id}", not_found="Movie not found")

    async def tv(self, tmdb_id: int) -> dict[str, Any]:
        return await self._get(f"/tv/{tmdb_id}", not_found="TV show not found")

    async def find(self, external_id: str, source: str) -> dict[str, Any]:
        if source not in FIND_SOURCES:
            raise TmdbError("source query param must be tvdb_id or imdb_id", status_code=400)
        return await self._get(
            f"/find/{external_id}",
            params={"external_source": source},
            not_found="No match for external id",
        )

    async def poster_url(self, media: Literal["movie", "tv"], external_id: int) -> str | None:
        """Resolve a poster URL; every failure yields ``None``.

        Movies are looked up by TMDB id, TV shows by TVDB id.
        """

        try:
            if media == "movie":
                details = await self.movie(external_id)
            else:
                found = await self.find(str(external_id), "tvdb_id")
                results = found.get("tv_results") or []
                details = results[0] if results else {}
        except TmdbError as exc:
            logger.debug("Poster lookup for %s %s skipped: %s", media, external_id, exc)
            return None
        poster_path = details.get("poster_path")
        return f"{self._image_base_url}{poster_path}" if poster_path else None

    async def _get(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        not_found: str,
    ) -> dict[str, Any]:
        api_key = self._api_key()
        if not api_key:
            raise TmdbError("TMDB API key not configured", status_code=400)

        query = {"api_key": api_key, **(params or {})}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(f"{self._base_url}{path}", params=query)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                raise TmdbError(not_found, status_code=404) from exc
            logger.warning("TMDB %s failed with HTTP %s", path, exc.response.status_code)
            raise TmdbError("Failed to fetch from TMDB") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("TMDB %s failed: %s", path, exc)
            raise TmdbError("Failed to fetch from TMDB") from exc

        if not isinstance(payload, dict):
            raise TmdbError("TMDB returned an unexpected payload")
        return payload
