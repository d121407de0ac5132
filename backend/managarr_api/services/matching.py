"""Identity matching for media items fetched from different servers.

Two items are considered the same title when their match keys are equal.
``ExternalIdMatcher`` prefers the TMDB (movies) or TVDB (series) id and falls
back to a normalized title plus release year. The fallback is a heuristic:
titles that only differ by punctuation collapse together and re-releases with
another year stay apart.
"""
from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, Literal, Protocol

from ..stores.instance_store import InstanceConnection

ItemKind = Literal["movie", "series"]

_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass(slots=True)
class MediaItem:
    """A series or movie as reported by one Sonarr or Radarr instance."""

    instance: InstanceConnection
    kind: ItemKind
    id: int
    title: str
    year: int | None
    external_id: int | None
    size_on_disk: int
    path: str
    quality: str | None
    quality_profile_id: int | None
    has_file: bool
    monitored: bool


@dataclass(slots=True)
class LibraryEntry:
    """A movie or show listed in a Plex library section."""

    instance: InstanceConnection
    kind: ItemKind
    title: str
    year: int | None
    rating_key: str | None
    external_id: int | None = None


class Matchable(Protocol):
    kind: ItemKind
    title: str
    year: int | None
    external_id: int | None


class MediaMatcher(Protocol):
    """Derive the grouping key for an item."""

    def key(self, item: Matchable) -> str: ...


def normalize_title(title: str) -> str:
    """Lowercase ``title`` and drop every character outside ``[a-z0-9]``."""

    return _NON_ALNUM.sub("", title.lower())


def title_year_key(title: str, year: int | None) -> str:
    return f"title-{normalize_title(title)}-{year if year else ''}"


class TitleYearMatcher:
    """Match on normalized title and year only."""

    def key(self, item: Matchable) -> str:
        return title_year_key(item.title, item.year)


class ExternalIdMatcher:
    """Match on TMDB/TVDB id when known, otherwise on normalized title and year."""

    def key(self, item: Matchable) -> str:
        if item.external_id:
            prefix = "tmdb" if item.kind == "movie" else "tvdb"
            return f"{prefix}-{item.external_id}"
        return title_year_key(item.title, item.year)


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def quality_name(payload: Any) -> str | None:
    """Extract ``quality.quality.name`` from a file or queue record."""

    if not isinstance(payload, dict):
        return None
    return ((payload.get("quality") or {}).get("quality") or {}).get("name")


def movie_item(instance: InstanceConnection, payload: dict[str, Any]) -> MediaItem:
    """Project a Radarr movie resource."""

    movie_file = payload.get("movieFile")
    return MediaItem(
        instance=instance,
        kind="movie",
        id=int(payload["id"]),
        title=payload.get("title") or "",
        year=_int_or_none(payload.get("year")),
        external_id=_int_or_none(payload.get("tmdbId")),
        size_on_disk=int(payload.get("sizeOnDisk") or 0),
        path=payload.get("path") or "",
        quality=quality_name(movie_file),
        quality_profile_id=_int_or_none(payload.get("qualityProfileId")),
        has_file=bool(payload.get("hasFile")),
        monitored=bool(payload.get("monitored")),
    )


def series_item(instance: InstanceConnection, payload: dict[str, Any]) -> MediaItem:
    """Project a Sonarr series resource."""

    statistics = payload.get("statistics") or {}
    return MediaItem(
        instance=instance,
        kind="series",
        id=int(payload["id"]),
        title=payload.get("title") or "",
        year=_int_or_none(payload.get("year")),
        external_id=_int_or_none(payload.get("tvdbId")),
        size_on_disk=int(statistics.get("sizeOnDisk") or 0),
        path=payload.get("path") or "",
        quality=None,
        quality_profile_id=_int_or_none(payload.get("qualityProfileId")),
        has_file=int(statistics.get("episodeFileCount") or 0) > 0,
        monitored=bool(payload.get("monitored")),
    )
