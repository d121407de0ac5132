"""Cross-instance reports computed from live Sonarr, Radarr and Plex data."""
from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Callable

from ..schemas import (
    ActivityItemModel,
    ActivityReport,
    CommandModel,
    CommandsReport,
    CompareMode,
    CompareReport,
    CompareRowModel,
    CutoffItemModel,
    CutoffReport,
    DiskSpaceInstanceModel,
    DiskSpaceItemModel,
    DiskSpaceReport,
    DuplicateEntryModel,
    DuplicateGroupModel,
    DuplicatesReport,
    InstanceCommandsModel,
    MediaKind,
    QualityProfileItemModel,
    QualityProfilesReport,
    QualityProfileStatsModel,
    QueueItemModel,
    QueueReport,
)
from ..stores.instance_store import InstanceConnection
from .fanout import FanoutResult, fan_out
from .matching import (
    ExternalIdMatcher,
    LibraryEntry,
    MediaItem,
    MediaMatcher,
    TitleYearMatcher,
    movie_item,
    quality_name,
    series_item,
)
from .upstream import UpstreamProxy

logger = logging.getLogger(__name__)

UNKNOWN_QUALITY = "Unknown"
CUTOFF_PAGE_SIZE = 1000
QUEUE_PAGE_SIZE = 100
HISTORY_PAGE_SIZE = 50
COMMAND_WINDOW = timedelta(minutes=5)
COMMANDS_PER_INSTANCE = 20

EVENT_LABELS = {
    "grabbed": "Grabbed",
    "downloadFolderImported": "Imported",
    "downloadFailed": "Failed",
    "movieFileDeleted": "Deleted",
    "episodeFileDeleted": "Deleted",
    "movieFileRenamed": "Renamed",
    "episodeFileRenamed": "Renamed",
}

STATE_LABELS = {
    "downloading": "Downloading",
    "paused": "Paused",
    "completed": "Completed",
    "failed": "Failed",
    "warning": "Warning",
    "queued": "Queued",
}

TRACKED_STATE_LABELS = {
    "importBlocked": "Import Blocked",
    "importPending": "Import Pending",
    "importing": "Importing",
}


def arr_kind(media: MediaKind) -> str:
    return "radarr" if media == "movies" else "sonarr"


def episode_code(season: Any, episode: Any) -> str:
    return f"S{int(season or 0):02d}E{int(episode or 0):02d}"


def queue_state_label(status: str, tracked_state: str | None) -> str:
    if tracked_state in TRACKED_STATE_LABELS:
        return TRACKED_STATE_LABELS[tracked_state]
    return STATE_LABELS.get(status, status)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp from Sonarr/Radarr into an aware datetime."""

    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _records(payload: Any) -> list[dict[str, Any]]:
    """Return the ``records`` list of a paged response, accepting bare lists too."""

    if isinstance(payload, dict):
        return list(payload.get("records") or [])
    if isinstance(payload, list):
        return payload
    return []


class ReportService:
    """Fan out to every enabled instance of the relevant kind and reduce the results.

    Instances that fail are omitted from the data and listed in the report's
    ``failed_instances``.
    """

    def __init__(
        self,
        proxy: UpstreamProxy,
        list_instances: Callable[[str], list[InstanceConnection]],
        excluded_libraries: Callable[[], list[str]],
        *,
        concurrency: int = 4,
    ) -> None:
        self._proxy = proxy
        self._list_instances = list_instances
        self._excluded_libraries = excluded_libraries
        self._concurrency = concurrency

    # ------------------------------------------------------------------
    # Shared fetch helpers

    async def _fan_out(self, kind: str, fetch, label: str) -> FanoutResult:
        return await fan_out(
            self._list_instances(kind), fetch, limit=self._concurrency, label=label
        )

    async def catalog(self, instance: InstanceConnection) -> list[MediaItem]:
        """Fetch every series or movie of one Sonarr/Radarr instance."""

        if instance.type == "radarr":
            payload = await self._proxy.fetch_json(instance, "/movie")
            return [movie_item(instance, movie) for movie in payload or []]
        payload = await self._proxy.fetch_json(instance, "/series")
        return [series_item(instance, series) for series in payload or []]

    async def catalogs(self, media: MediaKind) -> FanoutResult[list[MediaItem]]:
        return await self._fan_out(arr_kind(media), self.catalog, media)

    # ------------------------------------------------------------------
    # Duplicates

    async def duplicates(
        self, media: MediaKind, matcher: MediaMatcher | None = None
    ) -> DuplicatesReport:
        """Group titles present on two or more instances, largest groups first."""

        matcher = matcher or ExternalIdMatcher()
        fetched = await self.catalogs(media)
        items = [item for _, batch in fetched.results for item in batch]
        groups = find_duplicates(items, matcher)
        reclaimable = sum(
            group.total_size - group.total_size / len(group.entries) for group in groups
        )
        return DuplicatesReport(
            media=media,
            groups=groups,
            total_items=len(groups),
            reclaimable_size=int(round(reclaimable)),
            failed_instances=fetched.failed_instances(),
        )

    # ------------------------------------------------------------------
    # Cutoff unmet

    async def cutoff_unmet(self, media: MediaKind) -> CutoffReport:
        fetch = self._movie_cutoff if media == "movies" else self._episode_cutoff
        fetched = await self._fan_out(arr_kind(media), fetch, "cutoff unmet")
        items = [item for _, batch in fetched.results for item in batch]
        return CutoffReport(media=media, items=items, failed_instances=fetched.failed_instances())

    async def _movie_cutoff(self, instance: InstanceConnection) -> list[CutoffItemModel]:
        cutoff, movies = await asyncio.gather(
            self._proxy.fetch_json(
                instance, "/wanted/cutoff", params={"pageSize": CUTOFF_PAGE_SIZE}
            ),
            self.catalog(instance),
        )
        return build_movie_cutoff(instance, _records(cutoff), movies)

    async def _episode_cutoff(self, instance: InstanceConnection) -> list[CutoffItemModel]:
        cutoff = await self._proxy.fetch_json(
            instance,
            "/wanted/cutoff",
            params={
                "pageSize": CUTOFF_PAGE_SIZE,
                "includeSeries": "true",
                "includeEpisodeFile": "true",
            },
        )
        items = []
        for record in _records(cutoff):
            series = record.get("series") or {}
            items.append(
                CutoffItemModel(
                    id=f"sonarr-{instance.id}-{record['id']}",
                    title=series.get("title") or "Unknown Series",
                    subtitle=(
                        f"{episode_code(record.get('seasonNumber'), record.get('episodeNumber'))}"
                        f" - {record.get('title') or ''}"
                    ),
                    year=series.get("year"),
                    current_quality=quality_name(record.get("episodeFile")) or UNKNOWN_QUALITY,
                    path=series.get("path") or "",
                    instance_id=instance.id,
                    instance_name=instance.name,
                    type="episode",
                )
            )
        return items

    # ------------------------------------------------------------------
    # Compare

    async def compare(
        self,
        media: MediaKind,
        mode: CompareMode = "plex-vs-arr",
        matcher: MediaMatcher | None = None,
    ) -> CompareReport:
        """Diff the Plex catalog against the downloaded Sonarr/Radarr catalog."""

        excluded = set(self._excluded_libraries())

        async def _plex(instance: InstanceConnection) -> list[LibraryEntry]:
            return await self.plex_entries(instance, media, excluded)

        plex_fetch, arr_fetch = await asyncio.gather(
            self._fan_out("plex", _plex, "Plex library"),
            self.catalogs(media),
        )
        plex_items = [entry for _, batch in plex_fetch.results for entry in batch]
        arr_items = [item for _, batch in arr_fetch.results for item in batch if item.has_file]
        rows = compare_catalogs(plex_items, arr_items, media, mode, matcher or TitleYearMatcher())
        return CompareReport(
            media=media,
            mode=mode,
            rows=rows,
            in_both=sum(1 for row in rows if row.status == "synced"),
            only_plex=sum(1 for row in rows if row.status == "only_plex"),
            only_arr=sum(1 for row in rows if row.status == "only_arr"),
            failed_instances=plex_fetch.merge(arr_fetch).failed_instances(),
        )

    async def plex_entries(
        self, instance: InstanceConnection, media: MediaKind, excluded: set[str]
    ) -> list[LibraryEntry]:
        """List every item of the non-excluded movie or show sections of a Plex server."""

        target_type = "movie" if media == "movies" else "show"
        kind = "movie" if media == "movies" else "series"
        sections = await self._proxy.fetch_json(instance, "/library/sections") or {}
        directories = (sections.get("MediaContainer") or {}).get("Directory") or []

        entries: list[LibraryEntry] = []
        for library in directories:
            if library.get("type") != target_type:
                continue
            if f"{instance.id}:{library.get('key')}" in excluded:
                continue
            content = await self._proxy.fetch_json(
                instance, f"/library/sections/{library['key']}/all"
            ) or {}
            for item in (content.get("MediaContainer") or {}).get("Metadata") or []:
                entries.append(
                    LibraryEntry(
                        instance=instance,
                        kind=kind,
                        title=item.get("title") or "",
                        year=item.get("year"),
                        rating_key=str(item["ratingKey"]) if item.get("ratingKey") else None,
                    )
                )
        return entries

    # ------------------------------------------------------------------
    # Disk space

    async def disk_space(self, top: int = 20) -> DiskSpaceReport:
        series_fetch, movie_fetch = await asyncio.gather(
            self.catalogs("series"), self.catalogs("movies")
        )
        fetched = series_fetch.merge(movie_fetch)

        items: list[DiskSpaceItemModel] = []
        per_instance: list[DiskSpaceInstanceModel] = []
        for instance, batch in fetched.results:
            sized = [item for item in batch if item.size_on_disk > 0]
            per_instance.append(
                DiskSpaceInstanceModel(
                    instance_id=instance.id,
                    instance_name=instance.name,
                    instance_type=instance.type,
                    item_count=len(sized),
                    total_size=sum(item.size_on_disk for item in sized),
                )
            )
            items.extend(
                DiskSpaceItemModel(
                    id=item.id,
                    title=item.title,
                    year=item.year,
                    size=item.size_on_disk,
                    type=item.kind,
                    instance_id=instance.id,
                    instance_name=instance.name,
                )
                for item in sized
            )

        items.sort(key=lambda item: item.size, reverse=True)
        per_instance.sort(key=lambda entry: entry.total_size, reverse=True)
        series = [item for item in items if item.type == "series"]
        movies = [item for item in items if item.type == "movie"]
        return DiskSpaceReport(
            total_size=sum(item.size for item in items),
            series_size=sum(item.size for item in series),
            movie_size=sum(item.size for item in movies),
            series_count=len(series),
            movie_count=len(movies),
            instances=per_instance,
            top_items=items[:top],
            failed_instances=fetched.failed_instances(),
        )

    # ------------------------------------------------------------------
    # Quality profiles

    async def quality_profiles(self) -> QualityProfilesReport:
        async def _fetch(instance: InstanceConnection) -> list[QualityProfileStatsModel]:
            items, profiles = await asyncio.gather(
                self.catalog(instance),
                self._proxy.fetch_json(instance, "/qualityprofile"),
            )
            names = {profile["id"]: profile.get("name") for profile in profiles or []}
            return group_by_quality_profile(instance, items, names)

        series_fetch, movie_fetch = await asyncio.gather(
            self._fan_out("sonarr", _fetch, "quality profiles"),
            self._fan_out("radarr", _fetch, "quality profiles"),
        )
        fetched = series_fetch.merge(movie_fetch)
        profiles = [stats for _, batch in fetched.results for stats in batch]
        profiles.sort(key=lambda stats: stats.total_size, reverse=True)
        return QualityProfilesReport(
            profiles=profiles,
            total_size=sum(stats.total_size for stats in profiles),
            failed_instances=fetched.failed_instances(),
        )

    # ------------------------------------------------------------------
    # Queue

    async def queue(self) -> QueueReport:
        async def _sonarr(instance: InstanceConnection) -> list[QueueItemModel]:
            payload = await self._proxy.fetch_json(
                instance,
                "/queue",
                params={
                    "pageSize": QUEUE_PAGE_SIZE,
                    "includeEpisode": "true",
                    "includeSeries": "true",
                },
            )
            return [queue_item(instance, record) for record in _records(payload)]

        async def _radarr(instance: InstanceConnection) -> list[QueueItemModel]:
            payload = await self._proxy.fetch_json(
                instance, "/queue", params={"pageSize": QUEUE_PAGE_SIZE, "includeMovie": "true"}
            )
            return [queue_item(instance, record) for record in _records(payload)]

        series_fetch, movie_fetch = await asyncio.gather(
            self._fan_out("sonarr", _sonarr, "queue"),
            self._fan_out("radarr", _radarr, "queue"),
        )
        fetched = series_fetch.merge(movie_fetch)
        items = [item for _, batch in fetched.results for item in batch]
        items.sort(
            key=lambda item: (not item.has_error, item.status != "downloading", -item.progress)
        )
        return QueueReport(
            items=items,
            total=len(items),
            downloading=sum(1 for item in items if item.status == "downloading"),
            with_errors=sum(1 for item in items if item.has_error),
            failed_instances=fetched.failed_instances(),
        )

    # ------------------------------------------------------------------
    # Activity (history)

    async def activity(self, page_size: int = HISTORY_PAGE_SIZE) -> ActivityReport:
        async def _sonarr(instance: InstanceConnection) -> list[ActivityItemModel]:
            payload = await self._proxy.fetch_json(
                instance,
                "/history",
                params={
                    "pageSize": page_size,
                    "sortKey": "date",
                    "sortDirection": "descending",
                    "includeSeries": "true",
                    "includeEpisode": "true",
                },
            )
            return [history_item(instance, record) for record in _records(payload)]

        async def _radarr(instance: InstanceConnection) -> list[ActivityItemModel]:
            payload = await self._proxy.fetch_json(
                instance,
                "/history",
                params={
                    "pageSize": page_size,
                    "sortKey": "date",
                    "sortDirection": "descending",
                    "includeMovie": "true",
                },
            )
            return [history_item(instance, record) for record in _records(payload)]

        series_fetch, movie_fetch = await asyncio.gather(
            self._fan_out("sonarr", _sonarr, "history"),
            self._fan_out("radarr", _radarr, "history"),
        )
        fetched = series_fetch.merge(movie_fetch)
        items = [item for _, batch in fetched.results for item in batch]
        items.sort(key=lambda item: item.date, reverse=True)
        return ActivityReport(
            items=items,
            event_counts=dict(Counter(item.event_type for item in items)),
            failed_instances=fetched.failed_instances(),
        )

    # ------------------------------------------------------------------
    # Command activity

    async def commands(self, now: datetime | None = None) -> CommandsReport:
        """Recent or still running move commands on every automation instance."""

        reference = now or datetime.now(timezone.utc)

        async def _fetch(instance: InstanceConnection) -> list[CommandModel]:
            payload = await self._proxy.fetch_json(instance, "/command")
            return recent_move_commands(payload or [], reference)

        series_fetch, movie_fetch = await asyncio.gather(
            self._fan_out("sonarr", _fetch, "commands"),
            self._fan_out("radarr", _fetch, "commands"),
        )
        fetched = series_fetch.merge(movie_fetch)
        instances = [
            InstanceCommandsModel(
                instance_id=instance.id,
                instance_name=instance.name,
                instance_type=instance.type,
                commands=commands,
            )
            for instance, commands in fetched.results
            if commands
        ]
        active = sum(
            1
            for entry in instances
            for command in entry.commands
            if command.status in {"queued", "started"}
        )
        return CommandsReport(
            instances=instances,
            active=active,
            failed_instances=fetched.failed_instances(),
        )


# ----------------------------------------------------------------------
# Pure reductions


def find_duplicates(items: list[MediaItem], matcher: MediaMatcher) -> list[DuplicateGroupModel]:
    """Group items by match key, keeping groups spread over two or more instances."""

    groups: dict[str, DuplicateGroupModel] = {}
    for item in items:
        key = matcher.key(item)
        group = groups.get(key)
        if group is None:
            group = groups[key] = DuplicateGroupModel(
                key=key,
                title=item.title,
                year=item.year,
                external_id=item.external_id,
                entries=[],
                total_size=0,
            )
        group.entries.append(
            DuplicateEntryModel(
                instance_id=item.instance.id,
                instance_name=item.instance.name,
                item_id=item.id,
                path=item.path,
                size_on_disk=item.size_on_disk,
            )
        )
        group.total_size += item.size_on_disk

    duplicates = [
        group
        for group in groups.values()
        if len({entry.instance_id for entry in group.entries}) >= 2
    ]
    duplicates.sort(key=lambda group: group.total_size, reverse=True)
    return duplicates


def build_movie_cutoff(
    instance: InstanceConnection,
    records: list[dict[str, Any]],
    movies: list[MediaItem],
) -> list[CutoffItemModel]:
    """List below-cutoff movies with their on-disk quality from the same instance."""

    quality_by_id = {movie.id: movie.quality for movie in movies if movie.quality}
    return [
        CutoffItemModel(
            id=f"radarr-{instance.id}-{record['id']}",
            title=record.get("title") or "",
            year=record.get("year"),
            current_quality=quality_by_id.get(record["id"]) or UNKNOWN_QUALITY,
            path=record.get("path") or "",
            instance_id=instance.id,
            instance_name=instance.name,
            type="movie",
        )
        for record in records
    ]


def compare_catalogs(
    plex_items: list[LibraryEntry],
    arr_items: list[MediaItem],
    media: MediaKind,
    mode: CompareMode,
    matcher: MediaMatcher,
) -> list[CompareRowModel]:
    """Union both catalogs by match key and flag which side each title is on."""

    plex_by_key = {matcher.key(entry): entry for entry in plex_items}
    arr_by_key = {matcher.key(item): item for item in arr_items}
    kind = "movie" if media == "movies" else "series"

    rows: list[CompareRowModel] = []
    for key in {*plex_by_key, *arr_by_key}:
        plex_entry = plex_by_key.get(key)
        arr_entry = arr_by_key.get(key)
        if plex_entry and arr_entry:
            status = "synced"
        elif plex_entry:
            status = "only_plex"
        else:
            status = "only_arr"
        source = plex_entry or arr_entry
        rows.append(
            CompareRowModel(
                title=source.title,
                year=(plex_entry.year if plex_entry and plex_entry.year else None)
                or (arr_entry.year if arr_entry else None),
                in_plex=plex_entry is not None,
                in_arr=arr_entry is not None,
                status=status,
                type=kind,
                plex_key=plex_entry.rating_key if plex_entry else None,
                arr_id=arr_entry.id if arr_entry else None,
                arr_instance_id=arr_entry.instance.id if arr_entry else None,
            )
        )

    first = "only_plex" if mode == "plex-vs-arr" else "only_arr"
    rows.sort(key=lambda row: (row.status != first, row.title.casefold()))
    return rows


def group_by_quality_profile(
    instance: InstanceConnection,
    items: list[MediaItem],
    names: dict[int, str | None],
) -> list[QualityProfileStatsModel]:
    stats: dict[int, QualityProfileStatsModel] = {}
    for item in items:
        profile_id = item.quality_profile_id or 0
        entry = stats.get(profile_id)
        if entry is None:
            entry = stats[profile_id] = QualityProfileStatsModel(
                profile_id=profile_id,
                profile_name=names.get(profile_id) or UNKNOWN_QUALITY,
                instance_id=instance.id,
                instance_name=instance.name,
                instance_type=instance.type,
                item_count=0,
                total_size=0,
                items=[],
            )
        entry.item_count += 1
        entry.total_size += item.size_on_disk
        entry.items.append(
            QualityProfileItemModel(id=item.id, title=item.title, size=item.size_on_disk)
        )
    for entry in stats.values():
        entry.items.sort(key=lambda member: member.size, reverse=True)
    return list(stats.values())


def queue_item(instance: InstanceConnection, record: dict[str, Any]) -> QueueItemModel:
    size = int(record.get("size") or 0)
    size_left = int(record.get("sizeleft") or 0)
    status = record.get("status") or "unknown"
    tracked_state = record.get("trackedDownloadState")

    if instance.type == "sonarr":
        media_title = (record.get("series") or {}).get("title") or "Unknown Series"
        episode = record.get("episode")
        subtitle = (
            f"{episode_code(record.get('seasonNumber', episode.get('seasonNumber')), episode.get('episodeNumber'))}"
            f" - {episode.get('title') or ''}"
            if episode
            else None
        )
        item_type = "episode"
    else:
        movie = record.get("movie") or {}
        media_title = movie.get("title") or "Unknown Movie"
        subtitle = f"({movie['year']})" if movie.get("year") else None
        item_type = "movie"

    return QueueItemModel(
        id=f"{instance.type}-{instance.id}-{record['id']}",
        title=record.get("title") or "",
        media_title=media_title,
        subtitle=subtitle,
        status=status,
        state_label=queue_state_label(status, tracked_state),
        tracked_download_state=tracked_state,
        size=size,
        size_left=size_left,
        progress=((size - size_left) / size) * 100 if size > 0 else 0.0,
        time_left=record.get("timeleft"),
        quality=quality_name(record) or UNKNOWN_QUALITY,
        download_client=record.get("downloadClient"),
        indexer=record.get("indexer"),
        instance_id=instance.id,
        instance_name=instance.name,
        type=item_type,
        has_error=tracked_state == "importBlocked" or status == "failed",
        error_message=record.get("errorMessage"),
    )


def history_item(instance: InstanceConnection, record: dict[str, Any]) -> ActivityItemModel:
    event_type = record.get("eventType") or "unknown"
    data = record.get("data") or {}

    if instance.type == "sonarr":
        media_title = (record.get("series") or {}).get("title") or "Unknown Series"
        episode = record.get("episode")
        subtitle = (
            f"{episode_code(episode.get('seasonNumber'), episode.get('episodeNumber'))}"
            f" - {episode.get('title') or ''}"
            if episode
            else None
        )
        item_type = "episode"
    else:
        movie = record.get("movie") or {}
        media_title = movie.get("title") or "Unknown Movie"
        subtitle = f"({movie['year']})" if movie.get("year") else None
        item_type = "movie"

    return ActivityItemModel(
        id=f"{instance.type}-{instance.id}-{record['id']}",
        media_title=media_title,
        subtitle=subtitle,
        source_title=record.get("sourceTitle") or "",
        event_type=event_type,
        event_label=EVENT_LABELS.get(event_type, event_type),
        date=parse_timestamp(record.get("date")) or datetime.fromtimestamp(0, timezone.utc),
        quality=quality_name(record) or UNKNOWN_QUALITY,
        indexer=data.get("indexer"),
        download_client=data.get("downloadClient"),
        instance_id=instance.id,
        instance_name=instance.name,
        type=item_type,
    )


def recent_move_commands(payload: list[dict[str, Any]], now: datetime) -> list[CommandModel]:
    """Keep move commands that are still active or were queued within the window."""

    selected: list[CommandModel] = []
    for command in payload:
        name = command.get("name") or ""
        queued = parse_timestamp(command.get("queued"))
        if "move" not in name.lower() or queued is None:
            continue
        status = command.get("status") or ""
        is_active = status in {"queued", "started"}
        is_recent = queued > now - COMMAND_WINDOW
        if not (is_active or is_recent):
            continue
        selected.append(
            CommandModel(
                id=command["id"],
                name=name,
                command_name=command.get("commandName"),
                status=status,
                result=command.get("result"),
                queued=queued,
                started=parse_timestamp(command.get("started")),
                ended=parse_timestamp(command.get("ended")),
                message=command.get("message"),
                body=command.get("body"),
            )
        )
    selected.sort(key=lambda command: command.queued, reverse=True)
    return selected[:COMMANDS_PER_INSTANCE]
