"""Pydantic models exposed by the Managarr API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

InstanceType = Literal["sonarr", "radarr", "plex"]
ArrType = Literal["sonarr", "radarr"]
MediaKind = Literal["movies", "series"]
CompareMode = Literal["plex-vs-arr", "arr-vs-plex"]
HealthState = Literal["online", "offline", "disabled"]
ConnectionFailureReason = Literal[
    "ok", "invalid_credentials", "connection_refused", "timeout", "failed"
]
BulkActionName = Literal["monitor", "unmonitor", "set_quality_profile", "delete", "move"]


def _validate_http_url(value: str) -> str:
    trimmed = value.strip()
    parsed = urlparse(trimmed)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return trimmed


class PingStatus(BaseModel):
    """Service heartbeat payload."""

    status: Literal["ok"] = Field(default="ok")
    version: str = Field(default="0.1.0", description="Semantic version of the API service.")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class InstanceCreate(BaseModel):
    """Payload accepted when registering a new upstream instance."""

    name: str = Field(..., min_length=1, max_length=100)
    type: InstanceType
    url: str = Field(..., description="Base URL of the upstream server.")
    api_key: str = Field(..., min_length=1, description="API key or Plex token.")
    is_enabled: bool = Field(default=True)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _validate_http_url(value)


class InstanceUpdate(BaseModel):
    """Partial update for an existing instance."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    type: InstanceType | None = Field(
        default=None, description="Accepted only when equal to the stored type."
    )
    url: str | None = Field(default=None)
    api_key: str | None = Field(default=None, min_length=1)
    is_enabled: bool | None = Field(default=None)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str | None) -> str | None:
        if value is None:
            return value
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str | None) -> str | None:
        return None if value is None else _validate_http_url(value)


class InstanceModel(BaseModel):
    """Public view of an instance; the credential is never included."""

    id: str
    name: str
    type: InstanceType
    url: str
    is_enabled: bool
    created_at: datetime
    updated_at: datetime


class MessageResponse(BaseModel):
    message: str


class ConnectionTestRequest(BaseModel):
    """Candidate connection details checked before saving an instance."""

    type: InstanceType
    url: str
    api_key: str = Field(..., min_length=1)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _validate_http_url(value)


class ConnectionTestResult(BaseModel):
    """Outcome of a single status request against an upstream server."""

    success: bool
    message: str
    reason: ConnectionFailureReason = Field(
        default="ok", description="Machine-readable classification of the outcome."
    )
    version: str | None = Field(default=None, description="Version reported by the upstream.")
    error: str | None = Field(default=None, description="Underlying error for generic failures.")


class InstanceHealth(BaseModel):
    """Health of one configured instance."""

    id: str
    name: str
    type: InstanceType
    is_enabled: bool
    status: HealthState
    version: str | None = None
    message: str | None = None
    checked_at: datetime


class HealthSnapshot(BaseModel):
    """Most recent result produced by the background health poller."""

    refreshed_at: datetime | None = Field(
        default=None, description="When the last poll cycle finished; null before the first."
    )
    instances: list[InstanceHealth] = Field(default_factory=list)


class SettingModel(BaseModel):
    key: str
    value: Any = None


class SettingUpdate(BaseModel):
    value: Any = Field(..., description="Arbitrary JSON value stored under the key.")


class ExcludedLibrariesUpdate(BaseModel):
    libraries: list[str] = Field(
        ..., description="Library identifiers in '<instance_id>:<library_key>' form."
    )


class TmdbApiKeyModel(BaseModel):
    api_key: str = Field(default="")


class PosterModel(BaseModel):
    poster_url: str | None = None


class FailedInstanceModel(BaseModel):
    """An instance whose contribution is missing from a report."""

    id: str
    name: str
    error: str


class DuplicateEntryModel(BaseModel):
    instance_id: str
    instance_name: str
    item_id: int
    path: str
    size_on_disk: int


class DuplicateGroupModel(BaseModel):
    key: str
    title: str
    year: int | None = None
    external_id: int | None = None
    entries: list[DuplicateEntryModel]
    total_size: int


class DuplicatesReport(BaseModel):
    media: MediaKind
    groups: list[DuplicateGroupModel]
    total_items: int
    reclaimable_size: int = Field(
        description="Bytes held by the extra copies, assuming one copy per group is kept."
    )
    failed_instances: list[FailedInstanceModel] = Field(default_factory=list)


class CutoffItemModel(BaseModel):
    id: str
    title: str
    subtitle: str | None = None
    year: int | None = None
    current_quality: str
    path: str
    instance_id: str
    instance_name: str
    type: Literal["movie", "episode"]


class CutoffReport(BaseModel):
    media: MediaKind
    items: list[CutoffItemModel]
    failed_instances: list[FailedInstanceModel] = Field(default_factory=list)


class CompareRowModel(BaseModel):
    title: str
    year: int | None = None
    in_plex: bool
    in_arr: bool
    status: Literal["synced", "only_plex", "only_arr"]
    type: Literal["movie", "series"]
    plex_key: str | None = None
    arr_id: int | None = None
    arr_instance_id: str | None = None


class CompareReport(BaseModel):
    media: MediaKind
    mode: CompareMode
    rows: list[CompareRowModel]
    in_both: int
    only_plex: int
    only_arr: int
    failed_instances: list[FailedInstanceModel] = Field(default_factory=list)


class DiskSpaceItemModel(BaseModel):
    id: int
    title: str
    year: int | None = None
    size: int
    type: Literal["series", "movie"]
    instance_id: str
    instance_name: str


class DiskSpaceInstanceModel(BaseModel):
    instance_id: str
    instance_name: str
    instance_type: ArrType
    item_count: int
    total_size: int


class DiskSpaceReport(BaseModel):
    total_size: int
    series_size: int
    movie_size: int
    series_count: int
    movie_count: int
    instances: list[DiskSpaceInstanceModel]
    top_items: list[DiskSpaceItemModel]
    failed_instances: list[FailedInstanceModel] = Field(default_factory=list)


class QualityProfileItemModel(BaseModel):
    id: int
    title: str
    size: int


class QualityProfileStatsModel(BaseModel):
    profile_id: int
    profile_name: str
    instance_id: str
    instance_name: str
    instance_type: ArrType
    item_count: int
    total_size: int
    items: list[QualityProfileItemModel]


class QualityProfilesReport(BaseModel):
    profiles: list[QualityProfileStatsModel]
    total_size: int
    failed_instances: list[FailedInstanceModel] = Field(default_factory=list)


class QueueItemModel(BaseModel):
    id: str
    title: str
    media_title: str
    subtitle: str | None = None
    status: str
    state_label: str
    tracked_download_state: str | None = None
    size: int
    size_left: int
    progress: float = Field(description="Completion percentage between 0 and 100.")
    time_left: str | None = None
    quality: str
    download_client: str | None = None
    indexer: str | None = None
    instance_id: str
    instance_name: str
    type: Literal["movie", "episode"]
    has_error: bool
    error_message: str | None = None


class QueueReport(BaseModel):
    items: list[QueueItemModel]
    total: int
    downloading: int
    with_errors: int
    failed_instances: list[FailedInstanceModel] = Field(default_factory=list)


class ActivityItemModel(BaseModel):
    id: str
    media_title: str
    subtitle: str | None = None
    source_title: str
    event_type: str
    event_label: str
    date: datetime
    quality: str
    indexer: str | None = None
    download_client: str | None = None
    instance_id: str
    instance_name: str
    type: Literal["movie", "episode"]


class ActivityReport(BaseModel):
    items: list[ActivityItemModel]
    event_counts: dict[str, int] = Field(default_factory=dict)
    failed_instances: list[FailedInstanceModel] = Field(default_factory=list)


class CommandModel(BaseModel):
    id: int
    name: str
    command_name: str | None = None
    status: str
    result: str | None = None
    queued: datetime
    started: datetime | None = None
    ended: datetime | None = None
    message: str | None = None
    body: dict[str, Any] | None = None


class InstanceCommandsModel(BaseModel):
    instance_id: str
    instance_name: str
    instance_type: ArrType
    commands: list[CommandModel]


class CommandsReport(BaseModel):
    instances: list[InstanceCommandsModel]
    active: int = Field(description="Number of listed commands still queued or started.")
    failed_instances: list[FailedInstanceModel] = Field(default_factory=list)


class MoveTarget(BaseModel):
    id: int
    new_path: str = Field(..., min_length=1)


class BulkActionRequest(BaseModel):
    """A single action applied to every selected item of one instance."""

    action: BulkActionName
    ids: list[int] = Field(default_factory=list)
    quality_profile_id: int | None = Field(default=None, ge=1)
    delete_files: bool = Field(default=False)
    destination: str | None = Field(
        default=None,
        description="Root folder for moves; each item keeps its own media folder name.",
    )
    moves: list[MoveTarget] | None = Field(
        default=None, description="Explicit per-item target paths for moves."
    )

    @model_validator(mode="after")
    def _check_action_arguments(self) -> "BulkActionRequest":
        if self.action == "move":
            if not self.moves and not (self.destination and self.ids):
                raise ValueError("move requires 'moves' or both 'destination' and 'ids'")
            return self
        if not self.ids:
            raise ValueError(f"{self.action} requires at least one id")
        if self.action == "set_quality_profile" and self.quality_profile_id is None:
            raise ValueError("set_quality_profile requires 'quality_profile_id'")
        return self


class BulkActionResult(BaseModel):
    action: BulkActionName
    instance_id: str
    processed: int
