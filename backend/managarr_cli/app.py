"""Command line interface for the Managarr API."""
from __future__ import annotations

import asyncio
import json
from typing import Callable, List, Optional

import httpx
import typer

from ..managarr_api.services.polling import Poller
from .client import create_client


DEFAULT_API_BASE = "http://localhost:3005"

app = typer.Typer(help="Manage Sonarr, Radarr and Plex servers through the Managarr API.")
instances_app = typer.Typer(help="Register and inspect upstream instances.")
app.add_typer(instances_app, name="instances")
settings_app = typer.Typer(help="Read and change stored settings.")
app.add_typer(settings_app, name="settings")
reports_app = typer.Typer(help="Cross-instance reports.")
app.add_typer(reports_app, name="reports")
bulk_app = typer.Typer(help="Apply bulk actions to series or movies.")
app.add_typer(bulk_app, name="bulk")
tmdb_app = typer.Typer(help="Look up TMDB metadata.")
app.add_typer(tmdb_app, name="tmdb")


INSTANCE_TYPES = {"sonarr", "radarr", "plex"}
MEDIA_CHOICES = {"movies", "series"}


def _api_base_option() -> typer.Option:
    return typer.Option(
        DEFAULT_API_BASE,
        "--api-base",
        help="Base URL for the Managarr API service.",
        show_default=True,
        envvar="MANAGARR_API_BASE",
    )


def _watch_option() -> typer.Option:
    return typer.Option(
        False,
        "--watch/--no-watch",
        help="Keep polling and print every refresh until interrupted.",
        show_default=True,
    )


def _interval_option() -> typer.Option:
    return typer.Option(5.0, min=0.1, help="Seconds between refreshes in watch mode.")


def _count_option() -> typer.Option:
    return typer.Option(
        None, "--count", min=1, help="Stop watching after this many refreshes."
    )


def _echo_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict) and "detail" in payload:
        detail = payload["detail"]
        return detail if isinstance(detail, str) else json.dumps(detail)
    return response.text


def _check(response: httpx.Response, *, not_found: str | None = None) -> object:
    """Return the decoded body, exiting with a message on error responses."""

    if not_found is not None and response.status_code == 404:
        typer.echo(not_found, err=True)
        raise typer.Exit(code=1)
    if response.status_code >= 400:
        typer.echo(f"Request failed ({response.status_code}): {_detail(response)}", err=True)
        raise typer.Exit(code=1)
    return response.json()


def _require_choice(value: str, choices: set[str], label: str) -> None:
    if value not in choices:
        allowed = ", ".join(sorted(choices))
        typer.echo(f"Invalid {label} '{value}'. Choose from: {allowed}", err=True)
        raise typer.Exit(code=1)


def _watch(fetch: Callable[[], object], interval: float, count: int | None) -> None:
    """Poll ``fetch`` from a worker thread and print each result."""

    async def _run() -> None:
        finished = asyncio.Event()
        seen = 0

        def _on_result(payload: object) -> None:
            nonlocal seen
            _echo_json(payload)
            seen += 1
            if count is not None and seen >= count:
                finished.set()

        def _on_error(exc: Exception) -> None:
            typer.echo(f"Refresh failed: {exc}", err=True)

        poller = Poller(lambda: asyncio.to_thread(fetch), interval, _on_result, _on_error)
        await poller.start()
        try:
            await finished.wait()
        finally:
            await poller.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:  # pragma: no cover - interactive exit
        pass


def _get_json(client: httpx.Client, path: str, params: dict[str, object] | None = None) -> object:
    response = client.get(path, params=params)
    response.raise_for_status()
    return response.json()


@app.command()
def ping(api_base: str = _api_base_option()) -> None:
    """Call the /api/ping endpoint and pretty-print the response."""

    with create_client(api_base) as client:
        _echo_json(_check(client.get("/api/ping")))


@app.command()
def health(
    instance_id: Optional[str] = typer.Argument(None, help="Check only this instance."),
    snapshot: bool = typer.Option(
        False,
        "--snapshot/--live",
        help="Show the last background poll instead of checking now.",
        show_default=True,
    ),
    watch: bool = _watch_option(),
    interval: float = _interval_option(),
    count: Optional[int] = _count_option(),
    api_base: str = _api_base_option(),
) -> None:
    """Check instance health now, or show the server's latest snapshot."""

    if snapshot:
        path = "/api/health/snapshot"
    elif instance_id:
        path = f"/api/health/{instance_id}"
    else:
        path = "/api/health"

    with create_client(api_base) as client:
        if watch:
            _watch(lambda: _get_json(client, path), interval, count)
            return
        _echo_json(_check(client.get(path), not_found="Instance not found"))


@instances_app.command("list")
def list_instances(
    instance_type: Optional[str] = typer.Option(
        None, "--type", help="Only list instances of this type (sonarr, radarr or plex)."
    ),
    api_base: str = _api_base_option(),
) -> None:
    """List registered instances."""

    path = "/api/instances"
    if instance_type is not None:
        _require_choice(instance_type, INSTANCE_TYPES, "instance type")
        path = f"/api/instances/type/{instance_type}"
    with create_client(api_base) as client:
        _echo_json(_check(client.get(path)))


@instances_app.command("show")
def show_instance(
    instance_id: str = typer.Argument(..., help="Identifier of the instance."),
    api_base: str = _api_base_option(),
) -> None:
    with create_client(api_base) as client:
        _echo_json(_check(client.get(f"/api/instances/{instance_id}"), not_found="Instance not found"))


@instances_app.command("add")
def add_instance(
    name: str = typer.Option(..., help="Display name."),
    instance_type: str = typer.Option(..., "--type", help="sonarr, radarr or plex."),
    url: str = typer.Option(..., help="Base URL of the server."),
    api_key: str = typer.Option(..., help="API key, or X-Plex-Token for Plex."),
    enabled: bool = typer.Option(True, "--enabled/--disabled", show_default=True),
    test_first: bool = typer.Option(
        False,
        "--test/--no-test",
        help="Run a connection test and only save when it succeeds.",
        show_default=True,
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Register a new instance."""

    _require_choice(instance_type, INSTANCE_TYPES, "instance type")
    with create_client(api_base) as client:
        if test_first:
            result = _check(
                client.post(
                    "/api/instances/test",
                    json={"type": instance_type, "url": url, "api_key": api_key},
                )
            )
            if not result.get("success"):  # type: ignore[union-attr]
                typer.echo(f"Connection test failed: {result.get('message')}", err=True)  # type: ignore[union-attr]
                raise typer.Exit(code=1)
        payload = {
            "name": name,
            "type": instance_type,
            "url": url,
            "api_key": api_key,
            "is_enabled": enabled,
        }
        _echo_json(_check(client.post("/api/instances", json=payload)))


@instances_app.command("update")
def update_instance(
    instance_id: str = typer.Argument(..., help="Identifier of the instance."),
    name: Optional[str] = typer.Option(None, help="New display name."),
    url: Optional[str] = typer.Option(None, help="New base URL."),
    api_key: Optional[str] = typer.Option(None, help="New API key or token."),
    enabled: Optional[bool] = typer.Option(
        None, "--enabled/--disabled", help="Enable or disable the instance.", show_default=False
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Update selected fields of an instance."""

    payload: dict[str, object] = {}
    if name is not None:
        payload["name"] = name
    if url is not None:
        payload["url"] = url
    if api_key is not None:
        payload["api_key"] = api_key
    if enabled is not None:
        payload["is_enabled"] = enabled

    if not payload:
        typer.echo("No fields provided to update.", err=True)
        raise typer.Exit(code=1)

    with create_client(api_base) as client:
        response = client.put(f"/api/instances/{instance_id}", json=payload)
        _echo_json(_check(response, not_found="Instance not found"))


@instances_app.command("remove")
def remove_instance(
    instance_id: str = typer.Argument(..., help="Identifier of the instance."),
    api_base: str = _api_base_option(),
) -> None:
    with create_client(api_base) as client:
        response = client.delete(f"/api/instances/{instance_id}")
        _echo_json(_check(response, not_found="Instance not found"))


@instances_app.command("test")
def test_instance(
    instance_id: str = typer.Argument(..., help="Identifier of the instance."),
    api_base: str = _api_base_option(),
) -> None:
    """Test the stored connection details of an instance."""

    with create_client(api_base) as client:
        response = client.post(f"/api/instances/{instance_id}/test")
        result = _check(response, not_found="Instance not found")
    _echo_json(result)
    if not result.get("success"):  # type: ignore[union-attr]
        raise typer.Exit(code=1)


@settings_app.command("show")
def show_settings(
    key: Optional[str] = typer.Argument(None, help="Only show this key."),
    api_base: str = _api_base_option(),
) -> None:
    path = f"/api/settings/{key}" if key else "/api/settings"
    with create_client(api_base) as client:
        _echo_json(_check(client.get(path)))


@settings_app.command("set")
def set_setting(
    key: str = typer.Argument(..., help="Setting key."),
    value: str = typer.Argument(..., help="JSON value; bare words are stored as strings."),
    api_base: str = _api_base_option(),
) -> None:
    """Store a value under ``key``."""

    try:
        parsed: object = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    with create_client(api_base) as client:
        _echo_json(_check(client.put(f"/api/settings/{key}", json={"value": parsed})))


@settings_app.command("excluded-libraries")
def excluded_libraries(
    libraries: Optional[List[str]] = typer.Option(
        None,
        "--library",
        help="Replace the list; repeat for several '<instance_id>:<library_key>' entries.",
    ),
    clear: bool = typer.Option(False, "--clear", help="Remove every exclusion."),
    api_base: str = _api_base_option(),
) -> None:
    """Show or replace the Plex libraries hidden from the compare report."""

    path = "/api/settings/plex/excluded-libraries"
    with create_client(api_base) as client:
        if clear or libraries:
            response = client.put(path, json={"libraries": [] if clear else list(libraries or [])})
        else:
            response = client.get(path)
        _echo_json(_check(response))


@settings_app.command("tmdb-key")
def tmdb_key(
    value: Optional[str] = typer.Option(None, "--set", help="Store this TMDB API key."),
    api_base: str = _api_base_option(),
) -> None:
    path = "/api/settings/tmdb/api-key"
    with create_client(api_base) as client:
        if value is not None:
            response = client.put(path, json={"api_key": value})
        else:
            response = client.get(path)
        _echo_json(_check(response))


def _media_option() -> typer.Option:
    return typer.Option(..., "--media", help="movies or series.")


@reports_app.command("duplicates")
def report_duplicates(media: str = _media_option(), api_base: str = _api_base_option()) -> None:
    """Titles stored on more than one instance."""

    _require_choice(media, MEDIA_CHOICES, "media")
    with create_client(api_base) as client:
        _echo_json(_check(client.get("/api/reports/duplicates", params={"media": media})))


@reports_app.command("cutoff")
def report_cutoff(media: str = _media_option(), api_base: str = _api_base_option()) -> None:
    """Items below their quality profile cutoff."""

    _require_choice(media, MEDIA_CHOICES, "media")
    with create_client(api_base) as client:
        _echo_json(_check(client.get("/api/reports/cutoff-unmet", params={"media": media})))


@reports_app.command("compare")
def report_compare(
    media: str = _media_option(),
    mode: str = typer.Option("plex-vs-arr", help="plex-vs-arr or arr-vs-plex.", show_default=True),
    api_base: str = _api_base_option(),
) -> None:
    """Diff Plex libraries against Sonarr/Radarr."""

    _require_choice(media, MEDIA_CHOICES, "media")
    _require_choice(mode, {"plex-vs-arr", "arr-vs-plex"}, "mode")
    with create_client(api_base) as client:
        response = client.get("/api/reports/compare", params={"media": media, "mode": mode})
        _echo_json(_check(response))


@reports_app.command("disk-space")
def report_disk_space(
    top: int = typer.Option(20, min=1, max=500, help="Number of largest items to list."),
    api_base: str = _api_base_option(),
) -> None:
    with create_client(api_base) as client:
        _echo_json(_check(client.get("/api/reports/disk-space", params={"top": top})))


@reports_app.command("quality-profiles")
def report_quality_profiles(api_base: str = _api_base_option()) -> None:
    with create_client(api_base) as client:
        _echo_json(_check(client.get("/api/reports/quality-profiles")))


def _report(
    path: str,
    api_base: str,
    *,
    watch: bool,
    interval: float,
    count: int | None,
    params: dict[str, object] | None = None,
) -> None:
    with create_client(api_base) as client:
        if watch:
            _watch(lambda: _get_json(client, path, params), interval, count)
            return
        _echo_json(_check(client.get(path, params=params)))


@reports_app.command("queue")
def report_queue(
    watch: bool = _watch_option(),
    interval: float = _interval_option(),
    count: Optional[int] = _count_option(),
    api_base: str = _api_base_option(),
) -> None:
    """Download queue across every Sonarr and Radarr instance."""

    _report("/api/reports/queue", api_base, watch=watch, interval=interval, count=count)


@reports_app.command("activity")
def report_activity(
    page_size: int = typer.Option(50, min=1, max=250, help="History records per instance."),
    watch: bool = _watch_option(),
    interval: float = _interval_option(),
    count: Optional[int] = _count_option(),
    api_base: str = _api_base_option(),
) -> None:
    """Recent grab/import/delete history."""

    _report(
        "/api/reports/activity",
        api_base,
        watch=watch,
        interval=interval,
        count=count,
        params={"page_size": page_size},
    )


@reports_app.command("commands")
def report_commands(
    watch: bool = _watch_option(),
    interval: float = _interval_option(),
    count: Optional[int] = _count_option(),
    api_base: str = _api_base_option(),
) -> None:
    """Running or recent file move commands."""

    _report("/api/reports/commands", api_base, watch=watch, interval=interval, count=count)


@bulk_app.command("run")
def bulk_run(
    kind: str = typer.Argument(..., help="sonarr or radarr."),
    instance_id: str = typer.Argument(..., help="Identifier of the instance."),
    action: str = typer.Argument(
        ..., help="monitor, unmonitor, set_quality_profile, delete or move."
    ),
    ids: Optional[List[int]] = typer.Option(None, "--id", help="Item id; repeat for several."),
    quality_profile_id: Optional[int] = typer.Option(None, help="Target quality profile id."),
    delete_files: bool = typer.Option(
        False, "--delete-files/--keep-files", help="Also delete files on disk.", show_default=True
    ),
    destination: Optional[str] = typer.Option(
        None, help="Root folder for moves; each item keeps its folder name."
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Apply one action to the selected items of an instance."""

    _require_choice(kind, {"sonarr", "radarr"}, "kind")
    payload: dict[str, object] = {
        "action": action,
        "ids": list(ids or []),
        "delete_files": delete_files,
    }
    if quality_profile_id is not None:
        payload["quality_profile_id"] = quality_profile_id
    if destination is not None:
        payload["destination"] = destination

    with create_client(api_base) as client:
        response = client.post(f"/api/bulk/{kind}/{instance_id}", json=payload)
        _echo_json(_check(response, not_found="Instance not found"))


@tmdb_app.command("movie")
def tmdb_movie(tmdb_id: int = typer.Argument(...), api_base: str = _api_base_option()) -> None:
    with create_client(api_base) as client:
        _echo_json(_check(client.get(f"/api/tmdb/movie/{tmdb_id}"), not_found="Movie not found"))


@tmdb_app.command("tv")
def tmdb_tv(tmdb_id: int = typer.Argument(...), api_base: str = _api_base_option()) -> None:
    with create_client(api_base) as client:
        _echo_json(_check(client.get(f"/api/tmdb/tv/{tmdb_id}"), not_found="TV show not found"))


@tmdb_app.command("find")
def tmdb_find(
    external_id: str = typer.Argument(..., help="TVDB or IMDb identifier."),
    source: str = typer.Option("tvdb_id", help="tvdb_id or imdb_id.", show_default=True),
    api_base: str = _api_base_option(),
) -> None:
    with create_client(api_base) as client:
        response = client.get(f"/api/tmdb/find/{external_id}", params={"source": source})
        _echo_json(_check(response))


@tmdb_app.command("poster")
def tmdb_poster(
    media: str = typer.Argument(..., help="movie (TMDB id) or tv (TVDB id)."),
    external_id: int = typer.Argument(...),
    api_base: str = _api_base_option(),
) -> None:
    """Print the poster URL, or null when none is available."""

    _require_choice(media, {"movie", "tv"}, "media")
    with create_client(api_base) as client:
        _echo_json(_check(client.get(f"/api/tmdb/poster/{media}/{external_id}")))
