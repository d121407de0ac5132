"""Tests for the cross-instance reports."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from backend.managarr_api.services.fanout import fan_out
from backend.managarr_api.stores.instance_store import InstanceConnection


def _quality(name: str) -> dict:
    return {"quality": {"quality": {"name": name}}}


def test_duplicates_require_two_instances(client: TestClient, upstream, add_instance) -> None:
    upstream.server("radarr-a.local", "radarr").add(
        "GET",
        "/api/v3/movie",
        [
            {"id": 1, "title": "The Matrix", "year": 1999, "tmdbId": 603, "sizeOnDisk": 1000, "path": "/a/The Matrix (1999)"},
            {"id": 2, "title": "Solo", "year": 2018, "tmdbId": 348350, "sizeOnDisk": 500},
            {"id": 3, "title": "Solo (copy)", "year": 2018, "tmdbId": 348350, "sizeOnDisk": 500},
        ],
    )
    upstream.server("radarr-b.local", "radarr").add(
        "GET",
        "/api/v3/movie",
        [{"id": 11, "title": "Matrix, The", "year": 1999, "tmdbId": 603, "sizeOnDisk": 3000, "path": "/b/Matrix"}],
    )
    add_instance("Movies A", "radarr", "radarr-a.local")
    add_instance("Movies B", "radarr", "radarr-b.local")

    response = client.get("/api/reports/duplicates", params={"media": "movies"})

    assert response.status_code == 200
    report = response.json()
    assert report["total_items"] == 1
    group = report["groups"][0]
    assert group["key"] == "tmdb-603"
    assert group["total_size"] == 4000
    assert {entry["instance_name"] for entry in group["entries"]} == {"Movies A", "Movies B"}
    assert report["reclaimable_size"] == 2000
    assert report["failed_instances"] == []


def test_duplicates_report_failed_and_skip_disabled(client: TestClient, upstream, add_instance) -> None:
    upstream.server("radarr-a.local", "radarr").add("GET", "/api/v3/movie", [])
    upstream.server("radarr-bad.local", "radarr").add(
        "GET", "/api/v3/movie", {"message": "Database is locked"}, status=500
    )
    disabled_server = upstream.server("radarr-off.local", "radarr").add("GET", "/api/v3/movie", [])
    add_instance("Movies A", "radarr", "radarr-a.local")
    broken = add_instance("Broken", "radarr", "radarr-bad.local")
    add_instance("Off", "radarr", "radarr-off.local", is_enabled=False)

    report = client.get("/api/reports/duplicates", params={"media": "movies"}).json()

    assert report["groups"] == []
    assert report["failed_instances"] == [
        {"id": broken["id"], "name": "Broken", "error": "Database is locked"}
    ]
    assert disabled_server.requests == []


def test_report_rejects_unknown_media(client: TestClient) -> None:
    response = client.get("/api/reports/duplicates", params={"media": "music"})

    assert response.status_code == 400


def test_cutoff_unmet_movies_use_catalog_quality(client: TestClient, upstream, add_instance) -> None:
    server = upstream.server("radarr.local", "radarr")
    server.add(
        "GET",
        "/api/v3/wanted/cutoff",
        {
            "records": [
                {"id": 1, "title": "Heat", "year": 1995, "path": "/movies/Heat"},
                {"id": 2, "title": "Ronin", "year": 1998, "path": "/movies/Ronin"},
            ]
        },
    )
    server.add(
        "GET",
        "/api/v3/movie",
        [
            {"id": 1, "title": "Heat", "movieFile": _quality("HD-1080p")},
            {"id": 2, "title": "Ronin"},
        ],
    )
    instance = add_instance("Movies", "radarr", "radarr.local")

    report = client.get("/api/reports/cutoff-unmet", params={"media": "movies"}).json()

    qualities = {item["title"]: item["current_quality"] for item in report["items"]}
    assert qualities == {"Heat": "HD-1080p", "Ronin": "Unknown"}
    assert report["items"][0]["id"] == f"radarr-{instance['id']}-1"
    cutoff_request = next(r for r in server.requests if r.url.path.endswith("/wanted/cutoff"))
    assert cutoff_request.url.params["pageSize"] == "1000"


def test_cutoff_unmet_episodes_have_episode_subtitle(client: TestClient, upstream, add_instance) -> None:
    upstream.server("sonarr.local", "sonarr").add(
        "GET",
        "/api/v3/wanted/cutoff",
        {
            "records": [
                {
                    "id": 100,
                    "seasonNumber": 1,
                    "episodeNumber": 2,
                    "title": "Lies",
                    "series": {"title": "Dark", "year": 2017, "path": "/tv/Dark"},
                    "episodeFile": _quality("WEBDL-720p"),
                }
            ]
        },
    )
    add_instance("Series", "sonarr", "sonarr.local")

    item = client.get("/api/reports/cutoff-unmet", params={"media": "series"}).json()["items"][0]

    assert item["title"] == "Dark"
    assert item["subtitle"] == "S01E02 - Lies"
    assert item["current_quality"] == "WEBDL-720p"
    assert item["type"] == "episode"


def _seed_compare(client: TestClient, upstream, add_instance) -> tuple[dict, object]:
    plex = upstream.server("plex.local", "plex", api_key="token")
    plex.add(
        "GET",
        "/library/sections",
        {
            "MediaContainer": {
                "Directory": [
                    {"key": "1", "type": "movie", "title": "Movies"},
                    {"key": "2", "type": "show", "title": "TV"},
                    {"key": "3", "type": "movie", "title": "Home Videos"},
                ]
            }
        },
    )
    plex.add(
        "GET",
        "/library/sections/1/all",
        {
            "MediaContainer": {
                "Metadata": [
                    {"ratingKey": "101", "title": "The Matrix", "year": 1999},
                    {"ratingKey": "102", "title": "Plex Only", "year": 2001},
                ]
            }
        },
    )
    plex.add(
        "GET",
        "/library/sections/3/all",
        {"MediaContainer": {"Metadata": [{"ratingKey": "301", "title": "Hidden", "year": 2000}]}},
    )
    upstream.server("radarr.local", "radarr").add(
        "GET",
        "/api/v3/movie",
        [
            {"id": 1, "title": "the matrix", "year": 1999, "hasFile": True},
            {"id": 5, "title": "Arr Only", "year": 2010, "hasFile": True},
            {"id": 6, "title": "Not Downloaded", "year": 2020, "hasFile": False},
        ],
    )
    plex_instance = add_instance("Home", "plex", "plex.local", api_key="token")
    add_instance("Movies", "radarr", "radarr.local")
    client.put(
        "/api/settings/plex/excluded-libraries",
        json={"libraries": [f"{plex_instance['id']}:3"]},
    )
    return plex_instance, plex


def test_compare_plex_vs_arr(client: TestClient, upstream, add_instance) -> None:
    _, plex = _seed_compare(client, upstream, add_instance)

    report = client.get("/api/reports/compare", params={"media": "movies"}).json()

    assert [(row["title"], row["status"]) for row in report["rows"]] == [
        ("Plex Only", "only_plex"),
        ("Arr Only", "only_arr"),
        ("The Matrix", "synced"),
    ]
    assert (report["in_both"], report["only_plex"], report["only_arr"]) == (1, 1, 1)
    synced = report["rows"][2]
    assert synced["plex_key"] == "101"
    assert synced["arr_id"] == 1
    assert "/library/sections/3/all" not in [r.url.path for r in plex.requests]


def test_compare_arr_vs_plex_puts_arr_only_first(client: TestClient, upstream, add_instance) -> None:
    _seed_compare(client, upstream, add_instance)

    report = client.get(
        "/api/reports/compare", params={"media": "movies", "mode": "arr-vs-plex"}
    ).json()

    assert report["mode"] == "arr-vs-plex"
    assert report["rows"][0]["title"] == "Arr Only"


def test_disk_space_totals_and_top_items(client: TestClient, upstream, add_instance) -> None:
    upstream.server("sonarr.local", "sonarr").add(
        "GET",
        "/api/v3/series",
        [
            {"id": 1, "title": "Big Show", "statistics": {"sizeOnDisk": 5000}},
            {"id": 2, "title": "Empty", "statistics": {"sizeOnDisk": 0}},
        ],
    )
    upstream.server("radarr.local", "radarr").add(
        "GET", "/api/v3/movie", [{"id": 1, "title": "Movie", "sizeOnDisk": 3000}]
    )
    add_instance("Series", "sonarr", "sonarr.local")
    add_instance("Movies", "radarr", "radarr.local")

    report = client.get("/api/reports/disk-space").json()

    assert report["total_size"] == 8000
    assert (report["series_size"], report["movie_size"]) == (5000, 3000)
    assert (report["series_count"], report["movie_count"]) == (1, 1)
    assert [item["title"] for item in report["top_items"]] == ["Big Show", "Movie"]
    assert [entry["instance_name"] for entry in report["instances"]] == ["Series", "Movies"]

    limited = client.get("/api/reports/disk-space", params={"top": 1}).json()
    assert [item["title"] for item in limited["top_items"]] == ["Big Show"]


def test_quality_profiles_group_by_profile(client: TestClient, upstream, add_instance) -> None:
    server = upstream.server("radarr.local", "radarr")
    server.add(
        "GET",
        "/api/v3/movie",
        [
            {"id": 1, "title": "Small", "qualityProfileId": 1, "sizeOnDisk": 100},
            {"id": 2, "title": "Large", "qualityProfileId": 1, "sizeOnDisk": 300},
            {"id": 3, "title": "Orphan", "qualityProfileId": 9, "sizeOnDisk": 50},
        ],
    )
    server.add("GET", "/api/v3/qualityprofile", [{"id": 1, "name": "HD-1080p"}])
    add_instance("Movies", "radarr", "radarr.local")

    report = client.get("/api/reports/quality-profiles").json()

    assert [(p["profile_name"], p["item_count"], p["total_size"]) for p in report["profiles"]] == [
        ("HD-1080p", 2, 400),
        ("Unknown", 1, 50),
    ]
    assert [item["title"] for item in report["profiles"][0]["items"]] == ["Large", "Small"]
    assert report["total_size"] == 450


def test_queue_sorts_errors_then_downloading(client: TestClient, upstream, add_instance) -> None:
    sonarr = upstream.server("sonarr.local", "sonarr")
    sonarr.add(
        "GET",
        "/api/v3/queue",
        {
            "records": [
                {
                    "id": 1,
                    "title": "Dark.S01E02.720p",
                    "status": "downloading",
                    "size": 1000,
                    "sizeleft": 250,
                    "seasonNumber": 1,
                    "series": {"title": "Dark"},
                    "episode": {"episodeNumber": 2, "title": "Lies"},
                    "quality": {"quality": {"name": "WEBDL-720p"}},
                    "downloadClient": "qBittorrent",
                    "indexer": "Indexer",
                }
            ]
        },
    )
    radarr = upstream.server("radarr.local", "radarr")
    radarr.add(
        "GET",
        "/api/v3/queue",
        {
            "records": [
                {"id": 3, "title": "Later", "status": "queued", "size": 0, "movie": {"title": "Later"}},
                {
                    "id": 2,
                    "title": "Heat.1995.1080p",
                    "status": "completed",
                    "trackedDownloadState": "importBlocked",
                    "errorMessage": "No files found",
                    "size": 10,
                    "sizeleft": 0,
                    "movie": {"title": "Heat", "year": 1995},
                },
            ]
        },
    )
    add_instance("Series", "sonarr", "sonarr.local")
    add_instance("Movies", "radarr", "radarr.local")

    report = client.get("/api/reports/queue").json()

    assert [item["media_title"] for item in report["items"]] == ["Heat", "Dark", "Later"]
    heat, dark, later = report["items"]
    assert heat["has_error"] is True
    assert heat["state_label"] == "Import Blocked"
    assert heat["subtitle"] == "(1995)"
    assert dark["progress"] == 75.0
    assert dark["subtitle"] == "S01E02 - Lies"
    assert dark["quality"] == "WEBDL-720p"
    assert later["quality"] == "Unknown"
    assert (report["total"], report["downloading"], report["with_errors"]) == (3, 1, 1)

    sonarr_params = sonarr.requests[0].url.params
    assert sonarr_params["pageSize"] == "100"
    assert sonarr_params["includeEpisode"] == "true"
    assert sonarr_params["includeSeries"] == "true"
    assert radarr.requests[0].url.params["includeMovie"] == "true"


def test_activity_merges_history_newest_first(client: TestClient, upstream, add_instance) -> None:
    upstream.server("sonarr.local", "sonarr").add(
        "GET",
        "/api/v3/history",
        {
            "records": [
                {
                    "id": 1,
                    "eventType": "grabbed",
                    "date": "2024-05-01T10:00:00Z",
                    "sourceTitle": "Dark.S01E01",
                    "series": {"title": "Dark"},
                    "episode": {"seasonNumber": 1, "episodeNumber": 1, "title": "Secrets"},
                    "data": {"indexer": "Indexer"},
                }
            ]
        },
    )
    upstream.server("radarr.local", "radarr").add(
        "GET",
        "/api/v3/history",
        {
            "records": [
                {"id": 9, "eventType": "downloadFolderImported", "date": "2024-05-02T08:00:00Z", "movie": {"title": "Heat", "year": 1995}},
                {"id": 10, "eventType": "movieFileDeleted", "date": "2024-04-30T00:00:00Z", "movie": {"title": "Ronin"}},
            ]
        },
    )
    add_instance("Series", "sonarr", "sonarr.local")
    add_instance("Movies", "radarr", "radarr.local")

    report = client.get("/api/reports/activity").json()

    assert [(item["media_title"], item["event_label"]) for item in report["items"]] == [
        ("Heat", "Imported"),
        ("Dark", "Grabbed"),
        ("Ronin", "Deleted"),
    ]
    assert report["items"][1]["subtitle"] == "S01E01 - Secrets"
    assert report["items"][1]["indexer"] == "Indexer"
    assert report["event_counts"] == {
        "downloadFolderImported": 1,
        "grabbed": 1,
        "movieFileDeleted": 1,
    }


def test_commands_keep_recent_or_active_moves(client: TestClient, upstream, add_instance) -> None:
    now = datetime.now(timezone.utc)
    upstream.server("radarr.local", "radarr").add(
        "GET",
        "/api/v3/command",
        [
            {"id": 1, "name": "MoveMovie", "status": "completed", "queued": (now - timedelta(minutes=1)).isoformat()},
            {"id": 2, "name": "RefreshMovie", "status": "started", "queued": now.isoformat()},
            {"id": 3, "name": "MoveMovie", "status": "completed", "queued": (now - timedelta(minutes=30)).isoformat()},
            {"id": 4, "name": "MoveMovie", "status": "started", "queued": (now - timedelta(minutes=30)).isoformat()},
        ],
    )
    upstream.server("sonarr.local", "sonarr").add("GET", "/api/v3/command", [])
    add_instance("Movies", "radarr", "radarr.local")
    add_instance("Series", "sonarr", "sonarr.local")

    report = client.get("/api/reports/commands").json()

    assert len(report["instances"]) == 1
    entry = report["instances"][0]
    assert entry["instance_name"] == "Movies"
    assert [command["id"] for command in entry["commands"]] == [1, 4]
    assert report["active"] == 1


def test_fan_out_bounds_concurrency_and_collects_failures() -> None:
    instances = [
        InstanceConnection(id=str(i), name=f"n{i}", type="radarr", url="http://x", api_key="k", is_enabled=True)
        for i in range(5)
    ]
    running = 0
    peak = 0

    async def fetch(instance: InstanceConnection) -> str:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        if instance.id == "3":
            raise RuntimeError("boom")
        return instance.id

    result = asyncio.run(fan_out(instances, fetch, limit=2))

    assert peak == 2
    assert [value for _, value in result.results] == ["0", "1", "2", "4"]
    assert [(f.id, f.error) for f in result.failed_instances()] == [("3", "boom")]
