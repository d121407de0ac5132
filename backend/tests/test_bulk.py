"""Tests for bulk mutation actions."""
from __future__ import annotations

import json

from fastapi.testclient import TestClient


def _sonarr_with_series(upstream, *series: dict):
    server = upstream.server("sonarr.local", "sonarr")
    for item in series:
        server.add("GET", f"/api/v3/series/{item['id']}", item)
        server.add("PUT", f"/api/v3/series/{item['id']}", item, status=202)
        server.add("DELETE", f"/api/v3/series/{item['id']}", status=200)
    return server


def test_monitor_updates_each_item(client: TestClient, upstream, add_instance) -> None:
    server = _sonarr_with_series(
        upstream,
        {"id": 1, "title": "Dark", "monitored": False, "path": "/tv/Dark"},
        {"id": 2, "title": "Lost", "monitored": False, "path": "/tv/Lost"},
    )
    instance = add_instance("Series", "sonarr", "sonarr.local")

    response = client.post(
        f"/api/bulk/sonarr/{instance['id']}", json={"action": "monitor", "ids": [1, 2]}
    )

    assert response.status_code == 200
    assert response.json() == {"action": "monitor", "instance_id": instance["id"], "processed": 2}
    bodies = [json.loads(request.content) for request in server.calls("PUT")]
    assert [(body["id"], body["monitored"]) for body in bodies] == [(1, True), (2, True)]
    assert bodies[0]["title"] == "Dark"


def test_set_quality_profile(client: TestClient, upstream, add_instance) -> None:
    server = upstream.server("radarr.local", "radarr")
    server.add("GET", "/api/v3/movie/7", {"id": 7, "qualityProfileId": 1})
    server.add("PUT", "/api/v3/movie/7", {"id": 7, "qualityProfileId": 4})
    instance = add_instance("Movies", "radarr", "radarr.local")

    response = client.post(
        f"/api/bulk/radarr/{instance['id']}",
        json={"action": "set_quality_profile", "ids": [7], "quality_profile_id": 4},
    )

    assert response.status_code == 200
    assert json.loads(server.calls("PUT")[0].content)["qualityProfileId"] == 4


def test_set_quality_profile_requires_profile_id(client: TestClient, add_instance) -> None:
    instance = add_instance("Movies", "radarr", "radarr.local")

    response = client.post(
        f"/api/bulk/radarr/{instance['id']}", json={"action": "set_quality_profile", "ids": [7]}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Validation failed"


def test_delete_passes_delete_files_flag(client: TestClient, upstream, add_instance) -> None:
    server = _sonarr_with_series(upstream, {"id": 1}, {"id": 2})
    instance = add_instance("Series", "sonarr", "sonarr.local")

    response = client.post(
        f"/api/bulk/sonarr/{instance['id']}",
        json={"action": "delete", "ids": [1, 2], "delete_files": True},
    )

    assert response.status_code == 200
    deletes = server.calls("DELETE")
    assert sorted(request.url.path for request in deletes) == ["/api/v3/series/1", "/api/v3/series/2"]
    assert {request.url.params["deleteFiles"] for request in deletes} == {"true"}


def test_move_to_destination_keeps_folder_name(client: TestClient, upstream, add_instance) -> None:
    server = _sonarr_with_series(upstream, {"id": 1, "title": "Dark", "path": "/tv/Dark (2017)"})
    instance = add_instance("Series", "sonarr", "sonarr.local")

    response = client.post(
        f"/api/bulk/sonarr/{instance['id']}",
        json={"action": "move", "ids": [1], "destination": "/mnt/archive/"},
    )

    assert response.status_code == 200
    put = server.calls("PUT")[0]
    assert put.url.params["moveFiles"] == "true"
    assert json.loads(put.content)["path"] == "/mnt/archive/Dark (2017)"


def test_move_with_explicit_targets(client: TestClient, upstream, add_instance) -> None:
    server = upstream.server("radarr.local", "radarr")
    server.add("GET", "/api/v3/movie/3", {"id": 3, "path": "/movies/Heat"})
    server.add("PUT", "/api/v3/movie/3", {"id": 3})
    instance = add_instance("Movies", "radarr", "radarr.local")

    response = client.post(
        f"/api/bulk/radarr/{instance['id']}",
        json={"action": "move", "moves": [{"id": 3, "new_path": "/new/Heat (1995)"}]},
    )

    assert response.status_code == 200
    assert response.json()["processed"] == 1
    assert json.loads(server.calls("PUT")[0].content)["path"] == "/new/Heat (1995)"


def test_move_requires_destination_or_targets(client: TestClient, add_instance) -> None:
    instance = add_instance("Movies", "radarr", "radarr.local")

    response = client.post(f"/api/bulk/radarr/{instance['id']}", json={"action": "move", "ids": [1]})

    assert response.status_code == 400


def test_first_failure_fails_the_request(client: TestClient, upstream, add_instance) -> None:
    server = _sonarr_with_series(upstream, {"id": 1, "monitored": True})
    server.add("GET", "/api/v3/series/2", {"message": "Series does not exist"}, status=404)
    instance = add_instance("Series", "sonarr", "sonarr.local")

    response = client.post(
        f"/api/bulk/sonarr/{instance['id']}", json={"action": "unmonitor", "ids": [1, 2]}
    )

    assert response.status_code == 502
    assert response.json()["detail"] == "Bulk unmonitor failed: Series does not exist"
    assert len(server.calls("PUT")) == 1


def test_bulk_checks_instance_kind(client: TestClient, add_instance) -> None:
    instance = add_instance("Movies", "radarr", "radarr.local")

    response = client.post(f"/api/bulk/sonarr/{instance['id']}", json={"action": "monitor", "ids": [1]})

    assert response.status_code == 400
    assert response.json()["detail"] == "Not a Sonarr instance"
    assert client.post("/api/bulk/sonarr/missing", json={"action": "monitor", "ids": [1]}).status_code == 404


def test_empty_item_body_fails_the_request(client: TestClient, upstream, add_instance) -> None:
    server = upstream.server("radarr.local", "radarr")
    server.add("GET", "/api/v3/movie/3")
    instance = add_instance("Movies", "radarr", "radarr.local")

    response = client.post(
        f"/api/bulk/radarr/{instance['id']}", json={"action": "monitor", "ids": [3]}
    )

    assert response.status_code == 502
    assert response.json()["detail"] == "Bulk monitor failed: movie 3 returned no body"
    assert server.calls("PUT") == []
