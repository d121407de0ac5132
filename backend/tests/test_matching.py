"""Tests for media identity matching."""
from __future__ import annotations

from backend.managarr_api.services.matching import (
    ExternalIdMatcher,
    LibraryEntry,
    TitleYearMatcher,
    movie_item,
    normalize_title,
    series_item,
    title_year_key,
)
from backend.managarr_api.stores.instance_store import InstanceConnection

RADARR = InstanceConnection(
    id="r1", name="Movies", type="radarr", url="http://radarr", api_key="k", is_enabled=True
)
SONARR = InstanceConnection(
    id="s1", name="Series", type="sonarr", url="http://sonarr", api_key="k", is_enabled=True
)


def test_normalize_title_drops_punctuation_and_case() -> None:
    assert normalize_title("The Matrix") == "thematrix"
    assert normalize_title("the-matrix!!") == "thematrix"
    assert normalize_title("Amélie") == "amlie"


def test_title_year_key_separates_years() -> None:
    assert title_year_key("The Matrix", 1999) == title_year_key("the-matrix!!", 1999)
    assert title_year_key("The Matrix", 1999) != title_year_key("The Matrix", 2003)
    assert title_year_key("Untitled", None) == "title-untitled-"


def test_external_id_matcher_prefers_ids() -> None:
    matcher = ExternalIdMatcher()
    movie = movie_item(RADARR, {"id": 1, "title": "The Matrix", "year": 1999, "tmdbId": 603})
    renamed = movie_item(RADARR, {"id": 2, "title": "Matrix", "year": 1999, "tmdbId": 603})
    unknown = movie_item(RADARR, {"id": 3, "title": "The Matrix", "year": 1999, "tmdbId": 0})

    assert matcher.key(movie) == "tmdb-603"
    assert matcher.key(renamed) == matcher.key(movie)
    assert matcher.key(unknown) == "title-thematrix-1999"


def test_series_use_tvdb_prefix() -> None:
    series = series_item(SONARR, {"id": 5, "title": "Dark", "year": 2017, "tvdbId": 334824})

    assert ExternalIdMatcher().key(series) == "tvdb-334824"
    assert TitleYearMatcher().key(series) == "title-dark-2017"


def test_title_year_matcher_matches_plex_entries() -> None:
    entry = LibraryEntry(instance=RADARR, kind="movie", title="The Matrix", year=1999, rating_key="9")
    movie = movie_item(RADARR, {"id": 1, "title": "the matrix", "year": 1999, "tmdbId": 603})

    assert TitleYearMatcher().key(entry) == TitleYearMatcher().key(movie)


def test_movie_item_projection() -> None:
    item = movie_item(
        RADARR,
        {
            "id": 10,
            "title": "Heat",
            "year": 1995,
            "tmdbId": 949,
            "sizeOnDisk": 1234,
            "path": "/movies/Heat (1995)",
            "hasFile": True,
            "qualityProfileId": 4,
            "movieFile": {"quality": {"quality": {"name": "Bluray-1080p"}}},
        },
    )

    assert item.size_on_disk == 1234
    assert item.quality == "Bluray-1080p"
    assert item.quality_profile_id == 4
    assert item.has_file is True


def test_series_item_projection_counts_files() -> None:
    with_files = series_item(
        SONARR,
        {"id": 1, "title": "Dark", "statistics": {"sizeOnDisk": 99, "episodeFileCount": 3}},
    )
    without_files = series_item(SONARR, {"id": 2, "title": "Empty", "statistics": {}})

    assert with_files.has_file is True
    assert with_files.size_on_disk == 99
    assert without_files.has_file is False
    assert without_files.size_on_disk == 0
