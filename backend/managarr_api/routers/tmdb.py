"""TMDB metadata endpoints."""
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_tmdb
from ..schemas import PosterModel
from ..services.tmdb import TmdbClient, TmdbError

router = APIRouter(prefix="/tmdb", tags=["tmdb"])


@router.get("/movie/{tmdb_id}")
async def tmdb_movie(tmdb_id: int, tmdb: TmdbClient = Depends(get_tmdb)) -> dict[str, Any]:
    try:
        return await tmdb.movie(tmdb_id)
    except TmdbError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


@router.get("/tv/{tmdb_id}")
async def tmdb_tv(tmdb_id: int, tmdb: TmdbClient = Depends(get_tmdb)) -> dict[str, Any]:
    try:
        return await tmdb.tv(tmdb_id)
    except TmdbError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


@router.get("/find/{external_id}")
async def tmdb_find(
    external_id: str,
    source: str = Query(default="tvdb_id", description="tvdb_id or imdb_id"),
    tmdb: TmdbClient = Depends(get_tmdb),
) -> dict[str, Any]:
    """Look up TMDB records by an external identifier."""

    try:
        return await tmdb.find(external_id, source)
    except TmdbError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


@router.get("/poster/{media}/{external_id}", response_model=PosterModel)
async def tmdb_poster(
    media: Literal["movie", "tv"],
    external_id: int,
    tmdb: TmdbClient = Depends(get_tmdb),
) -> PosterModel:
    """Resolve poster artwork; any lookup failure yields a null URL."""

    return PosterModel(poster_url=await tmdb.poster_url(media, external_id))
