"""Search and watchlist endpoints."""

from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.api.deps import get_show_sync, get_tmdb, get_user
from app.clients.tmdb import TmdbClient
from app.database import get_db
from app.models.tables import User
from app.repositories import ConfigurationRepository
from app.services.show_sync import PartialBatchFailure, ShowSyncService

router = APIRouter()


class HasWatchedUpdate(BaseModel):
    show_id: int
    has_watched: bool


class IsFavoriteUpdate(BaseModel):
    show_id: int
    is_favorite: bool


class RatingUpdate(BaseModel):
    show_id: int
    rating: Optional[str] = Field(None, max_length=10)


@router.get("/search")
async def search_shows(
    query: str = Query(..., min_length=1),
    page: int = Query(1, ge=1, le=1000),
    include_adult: bool = False,
    tmdb: TmdbClient = Depends(get_tmdb),
):
    """Search TMDB for TV shows."""
    result = await tmdb.search_shows(query, page=page, include_adult=include_adult)
    return asdict(result)


@router.get("/users/{user_id}/shows")
async def list_user_shows(
    user: User = Depends(get_user),
    sync: ShowSyncService = Depends(get_show_sync),
):
    """The user's watchlist, joined with mirrored show metadata."""
    try:
        views = await sync.resolve_user_shows(user.id)
    except PartialBatchFailure as e:
        return JSONResponse(
            status_code=502,
            content={
                "shows": [v.to_dict() for v in e.shows],
                "failed_ids": e.failed_ids,
                "detail": str(e),
            },
        )
    return {"shows": [v.to_dict() for v in views], "failed_ids": []}


@router.post("/users/{user_id}/shows/{show_id}")
async def add_user_show(
    show_id: int,
    user: User = Depends(get_user),
    sync: ShowSyncService = Depends(get_show_sync),
):
    added = await sync.add_show_to_user_list(user.id, show_id)
    return {"status": "ok", "show_id": show_id, "added": added}


@router.delete("/users/{user_id}/shows/{show_id}")
async def delete_user_show(
    show_id: int,
    user: User = Depends(get_user),
    sync: ShowSyncService = Depends(get_show_sync),
):
    removed = await sync.delete_user_show(user.id, show_id)
    if not removed:
        raise HTTPException(404, f"Show {show_id} is not on this list")
    return {"status": "ok", "show_id": show_id}


@router.put("/users/{user_id}/has-watched")
async def set_has_watched(
    body: HasWatchedUpdate,
    user: User = Depends(get_user),
    sync: ShowSyncService = Depends(get_show_sync),
):
    if not await sync.set_has_watched(user.id, body.show_id, body.has_watched):
        raise HTTPException(404, f"Show {body.show_id} is not on this list")
    return {"status": "ok", "show_id": body.show_id, "has_watched": body.has_watched}


@router.put("/users/{user_id}/is-favorite")
async def set_is_favorite(
    body: IsFavoriteUpdate,
    user: User = Depends(get_user),
    sync: ShowSyncService = Depends(get_show_sync),
):
    if not await sync.set_is_favorite(user.id, body.show_id, body.is_favorite):
        raise HTTPException(404, f"Show {body.show_id} is not on this list")
    return {"status": "ok", "show_id": body.show_id, "is_favorite": body.is_favorite}


@router.put("/users/{user_id}/rating")
async def set_rating(
    body: RatingUpdate,
    user: User = Depends(get_user),
    sync: ShowSyncService = Depends(get_show_sync),
):
    if not await sync.set_rating(user.id, body.show_id, body.rating):
        raise HTTPException(404, f"Show {body.show_id} is not on this list")
    return {"status": "ok", "show_id": body.show_id, "rating": body.rating}


@router.get("/configuration")
async def get_configuration(db: AsyncSession = Depends(get_db)):
    """Cached TMDB configuration (image base URLs and sizes)."""
    config = await ConfigurationRepository(db).get()
    if config is None:
        raise HTTPException(404, "TMDB configuration has not been fetched yet")
    return config.to_dict()
