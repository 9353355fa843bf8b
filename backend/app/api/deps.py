"""Shared FastAPI dependencies for route handlers."""

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.tmdb import TmdbClient
from app.database import get_db
from app.models.tables import User
from app.repositories import UserRepository
from app.services.show_sync import ShowSyncService


def get_tmdb(request: Request) -> TmdbClient:
    tmdb = getattr(request.app.state, "tmdb", None)
    if tmdb is None:
        raise HTTPException(503, "TMDB is not configured")
    return tmdb


def get_show_sync(request: Request) -> ShowSyncService:
    service = getattr(request.app.state, "show_sync", None)
    if service is None:
        raise HTTPException(503, "TMDB is not configured")
    return service


async def get_user(user_id: int, db: AsyncSession = Depends(get_db)) -> User:
    """Path dependency — 404 for unknown users."""
    user = await UserRepository(db).get(user_id)
    if user is None:
        raise HTTPException(404, f"User {user_id} not found")
    return user
