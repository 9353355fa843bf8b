"""User profile endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.api.deps import get_user
from app.database import get_db
from app.models.tables import User
from app.repositories import UserRepository

router = APIRouter()


class ProfileUpdate(BaseModel):
    """Fields left out are untouched; fields sent as null are cleared."""
    first_name: Optional[str] = Field(None, min_length=2, max_length=100)
    last_name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[str] = Field(None, min_length=6, max_length=300)


@router.get("/users/{user_id}/profile")
async def get_profile(user: User = Depends(get_user)):
    return user.profile()


@router.patch("/users/{user_id}/profile")
async def update_profile(
    body: ProfileUpdate,
    user: User = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await UserRepository(db).update_profile(user.id, body.model_dump(exclude_unset=True))
    return updated.profile()
