"""User accounts and their watchlist entries."""

from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import dialect_insert
from app.models.tables import User, UserShow

PROFILE_FIELDS = ("first_name", "last_name", "email")


class UserRepository:
    """CRUD for ``users`` and ``user_shows``. Callers own the transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ── Accounts ─────────────────────────────────────────────────

    async def create(
        self,
        username: str,
        password_hash: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> User:
        user = User(
            username=username,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            email=email,
        )
        self.db.add(user)
        await self.db.flush()
        return user

    async def get(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def update_profile(self, user_id: int, changes: dict) -> Optional[User]:
        """Apply profile changes.

        A key set to a value writes it, a key set to ``None`` clears the
        field, and a key that is absent leaves the field alone. Unknown keys
        raise ``ValueError``.
        """
        unknown = set(changes) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)}")

        user = await self.get(user_id)
        if user is None:
            return None
        for key, value in changes.items():
            setattr(user, key, value)
        await self.db.flush()
        return user

    # ── Watchlist entries ────────────────────────────────────────

    async def entries(self, user_id: int) -> list[UserShow]:
        result = await self.db.execute(
            select(UserShow).where(UserShow.user_id == user_id).order_by(UserShow.id)
        )
        return list(result.scalars().all())

    async def add_entry(self, user_id: int, show_id: int) -> bool:
        """Add a show unless it is already listed. True if a row was inserted."""
        insert = dialect_insert(self.db)
        stmt = (
            insert(UserShow)
            .values(user_id=user_id, show_id=show_id, has_watched=False, favorite=False)
            .on_conflict_do_nothing(index_elements=["user_id", "show_id"])
            .returning(UserShow.id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def remove_entry(self, user_id: int, show_id: int) -> bool:
        result = await self.db.execute(
            delete(UserShow).where(UserShow.user_id == user_id, UserShow.show_id == show_id)
        )
        return result.rowcount > 0

    async def set_has_watched(self, user_id: int, show_id: int, value: bool) -> int:
        """Returns the matched row count; 0 means the entry does not exist."""
        return await self._update_entry(user_id, show_id, has_watched=value)

    async def set_favorite(self, user_id: int, show_id: int, value: bool) -> int:
        return await self._update_entry(user_id, show_id, favorite=value)

    async def set_rating(self, user_id: int, show_id: int, rating: Optional[str]) -> int:
        return await self._update_entry(user_id, show_id, rating=rating)

    async def list_other_owners(self, show_id: int, excluding_user_id: int) -> list[int]:
        """Ids of other users that still have ``show_id`` on their list."""
        result = await self.db.execute(
            select(UserShow.user_id).where(
                UserShow.show_id == show_id,
                UserShow.user_id != excluding_user_id,
            )
        )
        return list(result.scalars().all())

    async def _update_entry(self, user_id: int, show_id: int, **values) -> int:
        result = await self.db.execute(
            update(UserShow)
            .where(UserShow.user_id == user_id, UserShow.show_id == show_id)
            .values(**values)
        )
        return result.rowcount
