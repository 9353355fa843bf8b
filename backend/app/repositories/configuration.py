"""Singleton TMDB configuration record (image base URLs, sizes, change keys)."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.database import dialect_insert
from app.models.tables import TmdbConfiguration

REQUIRED_IMAGE_KEYS = (
    "base_url", "secure_base_url", "backdrop_sizes", "logo_sizes",
    "poster_sizes", "profile_sizes", "still_sizes",
)


class ConfigurationRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self) -> Optional[TmdbConfiguration]:
        return await self.db.get(TmdbConfiguration, TmdbConfiguration.SINGLETON_ID)

    async def replace(self, payload: dict) -> TmdbConfiguration:
        """Replace the stored configuration wholesale (insert when empty).

        Raises ``ValueError`` if ``payload`` lacks the image or change-key
        fields, leaving the stored record untouched.
        """
        images = payload.get("images")
        change_keys = payload.get("change_keys")
        if not isinstance(images, dict) or not isinstance(change_keys, list):
            raise ValueError("configuration payload needs 'images' and 'change_keys'")
        missing = [k for k in REQUIRED_IMAGE_KEYS if k not in images]
        if missing:
            raise ValueError(f"configuration images missing {missing}")

        values = {
            "images": {k: images[k] for k in REQUIRED_IMAGE_KEYS},
            "change_keys": list(change_keys),
            "fetched_at": datetime.now(timezone.utc),
        }
        insert = dialect_insert(self.db)
        stmt = insert(TmdbConfiguration).values(
            id=TmdbConfiguration.SINGLETON_ID, **values,
        ).on_conflict_do_update(index_elements=["id"], set_=values)
        await self.db.execute(stmt)
        return await self.db.get(
            TmdbConfiguration, TmdbConfiguration.SINGLETON_ID, populate_existing=True,
        )
