"""Local mirror of TMDB show records, keyed by TMDB id."""

import logging
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import dialect_insert
from app.models.tables import Show

logger = logging.getLogger(__name__)

# Every column an upsert writes; anything missing from a record is stored as NULL
SHOW_FIELDS = (
    "name", "overview", "tagline", "status", "backdrop_path", "poster_path",
    "first_air_date", "last_air_date", "episode_count", "season_count",
    "popularity", "vote_average", "vote_count", "genres", "networks", "seasons",
    "last_episode_to_air", "next_episode_to_air", "watch_providers",
)


def show_record_from_details(details: dict) -> dict:
    """Map a TMDB ``/tv/{id}`` payload (with watch providers) onto ``shows`` columns."""
    providers = details.get("watch_providers") or {}
    return {
        "show_id": details["id"],
        "name": details.get("name"),
        "overview": details.get("overview"),
        "tagline": details.get("tagline"),
        "status": details.get("status"),
        "backdrop_path": details.get("backdrop_path"),
        "poster_path": details.get("poster_path"),
        "first_air_date": _parse_date(details.get("first_air_date")),
        "last_air_date": _parse_date(details.get("last_air_date")),
        "episode_count": details.get("number_of_episodes"),
        "season_count": details.get("number_of_seasons"),
        "popularity": details.get("popularity"),
        "vote_average": details.get("vote_average"),
        "vote_count": details.get("vote_count"),
        "genres": [{"id": g["id"], "name": g["name"]} for g in details.get("genres") or []],
        "networks": [
            {"id": n["id"], "name": n.get("name"), "logo_path": n.get("logo_path")}
            for n in details.get("networks") or []
        ],
        "seasons": [
            {
                "id": s["id"],
                "name": s.get("name"),
                "overview": s.get("overview"),
                "air_date": s.get("air_date"),
                "episode_count": s.get("episode_count"),
                "poster_path": s.get("poster_path"),
                "season_number": s.get("season_number"),
            }
            for s in details.get("seasons") or []
        ],
        "last_episode_to_air": details.get("last_episode_to_air"),
        "next_episode_to_air": details.get("next_episode_to_air"),
        "watch_providers": providers.get("results") or {},
    }


def _parse_date(raw) -> Optional[date]:
    if not raw:
        return None
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(raw)
    except ValueError:
        logger.warning(f"Ignoring unparseable air date {raw!r}")
        return None


class ShowRepository:
    """Keyed cache of ``Show`` rows. Callers own the transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def upsert(self, show_id: int, record: dict) -> Show:
        """Insert or fully replace the row for ``show_id``; returns the stored row."""
        values = {field: record.get(field) for field in SHOW_FIELDS}
        values["fetched_at"] = datetime.now(timezone.utc)

        insert = dialect_insert(self.db)
        stmt = insert(Show).values(show_id=show_id, **values).on_conflict_do_update(
            index_elements=["show_id"],
            set_=values,
        )
        await self.db.execute(stmt)
        return await self.db.get(Show, show_id, populate_existing=True)

    async def update(self, show_id: int, record: dict) -> bool:
        """Replace the fields of an existing row. False (nothing written) if it is gone."""
        values = {field: record.get(field) for field in SHOW_FIELDS}
        values["fetched_at"] = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(Show).where(Show.show_id == show_id).values(**values)
        )
        return result.rowcount > 0

    async def get(self, show_id: int) -> Optional[Show]:
        return await self.db.get(Show, show_id)

    async def find_by_ids(self, show_ids: Iterable[int]) -> list[Show]:
        """Rows for the ids that exist; missing ids are simply absent."""
        ids = set(show_ids)
        if not ids:
            return []
        result = await self.db.execute(
            select(Show).where(Show.show_id.in_(ids)).order_by(Show.show_id)
        )
        return list(result.scalars().all())

    async def delete_by_id(self, show_id: int) -> bool:
        result = await self.db.execute(delete(Show).where(Show.show_id == show_id))
        return result.rowcount > 0

    async def all_ids(self) -> set[int]:
        """Full scan of mirrored ids — only used by the daily refresh."""
        result = await self.db.execute(select(Show.show_id))
        return set(result.scalars().all())
