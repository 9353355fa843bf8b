"""Show sync service.

Keeps the local ``shows`` mirror consistent with TMDB: fetch-on-miss when a
user's watchlist is resolved, fetch-on-add, reference-counted cleanup on
remove, and a daily refresh of mirrored shows driven by the TMDB changes
feed. Also refreshes the cached TMDB configuration.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.clients.base import PagedResult, RemoteError
from app.clients.tmdb import TmdbClient
from app.models.tables import Show, UserShow
from app.repositories import (
    ConfigurationRepository,
    ShowRepository,
    UserRepository,
    show_record_from_details,
)

logger = logging.getLogger(__name__)


@dataclass
class UserShowView:
    """A mirrored show joined with one user's watchlist entry for it."""
    show: Show
    user_show: UserShow

    def to_dict(self) -> dict:
        return {**self.show.to_dict(), "user_show": self.user_show.to_dict()}


class PartialBatchFailure(Exception):
    """Some shows on a watchlist could not be fetched from TMDB.

    ``shows`` holds everything that did resolve (annotated and sorted like a
    normal result), so callers can choose to render a partial list.
    """

    def __init__(self, shows: list[UserShowView], errors: dict[int, Exception]):
        self.shows = shows
        self.errors = errors
        super().__init__(f"Could not fetch {len(errors)} show(s) from TMDB: {self.failed_ids}")

    @property
    def failed_ids(self) -> list[int]:
        return sorted(self.errors)


class ShowSyncService:
    """Mirrors TMDB shows for users' watchlists.

    Every operation opens its own sessions from ``session_factory``; an
    ``AsyncSession`` is never shared between concurrently running tasks, and
    no session is held open while TMDB is awaited. Reads happen first, then
    the fetches, then the writes in a fresh session.
    """

    def __init__(
        self,
        tmdb: TmdbClient,
        session_factory: async_sessionmaker[AsyncSession],
        language: Optional[str] = None,
    ):
        self.tmdb = tmdb
        self.session_factory = session_factory
        self.language = language
        self._background: set[asyncio.Task] = set()

    # ── Watchlist view ───────────────────────────────────────────

    async def resolve_user_shows(self, user_id: int) -> list[UserShowView]:
        """All shows on a user's watchlist, fetching any the mirror lacks.

        Sorted by name (ordinal, stable). If any fetch fails, every other
        fetch still completes and is stored, then ``PartialBatchFailure`` is
        raised carrying the shows that did resolve.
        """
        async with self.session_factory() as db:
            entries = await UserRepository(db).entries(user_id)
            if not entries:
                return []
            requested = {entry.show_id for entry in entries}
            found = await ShowRepository(db).find_by_ids(requested)

        # No session is open while TMDB is awaited
        missing = sorted(requested - {show.show_id for show in found})
        errors: dict[int, Exception] = {}
        if missing:
            logger.info(f"User {user_id}: {len(missing)} of {len(requested)} shows not mirrored, fetching")
            fetched, errors = await self._fetch_many(missing)
            if fetched:
                async with self.session_factory() as db:
                    shows = ShowRepository(db)
                    for show_id, details in fetched:
                        found.append(await shows.upsert(show_id, show_record_from_details(details)))
                    await db.commit()

        entries_by_id = {str(entry.show_id): entry for entry in entries}
        views = [
            UserShowView(show=show, user_show=entries_by_id[str(show.show_id)])
            for show in found
            if str(show.show_id) in entries_by_id
        ]
        views.sort(key=lambda view: view.show.name or "")

        if errors:
            first = errors[min(errors)]
            raise PartialBatchFailure(views, errors) from first
        return views

    # ── Watchlist mutations ──────────────────────────────────────

    async def add_show_to_user_list(self, user_id: int, show_id: int) -> bool:
        """Add a show to a user's list. True if added, False if already there.

        Mirroring the show runs in the background; its failure is logged
        and does not affect the result.
        """
        self._spawn(self._mirror_quietly(show_id), name=f"mirror-show-{show_id}")

        async with self.session_factory() as db:
            added = await UserRepository(db).add_entry(user_id, show_id)
            await db.commit()

        if not added:
            logger.debug(f"User {user_id} already has show {show_id}")
        return added

    async def delete_user_show(self, user_id: int, show_id: int) -> bool:
        """Remove a show from a user's list; drop the mirrored show if nobody else has it.

        The ownership check is not atomic with a concurrent add by another
        user. A show dropped that way is fetched again on that user's next
        ``resolve_user_shows``.
        """
        async with self.session_factory() as db:
            users = UserRepository(db)
            removed = await users.remove_entry(user_id, show_id)
            await db.commit()

            others = await users.list_other_owners(show_id, excluding_user_id=user_id)
            if not others and await ShowRepository(db).delete_by_id(show_id):
                logger.info(f"Show {show_id} no longer on any list, removed from mirror")
            await db.commit()

        return removed

    async def set_has_watched(self, user_id: int, show_id: int, has_watched: bool) -> bool:
        """False when the user has no entry for this show."""
        async with self.session_factory() as db:
            matched = await UserRepository(db).set_has_watched(user_id, show_id, has_watched)
            await db.commit()
        return matched > 0

    async def set_is_favorite(self, user_id: int, show_id: int, is_favorite: bool) -> bool:
        async with self.session_factory() as db:
            matched = await UserRepository(db).set_favorite(user_id, show_id, is_favorite)
            await db.commit()
        return matched > 0

    async def set_rating(self, user_id: int, show_id: int, rating: Optional[str]) -> bool:
        async with self.session_factory() as db:
            matched = await UserRepository(db).set_rating(user_id, show_id, rating)
            await db.commit()
        return matched > 0

    # ── Mirror maintenance ───────────────────────────────────────

    async def ensure_mirrored(self, show_id: int, force: bool = False) -> Show:
        """Fetch and store a show unless it is already mirrored (always with ``force``).

        Raises ``RemoteError`` if TMDB cannot be reached; the mirror is left
        unchanged in that case.
        """
        if not force:
            async with self.session_factory() as db:
                existing = await ShowRepository(db).get(show_id)
            if existing is not None:
                return existing

        try:
            details = await self.tmdb.get_show_details_with_watch_providers(show_id, self.language)
        except RemoteError as e:
            logger.warning(f"ensure_mirrored: TMDB fetch failed for show {show_id}: {e}")
            raise

        async with self.session_factory() as db:
            show = await ShowRepository(db).upsert(show_id, show_record_from_details(details))
            await db.commit()
        return show

    async def refresh_changed_shows(self) -> dict:
        """Re-fetch mirrored shows that TMDB reports as changed in the last 24h.

        Shows that are not mirrored are ignored. Individual failures are
        logged and never stop the sweep.

        Returns:
            {"checked": N, "refreshed": N, "failed": N, "failed_pages": [...]}
        """
        async with self.session_factory() as db:
            mirrored = await ShowRepository(db).all_ids()

        summary = {"checked": 0, "refreshed": 0, "failed": 0, "failed_pages": []}
        if not mirrored:
            logger.info("refresh_changed_shows: mirror is empty, nothing to refresh")
            return summary

        to_refresh: list[int] = []

        def on_page(page: Optional[PagedResult], error: Optional[Exception]) -> None:
            if error is not None:
                return  # logged by the client
            for show_id in page.ids:
                if show_id in mirrored and show_id not in to_refresh:
                    to_refresh.append(show_id)

        try:
            sweep = await self.tmdb.list_all_changed_show_ids(on_page)
        except RemoteError as e:
            logger.warning(f"refresh_changed_shows: could not read changes feed: {e}")
            summary["failed_pages"] = [1]
            return summary

        fetched, errors = await self._fetch_many(to_refresh)
        refreshed = 0
        for show_id, details in fetched:
            # update-only, one transaction per show
            try:
                async with self.session_factory() as db:
                    updated = await ShowRepository(db).update(show_id, show_record_from_details(details))
                    await db.commit()
            except SQLAlchemyError as e:
                logger.warning(f"refresh_changed_shows: could not store show {show_id}: {e}")
                errors[show_id] = e
                continue
            if updated:
                refreshed += 1
            else:
                logger.debug(f"refresh_changed_shows: show {show_id} left the mirror during the sweep")

        summary.update(
            checked=len(sweep.changed_ids),
            refreshed=refreshed,
            failed=len(errors),
            failed_pages=sorted(sweep.failed_pages),
        )
        logger.info(
            f"refresh_changed_shows: {summary['checked']} changed, {summary['refreshed']} refreshed, "
            f"{summary['failed']} failed, {len(summary['failed_pages'])} pages failed"
        )
        return summary

    async def refresh_configuration(self) -> bool:
        """Replace the cached TMDB configuration. On failure the old one stays."""
        try:
            payload = await self.tmdb.get_configuration()
            async with self.session_factory() as db:
                await ConfigurationRepository(db).replace(payload)
                await db.commit()
        except (RemoteError, ValueError, SQLAlchemyError) as e:
            logger.warning(f"refresh_configuration failed, keeping previous configuration: {e}")
            return False

        logger.info("TMDB configuration refreshed")
        return True

    # ── Background tasks ─────────────────────────────────────────

    async def drain(self) -> None:
        """Wait for background mirror tasks started by ``add_show_to_user_list``."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _spawn(self, coro, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _mirror_quietly(self, show_id: int) -> None:
        try:
            await self.ensure_mirrored(show_id)
        except (RemoteError, SQLAlchemyError) as e:
            logger.warning(f"Background mirror of show {show_id} failed: {e}")

    # ── Helpers ──────────────────────────────────────────────────

    async def _fetch_many(self, show_ids: Iterable[int]) -> tuple[list[tuple[int, dict]], dict[int, Exception]]:
        """Fetch details for many shows concurrently; one failure never cancels the rest."""
        show_ids = list(show_ids)
        results = await asyncio.gather(
            *(self.tmdb.get_show_details_with_watch_providers(i, self.language) for i in show_ids),
            return_exceptions=True,
        )

        fetched: list[tuple[int, dict]] = []
        errors: dict[int, Exception] = {}
        for show_id, result in zip(show_ids, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.warning(f"TMDB fetch failed for show {show_id}: {result}")
                errors[show_id] = result
            else:
                fetched.append((show_id, result))
        return fetched, errors
