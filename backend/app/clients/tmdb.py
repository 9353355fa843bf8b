"""TMDB client — TV show metadata, search, change feed, lists and auth.

Handles: show details (optionally with watch providers embedded), search,
the changed-ids feed used by the daily refresh, API configuration, user
lists (v4), and the v4 request-token / access-token / session exchange.
"""

import asyncio
import inspect
import logging
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from app.clients.base import ChangedIdsSweep, PagedResult, RemoteError

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str]
PageCallback = Callable[[Optional[PagedResult], Optional[Exception]], Optional[Awaitable[None]]]


class TmdbClient:
    """The Movie Database API client (v3 + v4 endpoints, bearer auth)."""

    BASE_URL = "https://api.themoviedb.org"
    IMAGE_BASE = "https://image.tmdb.org/t/p"
    WATCH_PROVIDERS_KEY = "watch/providers"

    def __init__(
        self,
        api_key: str,
        language: Optional[str] = "en-US",
        base_url: str = BASE_URL,
        timeout: float = 15.0,
        log_requests: bool = True,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError(f"api_key cannot be {api_key!r}")
        self.api_key = api_key
        self.language = language
        self.base_url = base_url.rstrip("/")
        self.log_requests = log_requests
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "TmdbClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # ── HTTP plumbing ────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        body: Any = None,
        headers: dict | None = None,
    ) -> dict:
        """Make an authenticated request and return the decoded JSON body.

        ``None`` values are dropped from ``params`` and from dict bodies so
        absent options are never sent. ``headers`` override the defaults,
        which is how v4 user access tokens replace the app token.
        """
        url = f"{self.base_url}{path}"
        query = _drop_none(params)
        if isinstance(body, dict):
            body = _drop_none(body)

        all_headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json;charset=utf-8",
            **(headers or {}),
        }

        if self.log_requests:
            message = f"TMDB {method} {url}"
            if query:
                message += f" params={query}"
            if body is not None:
                message += f" body={body}"
            logger.debug(message)

        try:
            resp = await self._http.request(
                method, url, params=query or None, json=body, headers=all_headers,
            )
        except httpx.HTTPError as e:
            raise RemoteError(f"TMDB {method} {path} failed: {e}") from e

        if resp.is_error:
            try:
                payload = resp.json()
            except ValueError:
                payload = resp.text
            raise RemoteError(f"TMDB {method} {path} failed", resp.status_code, payload)

        if not resp.content:
            return {}
        return resp.json()

    async def _get(self, path: str, params: dict | None = None) -> dict:
        return await self._request("GET", path, params)

    def _lang(self, language: Optional[str]) -> Optional[str]:
        return language or self.language

    @staticmethod
    def _user_auth(access_token: str) -> dict:
        return {"Authorization": f"Bearer {access_token}"}

    # ── TV show details ──────────────────────────────────────────

    async def get_show_details(self, show_id: int, language: Optional[str] = None) -> dict:
        """Primary TV show details."""
        return await self._get(f"/3/tv/{show_id}", {"language": self._lang(language)})

    async def get_show_details_with_watch_providers(
        self, show_id: int, language: Optional[str] = None,
    ) -> dict:
        """Show details with the watch providers sub-resource embedded.

        TMDB returns the embedded resource under ``"watch/providers"``; it is
        moved to ``watch_providers``.
        """
        data = await self._get(
            f"/3/tv/{show_id}",
            {"language": self._lang(language), "append_to_response": self.WATCH_PROVIDERS_KEY},
        )
        if self.WATCH_PROVIDERS_KEY in data:
            data["watch_providers"] = data.pop(self.WATCH_PROVIDERS_KEY)
        return data

    async def get_watch_providers(self, show_id: int) -> dict:
        """Where a show can be streamed, rented or bought, keyed by region."""
        return await self._get(f"/3/tv/{show_id}/watch/providers")

    async def get_popular_shows(self, page: Optional[int] = None, language: Optional[str] = None) -> PagedResult:
        data = await self._get("/3/tv/popular", {"page": page, "language": self._lang(language)})
        return PagedResult.from_payload(data)

    async def get_top_rated_shows(self, page: Optional[int] = None, language: Optional[str] = None) -> PagedResult:
        data = await self._get("/3/tv/top_rated", {"page": page, "language": self._lang(language)})
        return PagedResult.from_payload(data)

    async def get_similar_shows(self, show_id: int, page: Optional[int] = None) -> PagedResult:
        data = await self._get(f"/3/tv/{show_id}/similar", {"page": page, "language": self.language})
        return PagedResult.from_payload(data)

    async def get_show_recommendations(self, show_id: int, page: Optional[int] = None) -> PagedResult:
        data = await self._get(f"/3/tv/{show_id}/recommendations", {"page": page, "language": self.language})
        return PagedResult.from_payload(data)

    async def get_show_account_states(self, show_id: int, session_id: str) -> dict:
        """Rated / watchlist / favorite state of a show for a TMDB account."""
        return await self._get(f"/3/tv/{show_id}/account_states", {"session_id": session_id})

    async def rate_show(self, show_id: int, rating: float, session_id: str) -> dict:
        """Rate a show (0.5–10.0) on behalf of a TMDB session."""
        return await self._request(
            "POST", f"/3/tv/{show_id}/rating", {"session_id": session_id}, {"value": rating},
        )

    # ── Search ───────────────────────────────────────────────────

    async def search_shows(
        self,
        query: str,
        page: Optional[int] = None,
        language: Optional[str] = None,
        include_adult: Optional[bool] = None,
        first_air_date_year: Optional[int] = None,
    ) -> PagedResult:
        """Search TV shows by name.

        Each result gets a ``first_air_date_display`` ("March 3, 2008") when
        its air date parses; a bad date is logged and the result kept as-is.
        """
        data = await self._get(
            "/3/search/tv",
            {
                "query": query,
                "page": page,
                "language": self._lang(language),
                "include_adult": include_adult,
                "first_air_date_year": first_air_date_year,
            },
        )
        result = PagedResult.from_payload(data)
        for show in result.results:
            raw = show.get("first_air_date")
            if not raw:
                continue
            try:
                show["first_air_date_display"] = format_air_date(raw)
            except ValueError as e:
                logger.warning(f"search_shows: could not parse first_air_date {raw!r} for show {show.get('id')}: {e}")
        return result

    # ── Changes feed ─────────────────────────────────────────────

    async def list_changed_show_ids(
        self,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        page: Optional[int] = None,
    ) -> PagedResult:
        """One page of show ids changed in a window (TMDB default: last 24h)."""
        params = {
            "start_date": _iso_date(start_date),
            "end_date": _iso_date(end_date),
            "page": page,
        }
        data = await self._get("/3/tv/changes", params)
        return PagedResult.from_payload(data)

    async def list_all_changed_show_ids(
        self,
        on_page: Optional[PageCallback] = None,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
    ) -> ChangedIdsSweep:
        """Fetch every page of the changed-ids feed.

        Page 1 is fetched first to learn ``total_pages``; the remaining pages
        are requested concurrently and ``on_page(page, None)`` or
        ``on_page(None, error)`` is called as each one settles, in arrival
        order. Failed pages are not retried. Returns once every page has
        settled. A failure on page 1 raises ``RemoteError``.
        """
        # validate before any request goes out
        start_date, end_date = _iso_date(start_date), _iso_date(end_date)

        first = await self.list_changed_show_ids(start_date, end_date, page=1)
        sweep = ChangedIdsSweep(total_pages=max(first.total_pages, 1), pages=[first])
        await _notify(on_page, first, None)

        async def fetch(number: int):
            try:
                return number, await self.list_changed_show_ids(start_date, end_date, page=number), None
            except RemoteError as e:
                return number, None, e

        pending = [fetch(n) for n in range(2, sweep.total_pages + 1)]
        for next_done in asyncio.as_completed(pending):
            number, page, error = await next_done
            if error is not None:
                logger.warning(f"list_all_changed_show_ids: page {number} failed: {error}")
                sweep.failed_pages.append(number)
                sweep.errors[number] = error
            else:
                sweep.pages.append(page)
            await _notify(on_page, page, error)

        return sweep

    # ── Configuration ────────────────────────────────────────────

    async def get_configuration(self) -> dict:
        """Image base URLs, supported sizes and change keys."""
        return await self._get("/3/configuration")

    async def test_connection(self) -> bool:
        """Test TMDB token validity."""
        try:
            await self.get_configuration()
            return True
        except RemoteError:
            return False

    # ── Lists (v4) ───────────────────────────────────────────────

    async def get_account_lists(self, account_id: str, page: Optional[int] = None) -> PagedResult:
        data = await self._get(f"/4/account/{account_id}/lists", {"page": page})
        return PagedResult.from_payload(data)

    async def get_list(
        self,
        list_id: int,
        page: Optional[int] = None,
        language: Optional[str] = None,
        sort_by: Optional[str] = None,
    ) -> dict:
        return await self._get(
            f"/4/list/{list_id}",
            {"page": page, "language": self._lang(language), "sort_by": sort_by},
        )

    async def create_list(self, access_token: str, body: dict) -> dict:
        """Create a list. ``iso_639_1`` is required by TMDB; defaults to "en"."""
        body = {"iso_639_1": "en", **body}
        if not body["iso_639_1"]:
            body["iso_639_1"] = "en"
        return await self._request("POST", "/4/list", None, body, self._user_auth(access_token))

    async def update_list(self, list_id: int, access_token: str, body: dict) -> dict:
        return await self._request("PUT", f"/4/list/{list_id}", None, body, self._user_auth(access_token))

    async def clear_list(self, list_id: int, session_id: str) -> dict:
        return await self._request(
            "POST", f"/3/list/{list_id}/clear", {"session_id": session_id, "confirm": True},
        )

    async def delete_list(self, list_id: int, access_token: str) -> dict:
        return await self._request("DELETE", f"/4/list/{list_id}", headers=self._user_auth(access_token))

    async def add_items_to_list(self, list_id: int, access_token: str, items: list[dict]) -> dict:
        """Add items: ``[{"media_type": "tv", "media_id": 1396}, ...]``."""
        return await self._request(
            "POST", f"/4/list/{list_id}/items", None, {"items": items}, self._user_auth(access_token),
        )

    async def remove_items_from_list(self, list_id: int, access_token: str, items: list[dict]) -> dict:
        return await self._request(
            "DELETE", f"/4/list/{list_id}/items", None, {"items": items}, self._user_auth(access_token),
        )

    # ── Authentication (v4 token exchange) ───────────────────────

    async def create_request_token(self, redirect_to: Optional[str] = None) -> dict:
        """Step 1: a request token the user approves on themoviedb.org."""
        return await self._request("POST", "/4/auth/request_token", None, {"redirect_to": redirect_to})

    async def create_access_token(self, request_token: str) -> dict:
        """Step 2: exchange an approved request token for an access token."""
        return await self._request("POST", "/4/auth/access_token", None, {"request_token": request_token})

    async def create_session(self, access_token: str) -> dict:
        """Step 3: convert a v4 access token into a v3 session id."""
        return await self._request(
            "POST", "/3/authentication/session/convert/4", None, {"access_token": access_token},
        )

    # ── Image URL helpers ────────────────────────────────────────

    @staticmethod
    def image_url(base_url: str, size: str, path: Optional[str]) -> Optional[str]:
        """Combine base URL, size and file path into a full image URL."""
        if not path:
            return None
        return f"{base_url.rstrip('/')}/{size}{path}"


# ── Helpers ──────────────────────────────────────────────────────

def _drop_none(values: dict | None) -> dict:
    return {k: v for k, v in (values or {}).items() if v is not None}


def _iso_date(value: Optional[DateLike]) -> Optional[str]:
    """Render a date for the changes feed as ISO-8601 (``YYYY-MM-DD``)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        try:
            datetime.fromisoformat(value)
        except ValueError:
            raise ValueError(f"not an ISO-8601 date: {value!r}") from None
        return value
    raise ValueError(f"not an ISO-8601 date: {value!r}")


def format_air_date(raw: str) -> str:
    """``"2008-01-20"`` → ``"January 20, 2008"``."""
    parsed = date.fromisoformat(raw)
    return f"{parsed:%B} {parsed.day}, {parsed.year}"


async def _notify(callback: Optional[PageCallback], page, error) -> None:
    if callback is None:
        return
    result = callback(page, error)
    if inspect.isawaitable(result):
        await result
