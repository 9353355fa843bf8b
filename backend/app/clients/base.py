"""Shared data transfer objects and errors for remote API clients."""

from dataclasses import dataclass, field
from typing import Optional, Union


class RemoteError(Exception):
    """A remote call failed: non-2xx response or transport error.

    ``status_code`` and ``body`` are ``None`` when the request never got a
    response (DNS, connect, timeout).
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Union[dict, str, None] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (HTTP {self.status_code})"


# ── Data Transfer Objects ────────────────────────────────────────

@dataclass
class PagedResult:
    """One page of a paginated TMDB listing."""
    page: int
    total_pages: int
    total_results: int
    results: list[dict] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict) -> "PagedResult":
        return cls(
            page=int(data.get("page") or 1),
            total_pages=int(data.get("total_pages") or 0),
            total_results=int(data.get("total_results") or 0),
            results=list(data.get("results") or []),
        )

    @property
    def ids(self) -> list[int]:
        return [r["id"] for r in self.results if r.get("id") is not None]


@dataclass
class ChangedIdsSweep:
    """Aggregate outcome of fetching every page of the changed-ids feed."""
    total_pages: int
    pages: list[PagedResult] = field(default_factory=list)
    failed_pages: list[int] = field(default_factory=list)
    errors: dict[int, Exception] = field(default_factory=dict)

    @property
    def completed(self) -> int:
        """Number of pages settled, successfully or not."""
        return len(self.pages) + len(self.failed_pages)

    @property
    def changed_ids(self) -> set[int]:
        ids: set[int] = set()
        for page in self.pages:
            ids.update(page.ids)
        return ids
