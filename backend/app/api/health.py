"""Health and system status endpoints."""

from fastapi import APIRouter, Request
from datetime import datetime, timezone

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Service health check — reports TMDB and scheduler status."""
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "ok",
        "version": "0.1.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "tmdb_configured": getattr(request.app.state, "tmdb", None) is not None,
        "jobs": [
            {"name": job.name, "interval_seconds": job.interval.total_seconds(), "runs": job.runs}
            for job in (scheduler.jobs if scheduler else [])
        ],
    }
