"""Showrunner — FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.api import health, shows, users
from app.clients.base import RemoteError

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup: create tables, build the TMDB client and sync service, start jobs
    from app.database import async_session, engine, init_db
    from app.clients.tmdb import TmdbClient
    from app.services.scheduler import Scheduler
    from app.services.show_sync import ShowSyncService

    await init_db()

    app.state.tmdb = None
    app.state.show_sync = None
    app.state.scheduler = Scheduler()

    if settings.has_tmdb:
        app.state.tmdb = TmdbClient(
            settings.tmdb_api_key,
            language=settings.tmdb_language,
            base_url=settings.tmdb_base_url,
            timeout=settings.tmdb_timeout_seconds,
            log_requests=settings.tmdb_log_requests,
        )
        sync = ShowSyncService(app.state.tmdb, async_session, language=settings.tmdb_language)
        app.state.show_sync = sync
        app.state.scheduler.add_job(
            "refresh_changed_shows",
            sync.refresh_changed_shows,
            timedelta(hours=settings.show_refresh_interval_hours),
            run_immediately=settings.refresh_on_startup,
        )
        app.state.scheduler.add_job(
            "refresh_configuration",
            sync.refresh_configuration,
            timedelta(hours=settings.configuration_refresh_interval_hours),
            run_immediately=settings.refresh_on_startup,
        )
        app.state.scheduler.start()
    else:
        logger.warning("TMDB_API_KEY is not set; search and watchlist endpoints are disabled")

    yield

    # Shutdown: stop jobs, finish background mirroring, close pools
    await app.state.scheduler.stop()
    if app.state.show_sync is not None:
        await app.state.show_sync.drain()
    if app.state.tmdb is not None:
        await app.state.tmdb.aclose()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="TV show watchlist backed by TMDB",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.app_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RemoteError)
async def remote_error_handler(request: Request, exc: RemoteError):
    logger.warning(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=502,
        content={"detail": "TMDB request failed", "upstream_status": exc.status_code},
    )


# ── Mount routers ────────────────────────────────────────────────
app.include_router(health.router,  prefix="/api/v1", tags=["system"])
app.include_router(shows.router,   prefix="/api/v1", tags=["shows"])
app.include_router(users.router,   prefix="/api/v1", tags=["users"])
