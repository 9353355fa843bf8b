# tests/conftest.py
"""
Test bootstrap
- SQLite (aiosqlite) file database per test, tables built from the ORM metadata
- A TmdbClient wired to the in-memory FakeTmdb through httpx.MockTransport
- A ShowSyncService over both
"""

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.clients.tmdb import TmdbClient
from app.database import Base
from app.repositories import ShowRepository, UserRepository, show_record_from_details
from app.services.show_sync import ShowSyncService
from tests.fixtures.tmdb import FakeTmdb, make_show

import app.models  # noqa: F401  (registers tables on Base.metadata)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture()
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'showrunner.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def fake_tmdb():
    return FakeTmdb()


@pytest.fixture()
async def tmdb(fake_tmdb):
    http = httpx.AsyncClient(transport=fake_tmdb.transport())
    client = TmdbClient("test-token", language=None, log_requests=False, http_client=http)
    yield client
    await http.aclose()


@pytest.fixture()
async def sync(tmdb, session_factory):
    service = ShowSyncService(tmdb, session_factory)
    yield service
    await service.drain()


@pytest.fixture()
def create_user(session_factory):
    """Create (and commit) a user, optionally with watchlist entries."""

    async def _create(username: str, show_ids=()):
        async with session_factory() as session:
            users = UserRepository(session)
            user = await users.create(username)
            for show_id in show_ids:
                await users.add_entry(user.id, show_id)
            await session.commit()
            return user.id

    return _create


@pytest.fixture()
def mirror_show(session_factory):
    """Store a show directly in the mirror, bypassing TMDB."""

    async def _mirror(show_id: int, name: str, **extra):
        async with session_factory() as session:
            show = await ShowRepository(session).upsert(
                show_id, show_record_from_details(make_show(show_id, name, **extra)),
            )
            await session.commit()
            return show

    return _mirror
