# tests/test_repositories.py

from datetime import date

import pytest
from sqlalchemy import func, select

from app.models.tables import Show, TmdbConfiguration
from app.repositories import (
    ConfigurationRepository,
    ShowRepository,
    UserRepository,
    show_record_from_details,
)
from tests.fixtures.tmdb import CONFIGURATION, make_show

pytestmark = pytest.mark.anyio


# ─────────────────────────────────────────────────────────────
# Show mirror
# ─────────────────────────────────────────────────────────────

def test_show_record_from_details_maps_tmdb_payload():
    details = make_show(1396, "Breaking Bad")
    details["watch_providers"] = {"id": 1396, "results": {"US": {"link": "https://x"}}}

    record = show_record_from_details(details)

    assert record["show_id"] == 1396
    assert record["name"] == "Breaking Bad"
    assert record["first_air_date"] == date(2008, 1, 20)
    assert record["episode_count"] == 62
    assert record["season_count"] == 5
    assert record["genres"] == [{"id": 18, "name": "Drama"}]
    assert record["networks"][0]["name"] == "AMC"
    assert record["seasons"][0]["season_number"] == 1
    assert record["watch_providers"] == {"US": {"link": "https://x"}}


def test_show_record_tolerates_missing_and_bad_dates():
    record = show_record_from_details({"id": 1, "name": "X", "first_air_date": "", "last_air_date": "soon"})

    assert record["first_air_date"] is None
    assert record["last_air_date"] is None
    assert record["watch_providers"] == {}
    assert record["genres"] == []


async def test_upsert_is_idempotent_and_replaces_fields(db):
    shows = ShowRepository(db)
    await shows.upsert(10, {"name": "First", "tagline": "old tagline"})
    await db.commit()

    stored = await shows.upsert(10, {"name": "Second", "vote_count": 3})
    await db.commit()

    count = await db.scalar(select(func.count()).select_from(Show).where(Show.show_id == 10))
    assert count == 1
    assert stored.name == "Second"
    assert stored.vote_count == 3
    assert stored.tagline is None


async def test_find_by_ids_returns_only_existing(db):
    shows = ShowRepository(db)
    await shows.upsert(1, {"name": "One"})
    await shows.upsert(2, {"name": "Two"})
    await db.commit()

    found = await shows.find_by_ids({1, 2, 3})

    assert [s.show_id for s in found] == [1, 2]
    assert await shows.find_by_ids(set()) == []


async def test_update_only_touches_existing_rows(db):
    shows = ShowRepository(db)
    await shows.upsert(10, {"name": "First", "tagline": "old tagline"})
    await db.commit()

    assert await shows.update(10, {"name": "Second"}) is True
    assert await shows.update(11, {"name": "Ghost"}) is False
    await db.commit()
    db.expunge_all()

    assert await shows.all_ids() == {10}
    stored = await shows.get(10)
    assert stored.name == "Second"
    assert stored.tagline is None


async def test_delete_by_id_and_all_ids(db):
    shows = ShowRepository(db)
    await shows.upsert(5, {"name": "Five"})
    await shows.upsert(6, {"name": "Six"})
    await db.commit()

    assert await shows.all_ids() == {5, 6}
    assert await shows.delete_by_id(5) is True
    assert await shows.delete_by_id(5) is False
    await db.commit()
    assert await shows.all_ids() == {6}


async def test_json_columns_round_trip(db):
    shows = ShowRepository(db)
    details = make_show(1396, "Breaking Bad")
    details["watch_providers"] = {"results": {"GB": {"flatrate": [{"provider_name": "Netflix"}]}}}
    await shows.upsert(1396, show_record_from_details(details))
    await db.commit()
    db.expunge_all()

    show = await shows.get(1396)

    assert show.watch_providers["GB"]["flatrate"][0]["provider_name"] == "Netflix"
    assert show.to_dict()["first_air_date"] == "2008-01-20"


# ─────────────────────────────────────────────────────────────
# Users and watchlist entries
# ─────────────────────────────────────────────────────────────

async def test_add_entry_is_conditional(db):
    users = UserRepository(db)
    user = await users.create("peter")

    assert await users.add_entry(user.id, 1396) is True
    assert await users.add_entry(user.id, 1396) is False
    await db.commit()

    entries = await users.entries(user.id)
    assert [e.show_id for e in entries] == [1396]
    assert entries[0].has_watched is False
    assert entries[0].favorite is False


async def test_remove_entry(db):
    users = UserRepository(db)
    user = await users.create("peter")
    await users.add_entry(user.id, 1)
    await db.commit()

    assert await users.remove_entry(user.id, 1) is True
    assert await users.remove_entry(user.id, 1) is False


async def test_flag_updates_report_matched_count(db):
    users = UserRepository(db)
    user = await users.create("peter")
    await users.add_entry(user.id, 1)
    await db.commit()

    assert await users.set_has_watched(user.id, 1, True) == 1
    assert await users.set_favorite(user.id, 1, True) == 1
    assert await users.set_rating(user.id, 1, "9") == 1
    assert await users.set_has_watched(user.id, 999, True) == 0
    await db.commit()
    db.expunge_all()

    entry = (await users.entries(user.id))[0]
    assert entry.has_watched is True
    assert entry.favorite is True
    assert entry.rating == "9"


async def test_list_other_owners(db):
    users = UserRepository(db)
    alice = await users.create("alice")
    bob = await users.create("bob")
    await users.add_entry(alice.id, 7)
    await users.add_entry(bob.id, 7)
    await users.add_entry(alice.id, 8)
    await db.commit()

    assert await users.list_other_owners(7, excluding_user_id=alice.id) == [bob.id]
    assert await users.list_other_owners(8, excluding_user_id=alice.id) == []


async def test_update_profile_sets_clears_and_leaves_fields(db):
    users = UserRepository(db)
    user = await users.create("peter", first_name="Peter", last_name="Schorn", email="p@example.com")
    await db.commit()

    updated = await users.update_profile(user.id, {"first_name": "Pete", "email": None})

    assert updated.first_name == "Pete"
    assert updated.email is None
    assert updated.last_name == "Schorn"


async def test_update_profile_rejects_unknown_fields_and_missing_users(db):
    users = UserRepository(db)
    user = await users.create("peter")

    with pytest.raises(ValueError):
        await users.update_profile(user.id, {"username": "hacker"})
    assert await users.update_profile(12345, {"first_name": "Nobody"}) is None


# ─────────────────────────────────────────────────────────────
# Configuration singleton
# ─────────────────────────────────────────────────────────────

async def test_configuration_replace_keeps_a_single_record(db):
    configs = ConfigurationRepository(db)
    assert await configs.get() is None

    await configs.replace(CONFIGURATION)
    changed = {**CONFIGURATION, "change_keys": ["name"]}
    stored = await configs.replace(changed)
    await db.commit()

    count = await db.scalar(select(func.count()).select_from(TmdbConfiguration))
    assert count == 1
    assert stored.change_keys == ["name"]


async def test_configuration_replace_rejects_incomplete_payload(db):
    configs = ConfigurationRepository(db)
    await configs.replace(CONFIGURATION)
    await db.commit()

    with pytest.raises(ValueError):
        await configs.replace({"images": {"base_url": "x"}, "change_keys": []})
    with pytest.raises(ValueError):
        await configs.replace({"change_keys": []})

    assert (await configs.get()).images["secure_base_url"] == "https://image.tmdb.org/t/p/"


def test_image_base_paths_prefer_supported_size():
    config = TmdbConfiguration(images=dict(CONFIGURATION["images"]), change_keys=[])

    assert config.poster_base_path("w500") == "https://image.tmdb.org/t/p/w500"
    assert config.poster_base_path("w9999") == "https://image.tmdb.org/t/p/w92"
    assert config.backdrop_base_path() == "https://image.tmdb.org/t/p/w300"
    assert config.image_url("/a.jpg", "backdrop", "w1280") == "https://image.tmdb.org/t/p/w1280/a.jpg"
    assert config.image_url(None) is None


def test_image_base_path_with_no_sizes_raises():
    config = TmdbConfiguration(images={**CONFIGURATION["images"], "poster_sizes": []}, change_keys=[])

    with pytest.raises(ValueError):
        config.poster_base_path("w500")
