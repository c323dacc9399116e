"""
Tests for the SQLite response cache.

Each test gets its own DATA_DIR so the database lives under tmp_path.
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from babbar_intelligence import db
from babbar_intelligence.core.cache import CACHE_TTL_SECONDS
from babbar_intelligence.persistent_cache import SqliteResponseCache
from babbar_intelligence.sqlmodels import CachedResponse


@pytest_asyncio.fixture
async def database(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    await db.close_db()
    await db.init_db()
    yield tmp_path
    await db.close_db()


ENVELOPE = {"endpoint": "/host/overview/main", "rate_limit_remaining": 9, "data": {"host": "me.com"}}


class TestSqliteResponseCache:

    @pytest.mark.asyncio
    async def test_database_created_in_data_dir(self, database):
        assert (database / "cache.db").exists()
        assert db.get_db_url().endswith("cache.db")

    @pytest.mark.asyncio
    async def test_set_then_get(self, database, clock):
        cache = SqliteResponseCache(clock=clock)

        await cache.set("sig", ENVELOPE)

        assert await cache.get("sig") == ENVELOPE
        assert await cache.get("other") is None

    @pytest.mark.asyncio
    async def test_entries_expire(self, database, clock):
        cache = SqliteResponseCache(clock=clock)
        await cache.set("sig", ENVELOPE)

        clock.advance(CACHE_TTL_SECONDS - 1)
        assert await cache.get("sig") == ENVELOPE

        clock.advance(1)
        assert await cache.get("sig") is None

    @pytest.mark.asyncio
    async def test_overwrite_refreshes_entry(self, database, clock):
        cache = SqliteResponseCache(ttl=10, clock=clock)
        await cache.set("sig", ENVELOPE)

        clock.advance(8)
        await cache.set("sig", {**ENVELOPE, "rate_limit_remaining": 3})
        clock.advance(8)

        assert (await cache.get("sig"))["rate_limit_remaining"] == 3

    @pytest.mark.asyncio
    async def test_clear(self, database, clock):
        cache = SqliteResponseCache(clock=clock)
        await cache.set("a", ENVELOPE)
        await cache.set("b", ENVELOPE)

        await cache.clear()

        assert await cache.get("a") is None
        assert await cache.get("b") is None

    @pytest.mark.asyncio
    async def test_client_uses_persistent_cache(self, database, clock, make_client):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"host": "me.com"})

        client = make_client(handler, cache=SqliteResponseCache(clock=clock))
        try:
            await client.call("/host/overview/main", {"host": "me.com"})
            await client.call("/host/overview/main", {"host": "me.com"})
        finally:
            await client.close()

        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_row_records_endpoint_and_utc_update_time(self, database, clock):
        cache = SqliteResponseCache(clock=clock)
        await cache.set("sig", ENVELOPE)

        async with db.get_session_factory()() as session:
            row = (await session.execute(select(CachedResponse))).scalar_one()

        assert row.endpoint == "/host/overview/main"
        assert row.inserted_at == clock()
        updated_at = row.updated_at.replace(tzinfo=row.updated_at.tzinfo or timezone.utc)
        assert abs(datetime.now(timezone.utc) - updated_at) < timedelta(minutes=5)
