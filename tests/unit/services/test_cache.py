"""Tests for ServiceCache: TTL, stale reads, SQLite write-through, purge."""

import datetime
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from Koyn_Finance.data.database import Database
from Koyn_Finance.services.cache import STALE_RETENTION_SECONDS, CacheEntry, ServiceCache


@pytest_asyncio.fixture()
async def database() -> AsyncGenerator[Database]:
    async with Database(":memory:") as db:
        yield db


def _entry(age_seconds: float, ttl: int, key: str = "k") -> CacheEntry:
    created = datetime.datetime.now(datetime.UTC) - datetime.timedelta(seconds=age_seconds)
    return CacheEntry(key=key, value="v", created_at=created, ttl_seconds=ttl)


class TestCacheEntry:
    def test_fresh_entry(self) -> None:
        assert _entry(10, 60).is_expired() is False

    def test_expired_entry(self) -> None:
        assert _entry(120, 60).is_expired() is True

    def test_zero_ttl_never_expires(self) -> None:
        assert _entry(10_000_000, 0).is_expired() is False


class TestMemoryCache:
    @pytest.mark.asyncio()
    async def test_set_then_read(self) -> None:
        cache = ServiceCache()
        await cache.set("news:AAPL:stock", '["a"]', 60)
        entry = await cache.get_stale("news:AAPL:stock")
        assert entry is not None
        assert entry.value == '["a"]'
        assert entry.is_expired() is False

    @pytest.mark.asyncio()
    async def test_miss(self) -> None:
        assert await ServiceCache().get_stale("missing") is None

    @pytest.mark.asyncio()
    async def test_expired_value_kept_for_stale_reads(self) -> None:
        cache = ServiceCache()
        cache._memory_cache["k"] = _entry(120, 60)
        stale = await cache.get_stale("k")
        assert stale is not None
        assert stale.is_expired() is True
        assert stale.value == "v"

    def test_lock_per_key(self) -> None:
        cache = ServiceCache()
        assert cache.lock_for("a") is cache.lock_for("a")
        assert cache.lock_for("a") is not cache.lock_for("b")

    @pytest.mark.asyncio()
    async def test_purge_drops_only_old_entries(self) -> None:
        cache = ServiceCache()
        cache._memory_cache["old"] = _entry(STALE_RETENTION_SECONDS + 60, 60, key="old")
        cache._memory_cache["recent"] = _entry(3600, 60, key="recent")

        assert await cache.purge_stale() == 0
        assert await cache.get_stale("old") is None
        assert await cache.get_stale("recent") is not None


class TestSqliteTier:
    @pytest.mark.asyncio()
    async def test_value_survives_new_cache_instance(self, database: Database) -> None:
        await ServiceCache(database).set("news:BTC:crypto", '["btc"]', 900)
        entry = await ServiceCache(database).get_stale("news:BTC:crypto")
        assert entry is not None
        assert entry.value == '["btc"]'

    @pytest.mark.asyncio()
    async def test_overwrite(self, database: Database) -> None:
        cache = ServiceCache(database)
        await cache.set("k", "old", 60)
        await cache.set("k", "new", 60)
        entry = await ServiceCache(database).get_stale("k")
        assert entry is not None
        assert entry.value == "new"

    @pytest.mark.asyncio()
    async def test_purge_removes_old_rows(self, database: Database) -> None:
        cache = ServiceCache(database)
        await cache.set("recent", "v", 60)
        await cache.set("old", "v", 60)
        long_ago = datetime.datetime.now(datetime.UTC) - datetime.timedelta(days=30)
        await database.connection.execute(
            "UPDATE service_cache SET created_at = ? WHERE key = 'old'",
            (long_ago.isoformat(),),
        )
        await database.connection.commit()

        assert await cache.purge_stale() == 1
        fresh = ServiceCache(database)
        assert await fresh.get_stale("old") is None
        assert await fresh.get_stale("recent") is not None
