"""In-memory and SQLite caching layer with TTL and stale reads.

Provides a cache-first pattern for news fetching: check cache, fetch on miss,
store, and return. Entries live in memory and are written through to the
``service_cache`` table when a Database is configured, so a restart does not
lose the stale copies the news fallback relies on. Expired entries stay
readable through ``get_stale`` until ``purge_stale`` drops everything older
than ``STALE_RETENTION_SECONDS``.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Final

from pydantic import BaseModel, ConfigDict

from Koyn_Finance.data.database import Database

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# TTL values in seconds
# ---------------------------------------------------------------------------

TTL_NEWS_CRYPTO: Final[int] = 15 * 60
TTL_NEWS_FOREX: Final[int] = 20 * 60
TTL_NEWS_STOCK: Final[int] = 30 * 60
TTL_NEWS_INDEX: Final[int] = 30 * 60
TTL_NEWS_COMMODITY: Final[int] = 60 * 60

# Entries older than this are dropped entirely, stale or not
STALE_RETENTION_SECONDS: Final[int] = 7 * 24 * 60 * 60

# Lazy cleanup: run eviction at most every N accesses
LAZY_CLEANUP_INTERVAL: Final[int] = 100


class CacheEntry(BaseModel):
    """A single cached value with metadata for expiration checking."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str  # JSON-serialized payload
    created_at: datetime.datetime
    ttl_seconds: int

    def age_seconds(self) -> float:
        now = datetime.datetime.now(datetime.UTC)
        return (now - self.created_at).total_seconds()

    def is_expired(self) -> bool:
        """Return True if this entry has exceeded its TTL.

        A ttl_seconds of 0 means the entry never expires.
        """
        if self.ttl_seconds == 0:
            return False
        return self.age_seconds() > self.ttl_seconds


class ServiceCache:
    """Write-through cache: in-memory dict backed by the SQLite service_cache table.

    Usage::

        async with Database("data/koyn.db") as db:
            cache = ServiceCache(database=db)

            async with cache.lock_for("news:BTC:crypto"):
                entry = await cache.get_stale("news:BTC:crypto")
                if entry is None or entry.is_expired():
                    items = await fetch_news("BTC")
                    await cache.set("news:BTC:crypto", json.dumps(items), TTL_NEWS_CRYPTO)
    """

    def __init__(self, database: Database | None = None) -> None:
        self._database = database
        self._memory_cache: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._access_count: int = 0

        logger.info(
            "ServiceCache initialized: sqlite=%s",
            "enabled" if database is not None else "disabled",
        )

    def lock_for(self, key: str) -> asyncio.Lock:
        """Return the lock serializing refreshes of *key*.

        Different keys get different locks, so unrelated refreshes never wait
        on each other.
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get_stale(self, key: str) -> CacheEntry | None:
        """Retrieve an entry regardless of its TTL (for degraded fallbacks)."""
        entry = await self.get_entry(key)
        if entry is not None:
            logger.debug("Stale cache read: %s (age=%.0fs)", key, entry.age_seconds())
        return entry

    async def get_entry(self, key: str) -> CacheEntry | None:
        """Look in memory first, then SQLite (promoting the row into memory)."""
        self._increment_access_count()

        entry = self._memory_cache.get(key)
        if entry is not None:
            return entry

        if self._database is not None:
            entry = await self._sqlite_get(key)
            if entry is not None:
                self._memory_cache[key] = entry
            return entry
        return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value in memory and, when configured, in SQLite."""
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=datetime.datetime.now(datetime.UTC),
            ttl_seconds=ttl_seconds,
        )
        self._memory_cache[key] = entry
        if self._database is not None:
            await self._sqlite_set(entry)
        logger.debug("Cache set: %s (ttl=%ds)", key, ttl_seconds)

    async def purge_stale(self, max_age_seconds: int = STALE_RETENTION_SECONDS) -> int:
        """Drop entries older than *max_age_seconds* from both tiers.

        Returns the number of SQLite rows removed.
        """
        self._evict_old_memory_entries(max_age_seconds)
        if self._database is None:
            return 0

        cutoff = datetime.datetime.now(datetime.UTC) - datetime.timedelta(seconds=max_age_seconds)
        conn = self._database.connection
        cursor = await conn.execute(
            "DELETE FROM service_cache WHERE created_at < ?", (cutoff.isoformat(),)
        )
        await conn.commit()
        removed = cursor.rowcount if cursor.rowcount is not None else 0
        if removed:
            logger.info("Purged %d cache rows older than %ds", removed, max_age_seconds)
        return removed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _increment_access_count(self) -> None:
        """Track accesses and trigger lazy cleanup when threshold is reached."""
        self._access_count += 1
        if self._access_count >= LAZY_CLEANUP_INTERVAL:
            self._access_count = 0
            self._evict_old_memory_entries()

    def _evict_old_memory_entries(self, max_age_seconds: int = STALE_RETENTION_SECONDS) -> None:
        old_keys = [k for k, v in self._memory_cache.items() if v.age_seconds() > max_age_seconds]
        for key in old_keys:
            del self._memory_cache[key]
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                del self._locks[key]

        if old_keys:
            logger.debug("Lazy cleanup: evicted %d old memory entries", len(old_keys))

    # ------------------------------------------------------------------
    # SQLite operations
    # ------------------------------------------------------------------

    async def _sqlite_get(self, key: str) -> CacheEntry | None:
        if self._database is None:
            return None

        conn = self._database.connection
        cursor = await conn.execute(
            "SELECT key, value, created_at, ttl_seconds FROM service_cache WHERE key = ?",
            (key,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None

        return CacheEntry(
            key=row[0],
            value=row[1],
            created_at=datetime.datetime.fromisoformat(row[2]),
            ttl_seconds=row[3],
        )

    async def _sqlite_set(self, entry: CacheEntry) -> None:
        if self._database is None:
            return

        conn = self._database.connection
        await conn.execute(
            "INSERT OR REPLACE INTO service_cache (key, value, created_at, ttl_seconds) "
            "VALUES (?, ?, ?, ?)",
            (
                entry.key,
                entry.value,
                entry.created_at.isoformat(),
                entry.ttl_seconds,
            ),
        )
        await conn.commit()
