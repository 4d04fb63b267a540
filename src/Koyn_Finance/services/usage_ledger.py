"""Durable per-subscription daily request counters.

Counts live in the ``api_usage`` table, one row per subscription per UTC day.
Every read-modify-write for a subscription runs under that subscription's
``asyncio.Lock``; different subscriptions never contend. A new UTC day needs
no reset job: the first access simply finds no row for the new date.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Callable
from typing import Final

from Koyn_Finance.data.database import Database
from Koyn_Finance.models.subscription import UNLIMITED, UsageRecord
from Koyn_Finance.services.cache import ServiceCache

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS: Final[int] = 7


def _utc_today() -> datetime.date:
    return datetime.datetime.now(datetime.UTC).date()


class UsageLedger:
    """Per-subscription daily counters backed by SQLite.

    Args:
        database: Connected Database holding the ``api_usage`` table.
        today: Clock returning the current UTC date. Tests pass a fake to
            cross midnight without waiting for it.
    """

    def __init__(
        self,
        database: Database,
        *,
        today: Callable[[], datetime.date] = _utc_today,
    ) -> None:
        self._database = database
        self._today = today
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, subscription_id: str) -> asyncio.Lock:
        lock = self._locks.get(subscription_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[subscription_id] = lock
        return lock

    async def get_today_count(self, subscription_id: str) -> int:
        """Return today's count, 0 when nothing has been recorded yet."""
        return await self._read_count(subscription_id, self._today())

    async def increment(self, subscription_id: str) -> int:
        """Add one to today's count and return the new value."""
        async with self._lock_for(subscription_id):
            return await self._increment_unlocked(subscription_id, self._today())

    async def try_consume(self, subscription_id: str, limit: int) -> tuple[bool, int]:
        """Check the allowance and consume one unit in a single critical section.

        Returns ``(allowed, used)`` where *used* is today's count after the
        call. A denied request leaves the count untouched. ``UNLIMITED``
        always allows.
        """
        async with self._lock_for(subscription_id):
            day = self._today()
            used = await self._read_count(subscription_id, day)
            if limit != UNLIMITED and used >= limit:
                return False, used
            return True, await self._increment_unlocked(subscription_id, day)

    async def history(self, subscription_id: str) -> list[UsageRecord]:
        """Return every retained day for *subscription_id*, newest first."""
        conn = self._database.connection
        cursor = await conn.execute(
            "SELECT usage_date, count FROM api_usage "
            "WHERE subscription_id = ? ORDER BY usage_date DESC",
            (subscription_id,),
        )
        rows = await cursor.fetchall()
        return [
            UsageRecord(
                subscription_id=subscription_id,
                date=datetime.date.fromisoformat(row[0]),
                count=row[1],
            )
            for row in rows
        ]

    async def purge_older_than(self, days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Delete rows dated more than *days* before today. Returns rows removed."""
        cutoff = self._today() - datetime.timedelta(days=days)
        conn = self._database.connection
        cursor = await conn.execute(
            "DELETE FROM api_usage WHERE usage_date < ?",
            (cutoff.isoformat(),),
        )
        await conn.commit()
        removed = cursor.rowcount if cursor.rowcount is not None else 0

        idle = [sid for sid, lock in self._locks.items() if not lock.locked()]
        for sid in idle:
            del self._locks[sid]

        if removed:
            logger.info("Purged %d usage rows older than %s", removed, cutoff)
        return removed

    async def run_purge_loop(
        self,
        *,
        interval_seconds: float,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        cache: ServiceCache | None = None,
    ) -> None:
        """Purge stale rows every *interval_seconds* until cancelled.

        When *cache* is given its long-expired news entries are dropped on the
        same schedule.
        """
        logger.info(
            "Usage purge loop started (every %.0fs, keep %d days)",
            interval_seconds,
            retention_days,
        )
        while True:
            try:
                await self.purge_older_than(retention_days)
                if cache is not None:
                    await cache.purge_stale()
            except Exception:
                logger.exception("Usage purge failed; retrying next interval")
            await asyncio.sleep(interval_seconds)

    # ------------------------------------------------------------------
    # SQLite operations
    # ------------------------------------------------------------------

    async def _read_count(self, subscription_id: str, day: datetime.date) -> int:
        conn = self._database.connection
        cursor = await conn.execute(
            "SELECT count FROM api_usage WHERE subscription_id = ? AND usage_date = ?",
            (subscription_id, day.isoformat()),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row is not None else 0

    async def _increment_unlocked(self, subscription_id: str, day: datetime.date) -> int:
        conn = self._database.connection
        now = datetime.datetime.now(datetime.UTC).isoformat()
        await conn.execute(
            "INSERT INTO api_usage (subscription_id, usage_date, count, updated_at) "
            "VALUES (?, ?, 1, ?) "
            "ON CONFLICT(subscription_id, usage_date) "
            "DO UPDATE SET count = count + 1, updated_at = excluded.updated_at",
            (subscription_id, day.isoformat(), now),
        )
        await conn.commit()
        count = await self._read_count(subscription_id, day)
        logger.debug("Usage for %s on %s is now %d", subscription_id, day, count)
        return count
