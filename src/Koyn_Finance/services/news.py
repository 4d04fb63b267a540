"""Asset news with a class-dependent cache and graceful degradation.

Resolution order for one asset:

1. Fresh cache entry (within the class TTL).
2. The class's FMP news endpoint, retried with backoff, then cached.
3. The cached entry regardless of age, flagged ``cached`` with its age.
4. FMP general news, flagged ``fallback`` and cached for half the TTL.
5. An empty list.

Refreshes for the same cache key are serialized so concurrent requests for
one asset make a single upstream call.
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, Final

from Koyn_Finance.models.asset import Asset
from Koyn_Finance.models.market_data import NewsItem
from Koyn_Finance.services._helpers import fetch_with_retry
from Koyn_Finance.services.asset_strategies import NEWS_GENERAL_PATH, NEWS_PAGE_SIZE, strategy_for
from Koyn_Finance.services.cache import CacheEntry, ServiceCache
from Koyn_Finance.services.fmp import FMP_SOURCE, FmpClient
from Koyn_Finance.utils.exceptions import DataFetchError
from Koyn_Finance.utils.text import strip_html

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

NEWS_TIMEOUT_SECONDS: Final[float] = 5.0
NEWS_MAX_ATTEMPTS: Final[int] = 3  # first try plus two retries
NEWS_BACKOFF_DELAYS: Final[list[float]] = [0.5, 1.0]
NEWS_ITEMS_RETURNED: Final[int] = 5


def news_cache_key(asset: Asset) -> str:
    return f"news:{asset.query_symbol}:{asset.asset_class.value}"


def item_from_row(row: dict[str, Any], *, fallback: bool = False) -> NewsItem:
    """Map an FMP article (any of its field spellings) to a NewsItem."""
    published = row.get("publishedDate") or row.get("date")
    description = row.get("text") or row.get("summary") or row.get("content")
    return NewsItem(
        title=strip_html(row.get("title") or row.get("headline")) or "No Title",
        url=str(row.get("url") or row.get("link") or ""),
        source=str(row.get("site") or row.get("publisher") or row.get("source") or "FMP"),
        description=strip_html(description) or "No description available.",
        published_at=str(published or datetime.datetime.now(datetime.UTC).isoformat()),
        fallback=fallback,
    )


class NewsService:
    """Per-asset news, cached in the ServiceCache.

    Usage::

        news = NewsService(fmp, cache)
        items = await news.fetch_news(asset)
    """

    def __init__(self, fmp: FmpClient, cache: ServiceCache) -> None:
        self._fmp = fmp
        self._cache = cache

    async def fetch_news(self, asset: Asset) -> list[NewsItem]:
        """Return up to five news items for *asset*. Never raises."""
        key = news_cache_key(asset)
        strategy = strategy_for(asset.asset_class)

        async with self._cache.lock_for(key):
            entry = await self._cache.get_stale(key)
            if entry is not None and not entry.is_expired():
                logger.debug("Fresh cached news for %s", key)
                return _decode(entry)

            path, params = strategy.news_request(asset)
            try:
                rows = await fetch_with_retry(
                    lambda: self._fmp.get_rows(
                        path,
                        symbol=asset.query_symbol,
                        params=params,
                        timeout=NEWS_TIMEOUT_SECONDS,
                    ),
                    symbol=asset.query_symbol,
                    source=FMP_SOURCE,
                    label=f"news({asset.query_symbol})",
                    max_attempts=NEWS_MAX_ATTEMPTS,
                    backoff_delays=NEWS_BACKOFF_DELAYS,
                )
            except DataFetchError as exc:
                logger.warning("News fetch failed for %s: %s", asset.query_symbol, exc)
                rows = []

            if rows:
                items = [item_from_row(row) for row in rows[:NEWS_ITEMS_RETURNED]]
                await self._store(key, items, strategy.news_ttl)
                logger.info("Fetched %d news items for %s", len(items), asset.query_symbol)
                return items

            if entry is not None:
                logger.warning(
                    "Serving stale news for %s (%.0fs old)", key, entry.age_seconds()
                )
                return _decode(entry)

            return await self._general_fallback(key, strategy.news_ttl // 2)

    async def _general_fallback(self, key: str, ttl_seconds: int) -> list[NewsItem]:
        try:
            rows = await self._fmp.get_rows(
                NEWS_GENERAL_PATH,
                symbol=key,
                params={"page": 0, "limit": NEWS_PAGE_SIZE},
                timeout=NEWS_TIMEOUT_SECONDS,
            )
        except DataFetchError as exc:
            logger.error("General news fallback failed for %s: %s", key, exc)
            return []

        if not rows:
            logger.error("No news available for %s from any source", key)
            return []

        items = [item_from_row(row, fallback=True) for row in rows[:NEWS_ITEMS_RETURNED]]
        await self._store(key, items, ttl_seconds)
        logger.info("Using %d general news items as fallback for %s", len(items), key)
        return items

    async def _store(self, key: str, items: list[NewsItem], ttl_seconds: int) -> None:
        payload = json.dumps([item.model_dump(mode="json") for item in items])
        await self._cache.set(key, payload, ttl_seconds)


def _decode(entry: CacheEntry) -> list[NewsItem]:
    age = int(entry.age_seconds())
    try:
        raw = json.loads(entry.value)
    except json.JSONDecodeError:
        logger.error("Discarding corrupt news cache entry %s", entry.key)
        return []
    return [
        NewsItem.model_validate({**row, "cached": True, "cache_age": age})
        for row in raw
        if isinstance(row, dict)
    ]
