"""Tests for NewsService: cache tiers, stale fallback, general-news fallback."""

import datetime
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from Koyn_Finance.models import Asset
from Koyn_Finance.services.cache import CacheEntry, ServiceCache
from Koyn_Finance.services.fmp import FmpClient
from Koyn_Finance.services.news import NewsService, item_from_row, news_cache_key

ARTICLES = [
    {
        "title": "<b>Apple</b> beats &amp; raises",
        "url": "https://example.com/1",
        "site": "Reuters",
        "text": "<p>Strong quarter.</p>",
        "publishedDate": "2025-01-15 09:00:00",
    },
    {"headline": "Second story", "link": "https://example.com/2", "publisher": "AP"},
]


def _news(routes: dict[str, object], cache: ServiceCache, seen: list[str] | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request.url.path)
        body = routes.get(request.url.path, [])
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json=body)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return NewsService(FmpClient("k", client=client, base_url="https://fmp.test"), cache)


@pytest.fixture(autouse=True)
def _no_backoff():
    with patch("Koyn_Finance.services._helpers.asyncio.sleep", new_callable=AsyncMock):
        yield


class TestItemFromRow:
    def test_html_stripped_and_fields_mapped(self) -> None:
        item = item_from_row(ARTICLES[0])
        assert item.title == "Apple beats & raises"
        assert item.description == "Strong quarter."
        assert item.source == "Reuters"
        assert item.published_at == "2025-01-15 09:00:00"

    def test_alternate_spellings_and_defaults(self) -> None:
        item = item_from_row(ARTICLES[1], fallback=True)
        assert item.title == "Second story"
        assert item.url == "https://example.com/2"
        assert item.source == "AP"
        assert item.description == "No description available."
        assert item.fallback is True

    def test_missing_title(self) -> None:
        assert item_from_row({}).title == "No Title"


class TestFetchNews:
    @pytest.mark.asyncio()
    async def test_stock_news_fetched_and_cached(self, stock_asset: Asset) -> None:
        seen: list[str] = []
        cache = ServiceCache()
        news = _news({"/stable/news/stock": ARTICLES}, cache, seen)

        first = await news.fetch_news(stock_asset)
        second = await news.fetch_news(stock_asset)

        assert [item.title for item in first] == ["Apple beats & raises", "Second story"]
        assert first[0].cached is False
        assert second[0].cached is True
        assert seen == ["/stable/news/stock"]

    @pytest.mark.asyncio()
    async def test_at_most_five_items(self, crypto_asset: Asset) -> None:
        rows = [{"title": f"Story {n}"} for n in range(12)]
        news = _news({"/stable/news/crypto-latest": rows}, ServiceCache())
        assert len(await news.fetch_news(crypto_asset)) == 5

    @pytest.mark.asyncio()
    async def test_stale_cache_served_when_upstream_fails(self, stock_asset: Asset) -> None:
        cache = ServiceCache()
        key = news_cache_key(stock_asset)
        cache._memory_cache[key] = CacheEntry(
            key=key,
            value=json.dumps([item_from_row(ARTICLES[0]).model_dump(mode="json")]),
            created_at=datetime.datetime.now(datetime.UTC) - datetime.timedelta(hours=5),
            ttl_seconds=60,
        )
        news = _news({"/stable/news/stock": httpx.Response(503)}, cache)

        items = await news.fetch_news(stock_asset)

        assert len(items) == 1
        assert items[0].cached is True
        assert items[0].cache_age is not None
        assert items[0].cache_age >= 5 * 3600

    @pytest.mark.asyncio()
    async def test_general_news_fallback(self, stock_asset: Asset) -> None:
        news = _news({"/stable/news/general-latest": ARTICLES}, ServiceCache())
        items = await news.fetch_news(stock_asset)
        assert len(items) == 2
        assert all(item.fallback for item in items)

    @pytest.mark.asyncio()
    async def test_nothing_anywhere(self, stock_asset: Asset) -> None:
        news = _news({}, ServiceCache())
        assert await news.fetch_news(stock_asset) == []

    def test_cache_key(self, crypto_asset: Asset) -> None:
        assert news_cache_key(crypto_asset) == "news:BTCUSD:crypto"
