"""Shared fixtures for web route tests.

Provides a test FastAPI app and TestClient with every ``app.state`` provider
overridden, so route tests never open the database or call an upstream. The
subscription resolver is real (over a temporary JSON store) so credential
extraction runs end to end.
"""

from __future__ import annotations

import datetime
import json
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock

import jwt
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from Koyn_Finance.config import JWT_AUDIENCE, JWT_ISSUER, Settings
from Koyn_Finance.data.catalog import AssetCatalog, CatalogEntry
from Koyn_Finance.data.subscriptions import SubscriptionStore
from Koyn_Finance.models import (
    AnalysisResult,
    Asset,
    AssetClass,
    Narrative,
    NewsItem,
    PriceQuote,
    PriceSeries,
    RateLimitDecision,
    SentimentScore,
    SubscriptionPlan,
)
from Koyn_Finance.services.aggregation import SentimentService
from Koyn_Finance.services.asset_resolver import AssetResolver
from Koyn_Finance.services.asset_strategies import Upstreams
from Koyn_Finance.services.dexscreener import DexScreenerClient
from Koyn_Finance.services.fmp import FmpClient
from Koyn_Finance.services.market_data import MarketDataService
from Koyn_Finance.services.rate_limiter import RateLimiter
from Koyn_Finance.services.subscriptions import SubscriptionResolver
from Koyn_Finance.web.app import create_app
from Koyn_Finance.web.deps import (
    get_asset_resolver,
    get_catalog,
    get_market_data_service,
    get_rate_limiter,
    get_sentiment_service,
    get_subscription_resolver,
)

JWT_SECRET = "test-secret"
DEMO_TOKEN = "demo-token"


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        jwt_secret=JWT_SECRET,
        fmp_api_key="fmp",
        gemini_api_key=None,
        xai_api_key=None,
        demo_token=DEMO_TOKEN,
    )


@pytest.fixture()
def subscription_resolver(tmp_path: Path) -> SubscriptionResolver:
    path = tmp_path / "subscriptions.json"
    path.write_text(
        json.dumps(
            [
                {
                    "id": "sub_active",
                    "email": "trader@example.com",
                    "status": "active",
                    "plan": "monthly",
                },
                {
                    "id": "sub_inactive",
                    "email": "lapsed@example.com",
                    "status": "inactive",
                    "plan": "monthly",
                },
            ]
        ),
        encoding="utf-8",
    )
    return SubscriptionResolver(SubscriptionStore(path), jwt_secret=JWT_SECRET)


@pytest.fixture()
def make_token() -> Callable[..., str]:
    """Sign an access token the way the auth service does."""

    def _make(**claims: object) -> str:
        payload = {
            "iss": JWT_ISSUER,
            "aud": JWT_AUDIENCE,
            "exp": datetime.datetime.now(datetime.UTC) + datetime.timedelta(hours=1),
            **claims,
        }
        return jwt.encode(payload, JWT_SECRET, algorithm="HS256")

    return _make


@pytest.fixture()
def rate_limiter() -> AsyncMock:
    limiter = AsyncMock(spec=RateLimiter)
    limiter.acquire.return_value = RateLimitDecision(
        allowed=True, used=1, limit=10, plan=SubscriptionPlan.MONTHLY
    )
    limiter.headers.side_effect = RateLimiter.headers
    return limiter


@pytest.fixture()
def analysis_result(
    stock_asset: Asset,
    sample_quote: PriceQuote,
    sample_series: PriceSeries,
    sample_sentiment: SentimentScore,
    sample_narrative: Narrative,
    sample_news: list[NewsItem],
) -> AnalysisResult:
    return AnalysisResult(
        asset=stock_asset,
        price_quote=sample_quote,
        price_series=sample_series,
        sentiment=sample_sentiment,
        narrative=sample_narrative,
        news=sample_news,
    )


@pytest.fixture()
def sentiment_service(analysis_result: AnalysisResult) -> AsyncMock:
    service = AsyncMock(spec=SentimentService)
    service.analyze.return_value = analysis_result
    return service


@pytest.fixture()
def asset_resolver() -> AsyncMock:
    resolver = AsyncMock(spec=AssetResolver)
    resolver.resolve.return_value = None
    return resolver


@pytest.fixture()
def dex() -> AsyncMock:
    return AsyncMock(spec=DexScreenerClient)


@pytest.fixture()
def market_data(dex: AsyncMock) -> AsyncMock:
    service = AsyncMock(spec=MarketDataService)
    service.upstreams = Upstreams(fmp=AsyncMock(spec=FmpClient), dex=dex)
    return service


@pytest.fixture()
def catalog() -> AssetCatalog:
    return AssetCatalog(
        [
            CatalogEntry(symbol="BTCUSD", name="Bitcoin", asset_class=AssetClass.CRYPTO),
            CatalogEntry(symbol="ETHUSD", name="Ethereum", asset_class=AssetClass.CRYPTO),
            CatalogEntry(symbol="AAPL", name="AAPL", asset_class=AssetClass.STOCK),
        ]
    )


@pytest.fixture()
def app(
    settings: Settings,
    subscription_resolver: SubscriptionResolver,
    rate_limiter: AsyncMock,
    sentiment_service: AsyncMock,
    asset_resolver: AsyncMock,
    market_data: AsyncMock,
    catalog: AssetCatalog,
) -> FastAPI:
    """Create a test app with every state provider overridden."""
    test_app = create_app(settings)
    test_app.dependency_overrides[get_subscription_resolver] = lambda: subscription_resolver
    test_app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    test_app.dependency_overrides[get_sentiment_service] = lambda: sentiment_service
    test_app.dependency_overrides[get_asset_resolver] = lambda: asset_resolver
    test_app.dependency_overrides[get_market_data_service] = lambda: market_data
    test_app.dependency_overrides[get_catalog] = lambda: catalog
    return test_app


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    """Synchronous test client; the lifespan is not run."""
    return TestClient(app, raise_server_exceptions=False)
