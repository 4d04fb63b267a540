"""Shared test fixtures for the Koyn Finance test suite.

Provides realistic sample instances of the core models so tests don't
need to inline large construction blocks.
"""

import datetime
from decimal import Decimal

import pytest

from Koyn_Finance.models import (
    Asset,
    AssetClass,
    Candle,
    Narrative,
    NewsItem,
    OnchainMetadata,
    PriceQuote,
    PriceSeries,
    PriceSource,
    ResolutionSource,
    SentimentBreakdown,
    SentimentLabel,
    SentimentScore,
    SeriesPoint,
)


@pytest.fixture()
def stock_asset() -> Asset:
    """Apple as the catalog resolves it."""
    return Asset(
        id="AAPL",
        display_symbol="AAPL",
        query_symbol="AAPL",
        name="Apple Inc.",
        asset_class=AssetClass.STOCK,
        resolution_source=ResolutionSource.CATALOG,
    )


@pytest.fixture()
def crypto_asset() -> Asset:
    """Bitcoin, quoted against USD upstream."""
    return Asset(
        id="BTC",
        display_symbol="BTC",
        query_symbol="BTCUSD",
        name="Bitcoin",
        asset_class=AssetClass.CRYPTO,
        resolution_source=ResolutionSource.ALIAS,
    )


@pytest.fixture()
def onchain_asset() -> Asset:
    """A Solana memecoin resolved from its contract address."""
    return Asset(
        id="7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr",
        display_symbol="POPCAT",
        query_symbol="7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr",
        name="Popcat",
        asset_class=AssetClass.ONCHAIN_TOKEN,
        resolution_source=ResolutionSource.ONCHAIN_ADDRESS,
        onchain=OnchainMetadata(
            contract_address="7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr",
            chain="solana",
            chain_id="solana",
            pair_address="FRhB8L7Y9Qq41qZXYLtC2nw8An1RJfLLxRF2x9RwLLMo",
            dex_id="raydium",
            url="https://dexscreener.com/solana/frhb8l7y9qq41qzxyltc2nw8an1rjfllxrf2x9rwllmo",
            liquidity_usd=12_500_000.0,
            volume_24h=4_800_000.0,
            market_cap=410_000_000.0,
            safety_score="high",
        ),
        price=Decimal("0.4213"),
        price_change_24h=-3.2,
    )


@pytest.fixture()
def sample_quote() -> PriceQuote:
    """A live AAPL quote from the primary tier."""
    return PriceQuote(
        symbol="AAPL",
        value=Decimal("186.52"),
        source=PriceSource.LIVE_PRIMARY,
        as_of=datetime.datetime(2025, 1, 15, 15, 30, 0, tzinfo=datetime.UTC),
        change_pct=1.25,
        day_high=Decimal("187.25"),
        day_low=Decimal("184.10"),
    )


@pytest.fixture()
def sample_series() -> PriceSeries:
    """Three daily AAPL closes, oldest first."""
    days = [datetime.datetime(2025, 1, d, tzinfo=datetime.UTC) for d in (13, 14, 15)]
    closes = [Decimal("184.00"), Decimal("185.50"), Decimal("186.52")]
    return PriceSeries(
        symbol="AAPL",
        points=[
            SeriesPoint(
                label=day.strftime("%b %-d"),
                timestamp=int(day.timestamp() * 1000),
                value=close,
            )
            for day, close in zip(days, closes, strict=True)
        ],
        source=PriceSource.LIVE_PRIMARY,
    )


@pytest.fixture()
def sample_candles() -> list[Candle]:
    """A short list of daily candles for chart tests."""
    return [
        Candle(
            timestamp=datetime.datetime(2025, 1, 13, tzinfo=datetime.UTC),
            open=Decimal("184.00"),
            high=Decimal("186.00"),
            low=Decimal("183.50"),
            close=Decimal("185.50"),
            volume=40_000_000,
        ),
        Candle(
            timestamp=datetime.datetime(2025, 1, 14, tzinfo=datetime.UTC),
            open=Decimal("185.50"),
            high=Decimal("187.25"),
            low=Decimal("184.10"),
            close=Decimal("186.75"),
            volume=52_340_000,
        ),
        Candle(
            timestamp=datetime.datetime(2025, 1, 15, tzinfo=datetime.UTC),
            open=Decimal("186.75"),
            high=Decimal("188.00"),
            low=Decimal("185.90"),
            close=Decimal("187.20"),
            volume=45_000_000,
        ),
    ]


@pytest.fixture()
def sample_news() -> list[NewsItem]:
    return [
        NewsItem(
            title="Apple beats earnings expectations",
            url="https://example.com/apple-earnings",
            source="Reuters",
            description="Revenue rose on strong iPhone sales.",
            published_at="2025-01-15 09:00:00",
        ),
        NewsItem(
            title="Analysts raise Apple price targets",
            url="https://example.com/apple-targets",
            source="Bloomberg",
            published_at="2025-01-15 11:30:00",
            cached=True,
            cache_age=120,
        ),
    ]


@pytest.fixture()
def sample_sentiment() -> SentimentScore:
    return SentimentScore(
        label=SentimentLabel.BULLISH,
        confidence=0.75,
        positive=3,
        negative=1,
        breakdown=SentimentBreakdown(bullish=0.75, neutral=0.5, bearish=0.25),
    )


@pytest.fixture()
def sample_narrative() -> Narrative:
    return Narrative(
        label=SentimentLabel.BULLISH,
        text="Apple trades near its highs after a strong quarter. Sentiment: Bullish",
        source="llm",
        model_used="gemini-1.5-pro",
    )
