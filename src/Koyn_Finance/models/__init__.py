"""Pydantic v2 models, enums, and type definitions.

Re-exports all public models so consumers can import directly:
    from Koyn_Finance.models import Asset, AssetClass, PriceQuote
"""

from Koyn_Finance.models.analysis import (
    AnalysisResult,
    DataQuality,
    EnrichmentData,
    Narrative,
    SentimentBreakdown,
    SentimentScore,
)
from Koyn_Finance.models.asset import Asset, OnchainMetadata
from Koyn_Finance.models.enums import (
    AssetClass,
    ChartInterval,
    PriceSource,
    ResolutionSource,
    SentimentLabel,
    SubscriptionPlan,
    SubscriptionStatus,
)
from Koyn_Finance.models.market_data import (
    Candle,
    NewsItem,
    PriceQuote,
    PriceSeries,
    SeriesPoint,
)
from Koyn_Finance.models.subscription import (
    UNLIMITED,
    Credential,
    RateLimitDecision,
    Subscription,
    UsageRecord,
)

__all__ = [
    # Enums
    "AssetClass",
    "ChartInterval",
    "PriceSource",
    "ResolutionSource",
    "SentimentLabel",
    "SubscriptionPlan",
    "SubscriptionStatus",
    # Assets
    "Asset",
    "OnchainMetadata",
    # Market data
    "Candle",
    "NewsItem",
    "PriceQuote",
    "PriceSeries",
    "SeriesPoint",
    # Subscriptions
    "UNLIMITED",
    "Credential",
    "RateLimitDecision",
    "Subscription",
    "UsageRecord",
    # Analysis
    "AnalysisResult",
    "DataQuality",
    "EnrichmentData",
    "Narrative",
    "SentimentBreakdown",
    "SentimentScore",
]
