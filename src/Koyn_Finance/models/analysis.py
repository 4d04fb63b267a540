"""Sentiment, narrative, and aggregated analysis models."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from Koyn_Finance.models.asset import Asset
from Koyn_Finance.models.enums import PriceSource, SentimentLabel
from Koyn_Finance.models.market_data import NewsItem, PriceQuote, PriceSeries


class SentimentBreakdown(BaseModel):
    """Share of bullish / neutral / bearish signal in a body of text."""

    model_config = ConfigDict(frozen=True)

    bullish: float
    neutral: float
    bearish: float


class SentimentScore(BaseModel):
    """Lexicon-based preliminary sentiment.

    ``positive`` and ``negative`` are the tallies *after* the negation swap.
    """

    model_config = ConfigDict(frozen=True)

    label: SentimentLabel
    confidence: float = Field(ge=0.5, le=1.0)
    positive: int = 0
    negative: int = 0
    negations: int = 0
    breakdown: SentimentBreakdown


class Narrative(BaseModel):
    """Final natural-language analysis and its coarse label."""

    model_config = ConfigDict(frozen=True)

    label: SentimentLabel
    text: str
    source: str  # "llm" or "fallback"
    model_used: str = ""
    truncated: bool = False


class EnrichmentData(BaseModel):
    """Optional fundamentals pulled alongside the quote for the LLM prompt.

    Each field holds the raw upstream payload (first row where the endpoint
    returns a list) or ``None`` when that endpoint failed or does not apply.
    """

    model_config = ConfigDict(frozen=True)

    ratios: dict[str, Any] | None = None
    key_metrics: dict[str, Any] | None = None
    analyst_estimates: dict[str, Any] | None = None
    peers: list[str] | None = None
    price_target: dict[str, Any] | None = None
    rating: dict[str, Any] | None = None
    insider_trades: list[dict[str, Any]] | None = None

    @property
    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


class DataQuality(BaseModel):
    """Provenance of the numbers in a response, surfaced to the caller."""

    model_config = ConfigDict(frozen=True)

    price_source: str
    series_source: str
    narrative_source: str
    synthetic: bool


class AnalysisResult(BaseModel):
    """Everything one sentiment request produced for one asset."""

    model_config = ConfigDict(frozen=True)

    asset: Asset
    price_quote: PriceQuote
    price_series: PriceSeries
    sentiment: SentimentScore
    narrative: Narrative
    news: list[NewsItem]

    @property
    def sentiment_label(self) -> SentimentLabel:
        return self.narrative.label

    @property
    def narrative_text(self) -> str:
        return self.narrative.text

    @property
    def data_quality(self) -> DataQuality:
        return DataQuality(
            price_source=self.price_quote.source.value,
            series_source=self.price_series.source.value,
            narrative_source=self.narrative.source,
            synthetic=(
                self.price_quote.is_synthetic or self.price_series.source == PriceSource.SYNTHETIC
            ),
        )
