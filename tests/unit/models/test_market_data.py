"""Tests for market data models: PriceQuote, PriceSeries, Candle, NewsItem.

Covers:
- Decimal precision survives serialization
- Frozen immutability
- PriceSeries ordering and minimum length
"""

import datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from Koyn_Finance.models import (
    Candle,
    NewsItem,
    PriceQuote,
    PriceSeries,
    PriceSource,
    SeriesPoint,
)


def _point(ts: int, value: str) -> SeriesPoint:
    return SeriesPoint(label=f"p{ts}", timestamp=ts, value=Decimal(value))


class TestPriceQuote:
    def test_decimal_serialized_as_string(self, sample_quote: PriceQuote) -> None:
        data = sample_quote.model_dump(mode="json")
        assert data["value"] == "186.52"
        assert data["day_low"] == "184.10"

    def test_json_roundtrip_keeps_precision(self, sample_quote: PriceQuote) -> None:
        restored = PriceQuote.model_validate_json(sample_quote.model_dump_json())
        assert restored == sample_quote

    def test_is_synthetic(self, sample_quote: PriceQuote) -> None:
        assert sample_quote.is_synthetic is False
        synthetic = sample_quote.model_copy(update={"source": PriceSource.SYNTHETIC})
        assert synthetic.is_synthetic is True

    def test_frozen(self, sample_quote: PriceQuote) -> None:
        with pytest.raises(ValidationError):
            sample_quote.value = Decimal("1")  # type: ignore[misc]


class TestPriceSeries:
    def test_accessors(self, sample_series: PriceSeries) -> None:
        assert sample_series.last_value == Decimal("186.52")
        assert sample_series.labels == ["Jan 13", "Jan 14", "Jan 15"]
        assert sample_series.values == [184.0, 185.5, 186.52]
        assert sample_series.timestamps == sorted(sample_series.timestamps)

    def test_single_point_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least 2 points"):
            PriceSeries(symbol="X", points=[_point(1, "1")], source=PriceSource.CACHE)

    def test_unsorted_rejected(self) -> None:
        with pytest.raises(ValidationError, match="sorted"):
            PriceSeries(
                symbol="X",
                points=[_point(2, "1"), _point(1, "2")],
                source=PriceSource.CACHE,
            )

    def test_equal_timestamps_allowed(self) -> None:
        series = PriceSeries(
            symbol="X", points=[_point(1, "1"), _point(1, "2")], source=PriceSource.CACHE
        )
        assert series.last_value == Decimal("2")


class TestCandle:
    def test_decimal_precision_survives_serialization(self) -> None:
        bar = Candle(
            timestamp=datetime.datetime(2025, 1, 15, tzinfo=datetime.UTC),
            open=Decimal("1.05"),
            high=Decimal("1.10"),
            low=Decimal("1.00"),
            close=Decimal("1.07"),
        )
        restored = Candle.model_validate_json(bar.model_dump_json())
        assert restored.open == Decimal("1.05")
        assert restored.volume == 0


class TestNewsItem:
    def test_defaults(self) -> None:
        item = NewsItem(title="Headline")
        assert item.cached is False
        assert item.cache_age is None
        assert item.fallback is False
        assert item.description == ""
