"""Market data models: quotes, price series, candles, and news items.

All price fields use Decimal (constructed from strings) with custom
serializers to prevent silent float conversion in JSON roundtrips.
"""

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from Koyn_Finance.models.enums import PriceSource

MIN_SERIES_POINTS: int = 2


class PriceQuote(BaseModel):
    """Spot price for an asset, tagged with the tier that produced it.

    Frozen because a quote is a point-in-time snapshot.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    value: Decimal
    source: PriceSource
    as_of: datetime.datetime
    change_pct: float | None = None
    day_high: Decimal | None = None
    day_low: Decimal | None = None

    @field_serializer("value", "day_high", "day_low")
    def serialize_decimal(self, value: Decimal | None) -> str | None:
        """Serialize Decimal fields as strings to preserve precision."""
        return None if value is None else str(value)

    @property
    def is_synthetic(self) -> bool:
        return self.source == PriceSource.SYNTHETIC


class SeriesPoint(BaseModel):
    """A single chart point: display label, epoch-millis timestamp, value."""

    model_config = ConfigDict(frozen=True)

    label: str
    timestamp: int
    value: Decimal

    @field_serializer("value")
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)


class PriceSeries(BaseModel):
    """Ordered historical prices, oldest first.

    The validator rejects a series whose timestamps go backwards or that
    has fewer than two points.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    points: list[SeriesPoint]
    source: PriceSource

    @model_validator(mode="after")
    def _check_ordering(self) -> "PriceSeries":
        if len(self.points) < MIN_SERIES_POINTS:
            msg = f"PriceSeries needs at least {MIN_SERIES_POINTS} points, got {len(self.points)}"
            raise ValueError(msg)
        for earlier, later in zip(self.points, self.points[1:], strict=False):
            if later.timestamp < earlier.timestamp:
                msg = "PriceSeries points must be sorted by timestamp"
                raise ValueError(msg)
        return self

    @property
    def last_value(self) -> Decimal:
        return self.points[-1].value

    @property
    def labels(self) -> list[str]:
        return [p.label for p in self.points]

    @property
    def values(self) -> list[float]:
        return [float(p.value) for p in self.points]

    @property
    def timestamps(self) -> list[int]:
        return [p.timestamp for p in self.points]


class Candle(BaseModel):
    """One OHLCV bar for the intraday / end-of-day chart endpoints."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime.datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int = 0

    @field_serializer("open", "high", "low", "close")
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)


class NewsItem(BaseModel):
    """A headline with provenance flags for the cache fallback tiers."""

    model_config = ConfigDict(frozen=True)

    title: str
    url: str = ""
    source: str = ""
    description: str = ""
    published_at: str = ""
    cached: bool = False
    cache_age: int | None = Field(default=None, description="Seconds since the item was cached")
    fallback: bool = False
