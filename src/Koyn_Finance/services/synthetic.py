"""Synthetic price data for when every live tier has failed.

The generators are deterministic given a ``numpy.random.Generator``, so tests
seed one and assert on exact shapes. Output always ends exactly at the price
the caller already has, so the chart agrees with the quote shown beside it.
"""

from __future__ import annotations

import datetime
import logging
from decimal import Decimal
from typing import Final

import numpy as np

from Koyn_Finance.models.enums import PriceSource
from Koyn_Finance.models.market_data import Candle, PriceSeries, SeriesPoint

logger = logging.getLogger(__name__)

SERIES_POINTS: Final[int] = 90
TOKEN_CANDLE_POINTS: Final[int] = 100

# Lowest synthetic price as a fraction of the price it ends at
PRICE_FLOOR_RATIO: Final[float] = 0.01
MIN_PRICE: Final[float] = 1e-8
START_OFFSET_MIN: Final[float] = 0.1
START_OFFSET_SPAN: Final[float] = 0.2
TREND_STRENGTH: Final[float] = 0.05
JUMP_PROBABILITY: Final[float] = 0.05
JUMP_SCALE: Final[float] = 3.0
MEAN_REVERSION: Final[float] = 0.9

TOKEN_VOLATILITY: Final[float] = 0.05
TOKEN_START_RATIO: Final[float] = 0.8
TOKEN_TREND: Final[float] = 0.002

# Base bar volume per chart interval, used when a provider omits volume
BASE_VOLUME_BY_INTERVAL: Final[dict[str, int]] = {
    "1min": 500_000,
    "5min": 1_000_000,
    "15min": 2_000_000,
    "30min": 3_000_000,
    "1hour": 5_000_000,
    "4hour": 10_000_000,
}
DEFAULT_BASE_VOLUME: Final[int] = 1_000_000


def day_label(moment: datetime.datetime) -> str:
    """Short chart label such as ``Jan 5``."""
    return f"{moment:%b} {moment.day}"


def _to_decimal(value: float) -> Decimal:
    return Decimal(str(round(value, 8)))


def random_walk_series(
    symbol: str,
    target: Decimal,
    volatility: float,
    *,
    points: int = SERIES_POINTS,
    rng: np.random.Generator | None = None,
    end: datetime.datetime | None = None,
) -> PriceSeries:
    """Daily bounded random walk that drifts toward *target* and lands on it.

    The walk starts 10-30% away from the target (direction random), adds
    per-day noise scaled by *volatility*, a pull toward the target that grows
    over the window, and an occasional jump. Prices never drop below 1% of
    the target, so sub-cent tokens keep their scale.
    """
    rng = rng or np.random.default_rng()
    end = end or datetime.datetime.now(datetime.UTC)
    target_value = max(float(target), MIN_PRICE)
    floor = max(target_value * PRICE_FLOOR_RATIO, MIN_PRICE)

    direction = 1.0 if rng.random() > 0.5 else -1.0  # noqa: PLR2004
    start_offset = direction * (START_OFFSET_MIN + rng.random() * START_OFFSET_SPAN)
    current = target_value * (1.0 - start_offset)

    values: list[float] = []
    for remaining in range(points - 1, -1, -1):
        progress = (points - remaining) / points
        noise = (rng.random() - 0.5) * volatility * current
        trend = (target_value - current) * TREND_STRENGTH * progress
        jump = 0.0
        if rng.random() < JUMP_PROBABILITY:
            jump = (rng.random() - 0.5) * volatility * JUMP_SCALE * current
        price = max(current + noise + trend + jump, floor)
        values.append(price)
        current = MEAN_REVERSION * price + (1.0 - MEAN_REVERSION) * current

    series_points: list[SeriesPoint] = []
    for index, value in enumerate(values):
        moment = end - datetime.timedelta(days=points - 1 - index)
        is_last = index == len(values) - 1
        series_points.append(
            SeriesPoint(
                label=day_label(moment),
                timestamp=int(moment.timestamp() * 1000),
                value=target if is_last else _to_decimal(value),
            )
        )

    logger.info("Generated %d synthetic points for %s ending at %s", points, symbol, target)
    return PriceSeries(symbol=symbol, points=series_points, source=PriceSource.SYNTHETIC)


def token_candles(
    price: Decimal,
    *,
    points: int = TOKEN_CANDLE_POINTS,
    rng: np.random.Generator | None = None,
    end: datetime.datetime | None = None,
) -> list[Candle]:
    """Hourly OHLCV bars for an on-chain token with no usable history.

    Starts 20% below *price* with a slight upward drift; the last close is
    exactly *price*.
    """
    rng = rng or np.random.default_rng()
    end = end or datetime.datetime.now(datetime.UTC)
    current = float(price) * TOKEN_START_RATIO
    floor = max(float(price) * PRICE_FLOOR_RATIO, MIN_PRICE)

    bars: list[Candle] = []
    for remaining in range(points - 1, -1, -1):
        change = rng.random() * TOKEN_VOLATILITY * 2 - TOKEN_VOLATILITY
        current = max(current * (1 + change + TOKEN_TREND), floor)
        volume = abs(change) * current * 1000 * (1 + rng.random())
        bars.append(
            Candle(
                timestamp=end - datetime.timedelta(hours=remaining),
                open=_to_decimal(current * 0.995),
                high=_to_decimal(current * 1.01),
                low=_to_decimal(current * 0.99),
                close=_to_decimal(current),
                volume=int(volume),
            )
        )

    if bars:
        last = bars[-1]
        bars[-1] = last.model_copy(
            update={"close": price, "high": max(last.high, price), "low": min(last.low, price)}
        )
    return bars


def estimate_volume(
    candle: Candle,
    interval: str,
    *,
    rng: np.random.Generator | None = None,
) -> int:
    """Plausible bar volume for providers that report none.

    Scales the interval's base volume by the bar's high-low range relative to
    its close, with +/-30% noise.
    """
    if candle.volume:
        return candle.volume
    rng = rng or np.random.default_rng()
    base = BASE_VOLUME_BY_INTERVAL.get(interval, DEFAULT_BASE_VOLUME)
    close = float(candle.close) or 1.0
    range_factor = float(candle.high - candle.low) / close
    return round(base * (1 + range_factor * 2) * (0.7 + rng.random() * 0.6))
