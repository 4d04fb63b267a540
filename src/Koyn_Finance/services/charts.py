"""Chart.js payload builders for the sentiment and chart endpoints.

The frontend feeds these dicts straight into Chart.js, so key names and
colours are part of the wire format. Numbers are emitted as floats here;
this is the only place Decimal prices leave the domain as floats.
"""

from __future__ import annotations

import datetime
from typing import Any, Final

import numpy as np

from Koyn_Finance.models.asset import Asset
from Koyn_Finance.models.enums import ChartInterval
from Koyn_Finance.models.market_data import Candle, PriceSeries
from Koyn_Finance.services._helpers import safe_float, safe_int
from Koyn_Finance.services.asset_strategies import parse_timestamp
from Koyn_Finance.services.dexscreener import (
    DEXSCREENER_SOURCE,
    pair_change_24h,
    pair_liquidity,
    pair_volume_24h,
)
from Koyn_Finance.services.synthetic import day_label, estimate_volume

# ---------------------------------------------------------------------------
# Styling
# ---------------------------------------------------------------------------

PRICE_COLOR: Final[str] = "#46A758"
PRICE_FILL: Final[str] = "rgba(70, 167, 88, 0.2)"
VOLUME_FILL: Final[str] = "rgba(109, 40, 217, 0.5)"
VOLUME_BORDER: Final[str] = "rgba(109, 40, 217, 0.8)"
GRID_COLOR: Final[str] = "rgba(255, 255, 255, 0.1)"

HOURS_PER_DAY: Final[int] = 24


def _price_dataset(label: str, values: list[float]) -> dict[str, Any]:
    return {
        "label": label,
        "data": values,
        "backgroundColor": PRICE_FILL,
        "borderColor": PRICE_COLOR,
        "borderWidth": 3,
        "radius": 0,
        "pointHoverRadius": 5,
        "pointHoverBackgroundColor": PRICE_COLOR,
        "pointHoverBorderColor": "#fff",
        "pointHoverBorderWidth": 2,
        "tension": 0.3,
        "fill": True,
    }


def _volume_dataset(label: str, volumes: list[int]) -> dict[str, Any]:
    return {
        "label": label,
        "data": volumes,
        "backgroundColor": VOLUME_FILL,
        "borderColor": VOLUME_BORDER,
        "borderWidth": 1,
        "type": "bar",
        "yAxisID": "volume",
    }


def _price_volume_options() -> dict[str, Any]:
    return {
        "responsive": True,
        "maintainAspectRatio": False,
        "scales": {
            "y": {"position": "right", "grid": {"color": GRID_COLOR}},
            "volume": {"position": "left", "grid": {"display": False}},
        },
    }


def _ohlc(open_: float, high: float, low: float, close: float, volume: int) -> dict[str, Any]:
    return {"open": open_, "high": high, "low": low, "close": close, "volume": volume}


def _millis(moment: datetime.datetime) -> int:
    return int(moment.timestamp() * 1000)


def bar_label(moment: datetime.datetime, interval: str) -> str:
    """Axis label for one bar.

    Minute bars show ``HH:MM``, hour bars ``Mon D HH`` and anything coarser
    ``Mon D``.
    """
    if "min" in interval:
        return f"{moment:%H:%M}"
    if "hour" in interval:
        return f"{day_label(moment)} {moment:%H}"
    return day_label(moment)


# ---------------------------------------------------------------------------
# Sentiment chart
# ---------------------------------------------------------------------------


def sentiment_chart(asset: Asset, series: PriceSeries) -> dict[str, Any]:
    """Line chart embedded in each ``/api/sentiment`` result."""
    return {
        "type": "line",
        "data": {
            "labels": series.labels,
            "datasets": [_price_dataset(f"{asset.name} Price", series.values)],
        },
        "timestamps": series.timestamps,
        "options": {
            "responsive": True,
            "maintainAspectRatio": False,
            "plugins": {"legend": {"display": False}},
            "scales": {"y": {"position": "right"}},
        },
        "source": series.source.value,
    }


# ---------------------------------------------------------------------------
# /api/chart
# ---------------------------------------------------------------------------


def candle_chart(
    candles: list[Candle],
    *,
    symbol: str,
    original_symbol: str | None,
    interval: ChartInterval,
    resolved_asset: dict[str, Any] | None,
) -> dict[str, Any]:
    """Price-plus-volume chart for an FMP-backed symbol."""
    price = _price_dataset(f"{symbol} Price", [float(c.close) for c in candles])
    price["ohlc"] = [
        _ohlc(float(c.open), float(c.high), float(c.low), float(c.close), c.volume)
        for c in candles
    ]
    return {
        "type": "line",
        "data": {
            "labels": [bar_label(c.timestamp, interval.value) for c in candles],
            "datasets": [price, _volume_dataset(f"{symbol} Volume", [c.volume for c in candles])],
        },
        "timestamps": [_millis(c.timestamp) for c in candles],
        "options": _price_volume_options(),
        "symbol": symbol,
        "originalSymbol": original_symbol,
        "resolvedAsset": resolved_asset,
    }


def token_info(pair: dict[str, Any], contract_address: str | None) -> dict[str, Any]:
    """Summary of the DexScreener pair shown beside an on-chain chart."""
    base = pair.get("baseToken") or {}
    quote = pair.get("quoteToken") or {}
    return {
        "name": base.get("name"),
        "symbol": base.get("symbol"),
        "contract": contract_address or base.get("address"),
        "chain": pair.get("chainId"),
        "priceUsd": safe_float(pair.get("priceUsd")),
        "priceChange24h": pair_change_24h(pair),
        "volume24h": pair_volume_24h(pair),
        "liquidity": pair_liquidity(pair),
        "marketCap": safe_float(pair.get("fdv")),
        "dexId": pair.get("dexId"),
        "pairAddress": pair.get("pairAddress"),
        "baseToken": base,
        "quoteToken": quote,
    }


def dex_chart(
    candles: list[Candle],
    pair: dict[str, Any],
    *,
    interval: ChartInterval,
    contract_address: str | None,
    rng: np.random.Generator | None = None,
) -> dict[str, Any]:
    """Price-plus-volume chart for an on-chain token.

    Bars without volume fall back to the pair's 24h volume spread per hour
    for the volume dataset; the OHLC rows get an estimate scaled to the bar.
    """
    info = token_info(pair, contract_address)
    symbol = str(info["symbol"] or "TOKEN")
    hourly_volume = int(pair_volume_24h(pair) / HOURS_PER_DAY)
    price = _price_dataset(f"{symbol} Price", [float(c.close) for c in candles])
    price["ohlc"] = [
        _ohlc(
            float(c.open),
            float(c.high),
            float(c.low),
            float(c.close),
            estimate_volume(c, interval.value, rng=rng),
        )
        for c in candles
    ]
    volumes = [c.volume or hourly_volume for c in candles]
    return {
        "type": "line",
        "data": {
            "labels": [bar_label(c.timestamp, interval.value) for c in candles],
            "datasets": [price, _volume_dataset(f"{symbol} Volume", volumes)],
        },
        "timestamps": [_millis(c.timestamp) for c in candles],
        "options": _price_volume_options(),
        "symbol": symbol,
        "source": DEXSCREENER_SOURCE,
        "tokenInfo": info,
    }


# ---------------------------------------------------------------------------
# /api/chart/eod
# ---------------------------------------------------------------------------


def eod_chart(
    rows: list[dict[str, Any]],
    *,
    symbol: str,
    original_symbol: str | None,
    resolved_asset: dict[str, Any] | None,
) -> dict[str, Any]:
    """End-of-day payload: the raw FMP rows plus a ready Chart.js config.

    Rows keep the upstream order. Rows whose date cannot be parsed get a
    zero timestamp and an empty label rather than being dropped, so the
    datasets stay aligned with ``data``.
    """
    moments = [parse_timestamp(row.get("date")) for row in rows]
    closes = [safe_float(row.get("close")) for row in rows]
    price = _price_dataset(f"{symbol} Price", closes)
    price["ohlc"] = [
        _ohlc(
            safe_float(row.get("open")),
            safe_float(row.get("high")),
            safe_float(row.get("low")),
            safe_float(row.get("close")),
            safe_int(row.get("volume")),
        )
        for row in rows
    ]
    volumes = [safe_int(row.get("volume")) for row in rows]
    return {
        "type": "line",
        "format": "eod",
        "data": rows,
        "timestamps": [_millis(m) if m is not None else 0 for m in moments],
        "symbol": symbol,
        "originalSymbol": original_symbol,
        "resolvedAsset": resolved_asset,
        "chartJsData": {
            "labels": [day_label(m) if m is not None else "" for m in moments],
            "datasets": [price, _volume_dataset(f"{symbol} Volume", volumes)],
        },
        "options": _price_volume_options(),
    }
