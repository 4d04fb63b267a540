"""Market data service: quotes, price series, fundamentals, and chart candles.

Quotes and series go through the asset class's fallback chain and never
raise; when every live tier fails they come back tagged ``synthetic``.
Quotes and series are not cached (prices go stale quickly); only news is,
see ``services.news``. Chart candles are the exception to "never raise":
the chart endpoint reports missing data to the caller as a 404.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from decimal import Decimal
from typing import Any, Final

import numpy as np

from Koyn_Finance.models.analysis import EnrichmentData
from Koyn_Finance.models.asset import Asset
from Koyn_Finance.models.enums import AssetClass, ChartInterval, PriceSource
from Koyn_Finance.models.market_data import Candle, PriceQuote, PriceSeries
from Koyn_Finance.services._helpers import safe_decimal, safe_int
from Koyn_Finance.services.asset_strategies import (
    EOD_PATH,
    Upstreams,
    parse_timestamp,
    strategy_for,
)
from Koyn_Finance.services.fallback_chain import Ok, first_ok
from Koyn_Finance.services.synthetic import random_walk_series
from Koyn_Finance.utils.exceptions import SymbolNotFoundError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

INSIDER_TRADES_LIMIT: Final[int] = 5
LATEST_INSIDER_PATH: Final[str] = "/stable/insider-trading/latest"

# Chart intervals served from the end-of-day endpoint instead of intraday bars
DAILY_INTERVALS: Final[frozenset[ChartInterval]] = frozenset(
    {ChartInterval.EOD, ChartInterval.ONE_DAY}
)


def candle_from_row(row: dict[str, Any]) -> Candle | None:
    """Build a Candle from an FMP OHLCV row; None when date or close is missing."""
    moment = parse_timestamp(row.get("date"))
    close = safe_decimal(row.get("close", row.get("price")))
    if moment is None or close is None:
        return None
    return Candle(
        timestamp=moment,
        open=safe_decimal(row.get("open"), close) or close,
        high=safe_decimal(row.get("high"), close) or close,
        low=safe_decimal(row.get("low"), close) or close,
        close=close,
        volume=safe_int(row.get("volume")),
    )


class MarketDataService:
    """Async market data service over the FMP and DexScreener clients.

    Usage::

        service = MarketDataService(Upstreams(fmp=fmp, dex=dex))

        quote = await service.fetch_quote(asset)
        series = await service.fetch_series(asset, quote)
        extras = await service.fetch_enrichment(asset)
        bars = await service.fetch_candles("AAPL", ChartInterval.FIVE_MIN)

    Args:
        upstreams: Provider clients.
        rng: Random generator for synthetic fallbacks (seed it in tests).
    """

    def __init__(
        self,
        upstreams: Upstreams,
        *,
        rng: np.random.Generator | None = None,
    ) -> None:
        self._upstreams = upstreams
        self._rng = rng or np.random.default_rng()

    @property
    def upstreams(self) -> Upstreams:
        return self._upstreams

    # ------------------------------------------------------------------
    # Quote
    # ------------------------------------------------------------------

    async def fetch_quote(self, asset: Asset) -> PriceQuote:
        """Current price from the first live tier that answers.

        Falls back to the class's default price table, tagged ``synthetic``.
        """
        strategy = strategy_for(asset.asset_class)
        outcome = await first_ok(
            strategy.quote_tiers(self._upstreams, asset),
            label=f"quote({asset.query_symbol})",
        )
        if isinstance(outcome, Ok):
            quote: PriceQuote = outcome.value
            logger.info(
                "Quote for %s: %s (%s)", asset.query_symbol, quote.value, outcome.tier
            )
            return quote

        quote = self.default_quote(asset)
        logger.warning(
            "All quote tiers failed for %s, using default price %s",
            asset.query_symbol,
            quote.value,
        )
        return quote

    def default_quote(self, asset: Asset) -> PriceQuote:
        """Synthetic quote at the asset class's default price."""
        price = strategy_for(asset.asset_class).fallback_price(asset)
        return PriceQuote(
            symbol=asset.query_symbol,
            value=price,
            source=PriceSource.SYNTHETIC,
            as_of=datetime.datetime.now(datetime.UTC),
            change_pct=asset.price_change_24h,
        )

    # ------------------------------------------------------------------
    # Series
    # ------------------------------------------------------------------

    async def fetch_series(self, asset: Asset, quote: PriceQuote | None = None) -> PriceSeries:
        """Historical prices from the class's series chain, oldest first.

        When every tier fails, returns a synthetic random walk that ends at
        the quote (or the class default price when no quote is given).
        """
        strategy = strategy_for(asset.asset_class)
        outcome = await first_ok(
            strategy.series_tiers(self._upstreams, asset),
            label=f"series({asset.query_symbol})",
        )
        if isinstance(outcome, Ok):
            return PriceSeries(
                symbol=asset.query_symbol,
                points=outcome.value,
                source=PriceSource(outcome.source),
            )

        target = quote.value if quote is not None else strategy.fallback_price(asset)
        return self.synthetic_series(asset, target)

    def synthetic_series(self, asset: Asset, target: Decimal) -> PriceSeries:
        strategy = strategy_for(asset.asset_class)
        return random_walk_series(
            asset.query_symbol,
            target,
            strategy.volatility,
            rng=self._rng,
        )

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    async def fetch_enrichment(self, asset: Asset) -> EnrichmentData:
        """Fundamentals for the narrative prompt, fetched concurrently.

        Each endpoint is independent; a failure leaves its field ``None``.
        Analyst estimates and insider trades apply to stocks only, peers,
        price target and rating to everything except crypto.
        """
        if asset.asset_class == AssetClass.ONCHAIN_TOKEN:
            return EnrichmentData()

        fmp = self._upstreams.fmp
        symbol = asset.query_symbol
        is_stock = asset.asset_class == AssetClass.STOCK
        is_crypto = asset.asset_class == AssetClass.CRYPTO
        by_symbol: dict[str, str | int] = {"symbol": symbol}

        async def first(path: str, **extra: str | int) -> dict[str, Any] | None:
            return await fmp.first_row(path, symbol=symbol, params={**by_symbol, **extra})

        async def peers() -> list[str] | None:
            data = await fmp.get("/stable/stock-peers", symbol=symbol, params=by_symbol)
            if isinstance(data, dict) and isinstance(data.get("peersList"), list):
                return [str(p) for p in data["peersList"]]
            if isinstance(data, list):
                return [
                    str(row["symbol"]) for row in data if isinstance(row, dict) and "symbol" in row
                ]
            return None

        async def insider_trades() -> list[dict[str, Any]] | None:
            rows = await fmp.get_rows(
                f"/stable/insider-trading/{symbol}",
                symbol=symbol,
                params={"limit": INSIDER_TRADES_LIMIT},
            )
            return rows[:INSIDER_TRADES_LIMIT] or None

        async def skip() -> None:
            return None

        fields = {
            "ratios": first("/stable/ratios", limit=1),
            "key_metrics": first("/stable/key-metrics", limit=1),
            "analyst_estimates": (
                first("/stable/analyst-estimates", period="annual", limit=10)
                if is_stock
                else skip()
            ),
            "peers": peers() if not is_crypto else skip(),
            "price_target": first("/stable/price-target") if not is_crypto else skip(),
            "rating": first("/stable/ratings-snapshot") if not is_crypto else skip(),
            "insider_trades": insider_trades() if is_stock else skip(),
        }
        results = await asyncio.gather(*fields.values(), return_exceptions=True)

        collected: dict[str, Any] = {}
        for name, result in zip(fields, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Enrichment %s failed for %s: %s", name, symbol, result)
                continue
            collected[name] = result

        enrichment = EnrichmentData(**collected)
        logger.info(
            "Enrichment for %s: %d of %d sections",
            symbol,
            sum(1 for v in collected.values() if v is not None),
            len(fields),
        )
        return enrichment

    # ------------------------------------------------------------------
    # Chart candles
    # ------------------------------------------------------------------

    async def fetch_candles(self, symbol: str, interval: ChartInterval) -> list[Candle]:
        """OHLCV bars for the chart endpoint, oldest first.

        Raises:
            SymbolNotFoundError: The upstream returned no usable bars.
            DataFetchError: The upstream could not be reached.
        """
        if interval in DAILY_INTERVALS:
            rows = await self.fetch_eod_rows(symbol)
        else:
            rows = await self._upstreams.fmp.get_rows(
                f"/api/v3/historical-chart/{interval.value}/{symbol}", symbol=symbol
            )

        bars = [bar for bar in (candle_from_row(row) for row in rows) if bar is not None]
        if not bars:
            raise SymbolNotFoundError(
                f"No chart data available for {symbol} at {interval.value} interval",
                symbol=symbol,
                source="fmp",
            )
        bars.sort(key=lambda bar: bar.timestamp)
        return bars

    async def fetch_eod_rows(self, symbol: str) -> list[dict[str, Any]]:
        """Raw end-of-day rows (newest first, as FMP returns them)."""
        rows = await self._upstreams.fmp.get_rows(
            EOD_PATH, symbol=symbol, params={"symbol": symbol}
        )
        if not rows:
            raise SymbolNotFoundError(
                f"No EOD data available for {symbol}", symbol=symbol, source="fmp"
            )
        return rows

    # ------------------------------------------------------------------
    # FMP passthrough feeds
    # ------------------------------------------------------------------

    async def fetch_price_history(self, symbol: str, days: int) -> list[list[Any]]:
        """``[date, close, volume]`` points over the last *days*, newest first.

        Symbols containing ``USD`` are read from FMP's crypto history.

        Raises:
            SymbolNotFoundError: No rows came back.
            DataFetchError: The upstream could not be reached.
        """
        prefix = "crypto/" if "USD" in symbol else ""
        rows = await self._upstreams.fmp.get_rows(
            f"/api/v3/historical-price-full/{prefix}{symbol}",
            symbol=symbol,
            params={"timeseries": days, "serietype": "line"},
        )
        points = [
            [row["date"], row.get("close"), row.get("volume")] for row in rows if row.get("date")
        ]
        if not points:
            raise SymbolNotFoundError(
                f"No historical data found for {symbol}", symbol=symbol, source="fmp"
            )
        return points

    async def fetch_intraday_points(
        self, symbol: str, interval: ChartInterval
    ) -> list[list[Any]]:
        """``[date, close, volume]`` intraday points, newest first.

        Raises:
            SymbolNotFoundError: No rows came back.
            DataFetchError: The upstream could not be reached.
        """
        rows = await self._upstreams.fmp.get_rows(
            f"/api/v3/historical-chart/{interval.value}/{symbol}", symbol=symbol
        )
        points = [
            [row["date"], row.get("close"), row.get("volume") or 0]
            for row in rows
            if row.get("date")
        ]
        if not points:
            raise SymbolNotFoundError(
                f"No intraday data found for {symbol}", symbol=symbol, source="fmp"
            )
        return points

    async def fetch_insider_feed(self, symbol: str | None, limit: int) -> list[dict[str, Any]]:
        """Insider filings for *symbol*, or the latest filings market-wide.

        Raises:
            SymbolNotFoundError: No rows came back.
            DataFetchError: The upstream could not be reached.
        """
        label = symbol or "latest"
        path = f"/stable/insider-trading/{symbol}" if symbol else LATEST_INSIDER_PATH
        rows = await self._upstreams.fmp.get_rows(
            path, symbol=label, params={"page": 0, "limit": limit}
        )
        if not rows:
            raise SymbolNotFoundError(
                f"No insider trading data found for {label}", symbol=label, source="fmp"
            )
        logger.info("Insider feed for %s: %d rows", label, len(rows))
        return rows

    async def fetch_latest_indicators(
        self, symbol: str, period: int, kinds: list[str]
    ) -> dict[str, Any]:
        """Most recent value of each indicator in *kinds* (``rsi``, ``sma`` ...).

        Indicators are fetched concurrently; one that fails or comes back
        empty is left out of the result.
        """
        fmp = self._upstreams.fmp

        async def latest(kind: str) -> dict[str, Any] | None:
            return await fmp.first_row(
                f"/api/v3/technical_indicator/{period}/{symbol}",
                symbol=symbol,
                params={"type": kind},
            )

        results = await asyncio.gather(*(latest(kind) for kind in kinds), return_exceptions=True)

        values: dict[str, Any] = {}
        for kind, result in zip(kinds, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Indicator %s failed for %s: %s", kind, symbol, result)
                continue
            if result is not None:
                values[kind] = result.get("value")
        return values
