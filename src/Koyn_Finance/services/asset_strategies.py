"""One strategy per asset class.

Every place that used to branch on "is this crypto / forex / an index?" asks
the asset's strategy instead: upstream symbol formatting, the ordered quote
and series tiers, the news endpoint and its cache TTL, the synthetic walk's
volatility, and the last-resort default price.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Final

from Koyn_Finance.models.asset import Asset
from Koyn_Finance.models.enums import AssetClass, PriceSource
from Koyn_Finance.models.market_data import MIN_SERIES_POINTS, PriceQuote, SeriesPoint
from Koyn_Finance.services import dexscreener
from Koyn_Finance.services._helpers import safe_decimal, safe_float
from Koyn_Finance.services.cache import (
    TTL_NEWS_COMMODITY,
    TTL_NEWS_CRYPTO,
    TTL_NEWS_FOREX,
    TTL_NEWS_INDEX,
    TTL_NEWS_STOCK,
)
from Koyn_Finance.services.dexscreener import DexScreenerClient
from Koyn_Finance.services.fallback_chain import Tier
from Koyn_Finance.services.fmp import FmpClient
from Koyn_Finance.services.synthetic import day_label

logger = logging.getLogger(__name__)

NEWS_PAGE_SIZE: Final[int] = 10
CRYPTO_HISTORY_POINTS: Final[int] = 100
MAX_SERIES_POINTS: Final[int] = 200

NEWS_GENERAL_PATH: Final[str] = "/stable/news/general-latest"
EOD_PATH: Final[str] = "/stable/historical-price-eod/full"


@dataclass(frozen=True)
class Upstreams:
    """The provider clients a strategy may call."""

    fmp: FmpClient
    dex: DexScreenerClient


# ---------------------------------------------------------------------------
# Row parsing
# ---------------------------------------------------------------------------


def parse_timestamp(raw: object) -> datetime.datetime | None:
    """Parse FMP ``date`` strings (``2024-01-05`` or ``2024-01-05 16:00:00``) as UTC."""
    if not isinstance(raw, str) or not raw:
        return None
    try:
        moment = datetime.datetime.fromisoformat(raw)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.UTC)
    return moment


def quote_from_row(
    row: dict[str, Any] | None,
    symbol: str,
    source: PriceSource,
) -> PriceQuote | None:
    """Build a quote from an FMP quote row; None when the row has no usable price."""
    if not row:
        return None
    price = safe_decimal(row.get("price"))
    if price is None or price <= 0:
        return None
    change = row.get("changePercentage", row.get("changesPercentage"))
    return PriceQuote(
        symbol=symbol,
        value=price,
        source=source,
        as_of=datetime.datetime.now(datetime.UTC),
        change_pct=safe_float(change) if change is not None else None,
        day_high=safe_decimal(row.get("dayHigh")),
        day_low=safe_decimal(row.get("dayLow")),
    )


def points_from_rows(rows: list[dict[str, Any]]) -> list[SeriesPoint] | None:
    """Convert FMP history rows (any order) to ascending series points.

    Rows without a date or a positive close are skipped. Returns None when
    fewer than two points survive, so the chain moves on to the next tier.
    """
    points: list[SeriesPoint] = []
    for row in rows:
        moment = parse_timestamp(row.get("date"))
        value = safe_decimal(row.get("close", row.get("price")))
        if moment is None or value is None or value <= 0:
            continue
        points.append(
            SeriesPoint(
                label=day_label(moment),
                timestamp=int(moment.timestamp() * 1000),
                value=value,
            )
        )
    points.sort(key=lambda point: point.timestamp)
    points = points[-MAX_SERIES_POINTS:]
    return points if len(points) >= MIN_SERIES_POINTS else None


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class AssetClassStrategy:
    """Defaults shared by every class; subclasses override what differs.

    The base behavior matches equities: bare upper-case symbols, the stable
    quote endpoint with the v3 quote as a secondary, and daily history.
    """

    asset_class: AssetClass = AssetClass.STOCK
    volatility: float = 0.02
    news_ttl: int = TTL_NEWS_STOCK
    default_price: Decimal = Decimal("100")
    default_prices: dict[str, Decimal] = {}

    def format_symbol(self, symbol: str) -> str:
        return symbol.strip().upper()

    def price_key(self, asset: Asset) -> str:
        """Key into ``default_prices``; the bare ticker for most classes."""
        return asset.display_symbol.upper()

    def fallback_price(self, asset: Asset) -> Decimal:
        return self.default_prices.get(self.price_key(asset), self.default_price)

    # -- quotes ---------------------------------------------------------

    def quote_tiers(self, upstreams: Upstreams, asset: Asset) -> list[Tier[PriceQuote]]:
        fmp = upstreams.fmp
        symbol = asset.query_symbol

        async def primary() -> PriceQuote | None:
            row = await fmp.first_row("/stable/quote", symbol=symbol, params={"symbol": symbol})
            return await self.check_primary_quote(fmp, asset, row)

        async def secondary() -> PriceQuote | None:
            row = await fmp.first_row(f"/api/v3/quote/{symbol}", symbol=symbol)
            return quote_from_row(row, symbol, PriceSource.LIVE_SECONDARY)

        return [
            Tier(name="fmp-stable-quote", source=PriceSource.LIVE_PRIMARY, fetch=primary),
            Tier(name="fmp-v3-quote", source=PriceSource.LIVE_SECONDARY, fetch=secondary),
        ]

    async def check_primary_quote(
        self,
        fmp: FmpClient,
        asset: Asset,
        row: dict[str, Any] | None,
    ) -> PriceQuote | None:
        """Hook for classes that must validate what the primary endpoint returned."""
        return quote_from_row(row, asset.query_symbol, PriceSource.LIVE_PRIMARY)

    # -- series ---------------------------------------------------------

    def series_tiers(self, upstreams: Upstreams, asset: Asset) -> list[Tier[list[SeriesPoint]]]:
        return [self.daily_tier(upstreams, asset, PriceSource.LIVE_PRIMARY)]

    def daily_tier(
        self, upstreams: Upstreams, asset: Asset, source: PriceSource
    ) -> Tier[list[SeriesPoint]]:
        """Daily history from the v3 full-history endpoint."""
        fmp = upstreams.fmp
        symbol = asset.query_symbol

        async def daily() -> list[SeriesPoint] | None:
            rows = await fmp.get_rows(f"/api/v3/historical-price-full/{symbol}", symbol=symbol)
            return points_from_rows(rows)

        return Tier(name="fmp-daily", source=source, fetch=daily)

    def eod_tier(
        self, upstreams: Upstreams, asset: Asset, source: PriceSource
    ) -> Tier[list[SeriesPoint]]:
        """Daily history from the stable end-of-day endpoint."""
        fmp = upstreams.fmp
        symbol = asset.query_symbol

        async def eod() -> list[SeriesPoint] | None:
            rows = await fmp.get_rows(EOD_PATH, symbol=symbol, params={"symbol": symbol})
            return points_from_rows(rows)

        return Tier(name="fmp-eod", source=source, fetch=eod)

    # -- news -----------------------------------------------------------

    def news_request(self, asset: Asset) -> tuple[str, dict[str, str | int]]:
        """FMP news path and query parameters for this class."""
        return NEWS_GENERAL_PATH, {"page": 0, "limit": NEWS_PAGE_SIZE}


class StockStrategy(AssetClassStrategy):
    """Equities and ETFs. History prefers intraday bars: 4-hour, then 1-hour, then daily."""

    def series_tiers(self, upstreams: Upstreams, asset: Asset) -> list[Tier[list[SeriesPoint]]]:
        fmp = upstreams.fmp
        symbol = asset.query_symbol

        def intraday(interval: str) -> Tier[list[SeriesPoint]]:
            async def fetch() -> list[SeriesPoint] | None:
                path = f"/api/v3/historical-chart/{interval}/{symbol}"
                return points_from_rows(await fmp.get_rows(path, symbol=symbol))

            return Tier(name=f"fmp-{interval}", source=PriceSource.LIVE_PRIMARY, fetch=fetch)

        return [
            intraday("4hour"),
            intraday("1hour"),
            *super().series_tiers(upstreams, asset),
        ]

    def news_request(self, asset: Asset) -> tuple[str, dict[str, str | int]]:
        return "/stable/news/stock", {"symbols": asset.query_symbol, "limit": NEWS_PAGE_SIZE}


class CryptoStrategy(AssetClassStrategy):
    """Coins quoted against USD (``BTC`` becomes ``BTCUSD`` upstream)."""

    asset_class = AssetClass.CRYPTO
    volatility = 0.05
    news_ttl = TTL_NEWS_CRYPTO
    default_price = Decimal("1000")
    default_prices = {
        "BTC": Decimal("103840"),
        "ETH": Decimal("3300"),
        "SOL": Decimal("165"),
        "DOGE": Decimal("0.17"),
        "ADA": Decimal("0.45"),
        "XRP": Decimal("0.61"),
        "AVAX": Decimal("22.50"),
        "LINK": Decimal("14.80"),
        "MATIC": Decimal("0.57"),
        "DOT": Decimal("6.30"),
    }

    def format_symbol(self, symbol: str) -> str:
        cleaned = symbol.strip().upper().replace("/", "").replace("-", "")
        return cleaned if cleaned.endswith("USD") else f"{cleaned}USD"

    def price_key(self, asset: Asset) -> str:
        return asset.display_symbol.upper().removesuffix("USD")

    async def check_primary_quote(
        self,
        fmp: FmpClient,
        asset: Asset,
        row: dict[str, Any] | None,
    ) -> PriceQuote | None:
        """Reject an equity that happens to share the coin's ticker.

        When the row is not from the CRYPTO exchange and its name mentions
        neither USD nor the coin, the crypto quote table is searched for the
        exact formatted symbol instead.
        """
        symbol = asset.query_symbol
        if row:
            exchange = str(row.get("exchange") or "").upper()
            name = str(row.get("name") or "").lower()
            if exchange == "CRYPTO" or "usd" in name or asset.name.lower() in name:
                return quote_from_row(row, symbol, PriceSource.LIVE_PRIMARY)
            logger.warning(
                "Quote for %s came from %s (%s); re-matching in crypto table",
                symbol,
                exchange or "unknown exchange",
                row.get("name"),
            )

        table = await fmp.get_rows("/api/v3/quotes/crypto", symbol=symbol)
        match = next((r for r in table if str(r.get("symbol", "")).upper() == symbol), None)
        return quote_from_row(match, symbol, PriceSource.LIVE_PRIMARY)

    def series_tiers(self, upstreams: Upstreams, asset: Asset) -> list[Tier[list[SeriesPoint]]]:
        fmp = upstreams.fmp
        symbol = asset.query_symbol

        async def daily_chart() -> list[SeriesPoint] | None:
            path = f"/api/v3/historical-chart/1day/{symbol}"
            return points_from_rows(await fmp.get_rows(path, symbol=symbol))

        async def full_history() -> list[SeriesPoint] | None:
            rows = await fmp.get_rows(
                f"/api/v3/historical-price-full/crypto/{symbol}",
                symbol=symbol,
                params={"serietype": "line", "timeseries": CRYPTO_HISTORY_POINTS},
            )
            return points_from_rows(rows)

        return [
            Tier(name="fmp-crypto-1day", source=PriceSource.LIVE_PRIMARY, fetch=daily_chart),
            Tier(name="fmp-crypto-history", source=PriceSource.LIVE_SECONDARY, fetch=full_history),
        ]

    def news_request(self, asset: Asset) -> tuple[str, dict[str, str | int]]:
        return "/stable/news/crypto-latest", {"page": 0, "limit": NEWS_PAGE_SIZE}


class ForexStrategy(AssetClassStrategy):
    """Currency pairs, queried without the slash (``EURUSD``)."""

    asset_class = AssetClass.FOREX
    volatility = 0.008
    news_ttl = TTL_NEWS_FOREX
    default_price = Decimal("1.0")
    default_prices = {
        "EURUSD": Decimal("1.0875"),
        "GBPUSD": Decimal("1.2650"),
        "USDJPY": Decimal("153.80"),
        "USDCAD": Decimal("1.3620"),
        "AUDUSD": Decimal("0.6580"),
        "NZDUSD": Decimal("0.6030"),
        "USDCHF": Decimal("0.9040"),
        "EURGBP": Decimal("0.8600"),
        "EURJPY": Decimal("167.25"),
        "GBPJPY": Decimal("194.60"),
    }

    def format_symbol(self, symbol: str) -> str:
        return symbol.strip().upper().replace("/", "")

    def price_key(self, asset: Asset) -> str:
        return self.format_symbol(asset.query_symbol)

    def fallback_price(self, asset: Asset) -> Decimal:
        pair = self.price_key(asset)
        if pair in self.default_prices:
            return self.default_prices[pair]
        if "USD" in pair:
            return Decimal("0.95") if pair.startswith("USD") else Decimal("1.05")
        return self.default_price

    def series_tiers(self, upstreams: Upstreams, asset: Asset) -> list[Tier[list[SeriesPoint]]]:
        fmp = upstreams.fmp
        symbol = asset.query_symbol

        async def forex_history() -> list[SeriesPoint] | None:
            path = f"/api/v3/historical-price-full/forex/{symbol}"
            return points_from_rows(await fmp.get_rows(path, symbol=symbol))

        return [
            *super().series_tiers(upstreams, asset),
            Tier(name="fmp-forex-history", source=PriceSource.LIVE_SECONDARY, fetch=forex_history),
        ]

    def news_request(self, asset: Asset) -> tuple[str, dict[str, str | int]]:
        return "/stable/news/forex-latest", {"page": 0, "limit": NEWS_PAGE_SIZE}


class CommodityStrategy(AssetClassStrategy):
    """Futures-style commodity symbols (``GCUSD`` for gold)."""

    asset_class = AssetClass.COMMODITY
    volatility = 0.03
    news_ttl = TTL_NEWS_COMMODITY
    default_price = Decimal("500")
    default_prices = {
        "GC": Decimal("2400.50"),
        "SI": Decimal("31.25"),
        "HG": Decimal("4.50"),
        "CL": Decimal("75.80"),
        "NG": Decimal("2.15"),
        "ZC": Decimal("450.75"),
        "KE": Decimal("600.25"),
        "ZW": Decimal("600.25"),
        "ZS": Decimal("1200.50"),
    }

    def format_symbol(self, symbol: str) -> str:
        cleaned = symbol.strip().upper()
        return f"{cleaned}USD" if len(cleaned) == 2 else cleaned  # noqa: PLR2004

    def price_key(self, asset: Asset) -> str:
        return asset.query_symbol.upper().removesuffix("USD").removesuffix("USX")

    def series_tiers(self, upstreams: Upstreams, asset: Asset) -> list[Tier[list[SeriesPoint]]]:
        return [
            self.daily_tier(upstreams, asset, PriceSource.LIVE_PRIMARY),
            self.eod_tier(upstreams, asset, PriceSource.LIVE_SECONDARY),
        ]


class IndexStrategy(AssetClassStrategy):
    """Market indices, queried with a caret (``^GSPC``)."""

    asset_class = AssetClass.INDEX
    volatility = 0.01
    news_ttl = TTL_NEWS_INDEX
    default_price = Decimal("10000")
    default_prices = {
        "SPX": Decimal("5500.50"),
        "GSPC": Decimal("5500.50"),
        "DJI": Decimal("41000.75"),
        "IXIC": Decimal("17800.25"),
        "RUT": Decimal("2180.40"),
        "VIX": Decimal("14.50"),
        "FTSE": Decimal("8250.30"),
        "DAX": Decimal("18500.80"),
        "GDAXI": Decimal("18500.80"),
        "NIKKEI": Decimal("38750.60"),
        "N225": Decimal("38750.60"),
    }

    def format_symbol(self, symbol: str) -> str:
        cleaned = symbol.strip().upper()
        return cleaned if cleaned.startswith("^") else f"^{cleaned}"

    def price_key(self, asset: Asset) -> str:
        return asset.query_symbol.upper().lstrip("^")

    def series_tiers(self, upstreams: Upstreams, asset: Asset) -> list[Tier[list[SeriesPoint]]]:
        return [
            self.eod_tier(upstreams, asset, PriceSource.LIVE_PRIMARY),
            self.daily_tier(upstreams, asset, PriceSource.LIVE_SECONDARY),
        ]


class OnchainTokenStrategy(AssetClassStrategy):
    """DEX-traded tokens identified by contract address; priced from DexScreener."""

    asset_class = AssetClass.ONCHAIN_TOKEN
    volatility = 0.05
    news_ttl = TTL_NEWS_CRYPTO
    default_price = Decimal("1")

    def format_symbol(self, symbol: str) -> str:
        return symbol.strip()

    def fallback_price(self, asset: Asset) -> Decimal:
        return asset.price if asset.price is not None else self.default_price

    async def _pair(self, dex: DexScreenerClient, asset: Asset) -> dict[str, Any] | None:
        query = asset.onchain.contract_address if asset.onchain else asset.query_symbol
        pairs = await dex.search(query)
        if asset.onchain is not None:
            for pair in pairs:
                if pair.get("pairAddress") == asset.onchain.pair_address:
                    return pair
        return dexscreener.best_pair(pairs)

    def quote_tiers(self, upstreams: Upstreams, asset: Asset) -> list[Tier[PriceQuote]]:
        async def dex_quote() -> PriceQuote | None:
            pair = await self._pair(upstreams.dex, asset)
            price = dexscreener.pair_price(pair) if pair else None
            if pair is None or price is None:
                return None
            return PriceQuote(
                symbol=asset.display_symbol,
                value=price,
                source=PriceSource.LIVE_PRIMARY,
                as_of=datetime.datetime.now(datetime.UTC),
                change_pct=dexscreener.pair_change_24h(pair),
            )

        return [Tier(name="dexscreener-pair", source=PriceSource.LIVE_PRIMARY, fetch=dex_quote)]

    def series_tiers(self, upstreams: Upstreams, asset: Asset) -> list[Tier[list[SeriesPoint]]]:
        async def dex_candles() -> list[SeriesPoint] | None:
            if asset.onchain is None or not asset.onchain.pair_address:
                return None
            bars = await upstreams.dex.candles(
                asset.onchain.chain_id, asset.onchain.pair_address, intraday=False
            )
            points = [
                SeriesPoint(
                    label=day_label(bar.timestamp),
                    timestamp=int(bar.timestamp.timestamp() * 1000),
                    value=bar.close,
                )
                for bar in bars
            ]
            return points if len(points) >= MIN_SERIES_POINTS else None

        return [
            Tier(name="dexscreener-candles", source=PriceSource.LIVE_PRIMARY, fetch=dex_candles)
        ]

    def news_request(self, asset: Asset) -> tuple[str, dict[str, str | int]]:
        return "/stable/news/crypto-latest", {"page": 0, "limit": NEWS_PAGE_SIZE}


STRATEGIES: Final[dict[AssetClass, AssetClassStrategy]] = {
    AssetClass.STOCK: StockStrategy(),
    AssetClass.CRYPTO: CryptoStrategy(),
    AssetClass.FOREX: ForexStrategy(),
    AssetClass.COMMODITY: CommodityStrategy(),
    AssetClass.INDEX: IndexStrategy(),
    AssetClass.ONCHAIN_TOKEN: OnchainTokenStrategy(),
}


def strategy_for(asset_class: AssetClass) -> AssetClassStrategy:
    return STRATEGIES[asset_class]
