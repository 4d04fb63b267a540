"""Market data passthrough routes.

GET /api/assets/{asset_list}: Curated instrument list (free, no credential).
GET /api/historical-prices: Daily ``[date, close, volume]`` points.
GET /api/intraday-prices: Intraday ``[date, close, volume]`` points.
GET /api/insider-trading: Insider filings for a symbol or market-wide.
GET /api/technical-indicators: Latest value of one or more indicators.

Everything except the asset lists needs a live subscription but is not
metered, like the chart routes.
"""

import datetime
import logging
from typing import Annotated, Any, Final

from fastapi import APIRouter, Depends, Query

from Koyn_Finance.data.catalog import AssetCatalog
from Koyn_Finance.models import AssetClass, Credential
from Koyn_Finance.services.market_data import DAILY_INTERVALS, MarketDataService
from Koyn_Finance.services.subscriptions import SubscriptionResolver
from Koyn_Finance.utils.exceptions import InvalidRequestError, NotFoundError, SymbolNotFoundError
from Koyn_Finance.web.deps import (
    get_catalog,
    get_credential,
    get_market_data_service,
    get_subscription_resolver,
    require_subscription,
)
from Koyn_Finance.web.routes.chart import parse_interval

logger = logging.getLogger(__name__)

router = APIRouter(tags=["markets"])

ASSET_LISTS: Final[dict[str, AssetClass]] = {
    "crypto": AssetClass.CRYPTO,
    "forex": AssetClass.FOREX,
    "stocks": AssetClass.STOCK,
    "indices": AssetClass.INDEX,
    "commodities": AssetClass.COMMODITY,
}

# Look-back in days per timeframe; anything else gets the default
TIMEFRAME_DAYS: Final[dict[str, int]] = {
    "1D": 1,
    "1W": 7,
    "1M": 30,
    "3M": 90,
    "1Y": 365,
    "ALL": 3650,
}
DEFAULT_TIMEFRAME_DAYS: Final[int] = 30

INDICATOR_TYPES: Final[frozenset[str]] = frozenset(
    {"sma", "ema", "wma", "dema", "tema", "rsi", "standarddeviation", "williams", "adx"}
)


def _require_symbol(symbol: str | None) -> str:
    if not symbol:
        raise InvalidRequestError(
            "Symbol parameter is required", error="Missing required parameter"
        )
    return symbol


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


@router.get("/assets/{asset_list}")
async def get_asset_list(
    asset_list: str,
    catalog: Annotated[AssetCatalog, Depends(get_catalog)],
) -> list[dict[str, str]]:
    """Symbols and names of one curated list."""
    asset_class = ASSET_LISTS.get(asset_list)
    if asset_class is None:
        raise NotFoundError(
            f"Asset list must be one of: {', '.join(ASSET_LISTS)}", error="Unknown asset list"
        )
    return [{"symbol": entry.symbol, "name": entry.name} for entry in catalog.of_class(asset_class)]


@router.get("/historical-prices")
async def get_historical_prices(
    credential: Annotated[Credential | None, Depends(get_credential)],
    subscriptions: Annotated[SubscriptionResolver, Depends(get_subscription_resolver)],
    market_data: Annotated[MarketDataService, Depends(get_market_data_service)],
    symbol: str | None = None,
    timeframe: str = "1D",
) -> dict[str, Any]:
    wanted = _require_symbol(symbol)
    require_subscription(
        credential,
        subscriptions,
        feature="historical price data",
        action_subject="historical price data",
    )
    days = TIMEFRAME_DAYS.get(timeframe, DEFAULT_TIMEFRAME_DAYS)
    try:
        points = await market_data.fetch_price_history(wanted, days)
    except SymbolNotFoundError:
        raise NotFoundError(
            f"No historical data found for {wanted}", error="No historical data found"
        ) from None
    return {"data": points}


@router.get("/intraday-prices")
async def get_intraday_prices(
    credential: Annotated[Credential | None, Depends(get_credential)],
    subscriptions: Annotated[SubscriptionResolver, Depends(get_subscription_resolver)],
    market_data: Annotated[MarketDataService, Depends(get_market_data_service)],
    symbol: str | None = None,
    interval: str = "1min",
) -> dict[str, Any]:
    wanted = _require_symbol(symbol)
    bar_size = parse_interval(interval)
    if bar_size in DAILY_INTERVALS:
        raise InvalidRequestError(
            f"{interval} is not an intraday interval", error="Invalid interval"
        )
    require_subscription(
        credential,
        subscriptions,
        feature="intraday price data",
        action_subject="intraday price data",
    )
    try:
        points = await market_data.fetch_intraday_points(wanted, bar_size)
    except SymbolNotFoundError:
        raise NotFoundError(
            f"No intraday data found for {wanted}", error="No intraday data found"
        ) from None
    return {"data": points}


@router.get("/insider-trading")
async def get_insider_trading(
    credential: Annotated[Credential | None, Depends(get_credential)],
    subscriptions: Annotated[SubscriptionResolver, Depends(get_subscription_resolver)],
    market_data: Annotated[MarketDataService, Depends(get_market_data_service)],
    symbol: str | None = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> dict[str, Any]:
    """Filings for *symbol*, or the latest filings when no symbol is given."""
    require_subscription(
        credential,
        subscriptions,
        feature="insider trading data",
        action_subject="insider trading data",
    )
    try:
        rows = await market_data.fetch_insider_feed(symbol, limit)
    except SymbolNotFoundError:
        message = (
            f"No insider trading data found for {symbol}"
            if symbol
            else "No insider trading data available"
        )
        raise NotFoundError(message, error="No insider trading data found") from None
    return {
        "success": True,
        "data": rows,
        "count": len(rows),
        "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
    }


@router.get("/technical-indicators")
async def get_technical_indicators(
    credential: Annotated[Credential | None, Depends(get_credential)],
    subscriptions: Annotated[SubscriptionResolver, Depends(get_subscription_resolver)],
    market_data: Annotated[MarketDataService, Depends(get_market_data_service)],
    symbol: str | None = None,
    period: Annotated[int, Query(ge=1)] = 14,
    indicator_types: Annotated[str, Query(alias="type")] = "rsi",
) -> list[dict[str, Any]]:
    """Latest values for a comma-separated list of indicator types."""
    wanted = _require_symbol(symbol)
    kinds = [kind.strip().lower() for kind in indicator_types.split(",") if kind.strip()]
    unknown = [kind for kind in kinds if kind not in INDICATOR_TYPES]
    if not kinds or unknown:
        raise InvalidRequestError(
            f"Indicator must be one of: {', '.join(sorted(INDICATOR_TYPES))}",
            error="Invalid indicator type",
        )
    require_subscription(
        credential,
        subscriptions,
        feature="technical indicators",
        action_subject="technical indicators",
    )

    values = await market_data.fetch_latest_indicators(wanted, period, kinds)
    if not values:
        raise NotFoundError(
            f"No technical indicator data found for {wanted}",
            error="No technical indicator data found",
        )
    logger.info("Indicators for %s: %s", wanted, ", ".join(values))
    return [values]
