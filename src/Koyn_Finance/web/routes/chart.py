"""Chart API routes.

GET /api/chart: Intraday or daily bars as a Chart.js config.
GET /api/chart/eod: End-of-day rows plus a Chart.js config.

Both routes serve on-chain tokens from DexScreener when a contract address
is given, ``isDex=true`` is passed, or the symbol resolves to an on-chain
token; everything else comes from FMP.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from Koyn_Finance.models import Asset, AssetClass, ChartInterval, Credential
from Koyn_Finance.services.asset_resolver import AssetResolver
from Koyn_Finance.services.charts import candle_chart, dex_chart, eod_chart
from Koyn_Finance.services.dexscreener import pair_price
from Koyn_Finance.services.market_data import MarketDataService
from Koyn_Finance.services.subscriptions import SubscriptionResolver
from Koyn_Finance.services.synthetic import token_candles
from Koyn_Finance.utils.exceptions import (
    DataFetchError,
    InvalidRequestError,
    NotFoundError,
    SymbolNotFoundError,
)
from Koyn_Finance.web.deps import (
    get_asset_resolver,
    get_credential,
    get_market_data_service,
    get_subscription_resolver,
    require_subscription,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chart", tags=["chart"])

MIN_DEX_CANDLES = 2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_target(symbol: str | None, contract_address: str | None) -> None:
    if not symbol and not contract_address:
        raise InvalidRequestError(
            "Either symbol or contractAddress parameter is required",
            error="Missing required parameter",
        )


def parse_interval(raw: str) -> ChartInterval:
    """Validate the ``interval`` query parameter."""
    try:
        return ChartInterval(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in ChartInterval)
        raise InvalidRequestError(
            f"Interval must be one of: {allowed}", error="Invalid interval"
        ) from None


async def _resolve_symbol(resolver: AssetResolver, symbol: str | None) -> Asset | None:
    if not symbol:
        return None
    return await resolver.resolve(symbol, enrich=False)


def _wants_dex(contract_address: str | None, is_dex: str | None, resolved: Asset | None) -> bool:
    if contract_address or (is_dex or "").lower() == "true":
        return True
    return resolved is not None and resolved.asset_class == AssetClass.ONCHAIN_TOKEN


async def _onchain_chart(
    market_data: MarketDataService,
    *,
    query: str,
    contract_address: str | None,
    interval: ChartInterval,
) -> dict[str, Any]:
    """DexScreener branch shared by both chart routes."""
    dex = market_data.upstreams.dex
    pair = await dex.find_best_pair(query)
    if pair is None:
        kind = "contract address" if contract_address else "memecoin"
        raise NotFoundError(f"No data available for {kind}: {query}")

    try:
        candles = await dex.candles(
            str(pair.get("chainId") or ""),
            str(pair.get("pairAddress") or ""),
            intraday="min" in interval.value,
        )
    except DataFetchError as exc:
        logger.warning("DexScreener candles failed for %s: %s", query, exc)
        candles = []

    if len(candles) < MIN_DEX_CANDLES:
        price = pair_price(pair)
        logger.info("Only %d candles for %s, generating token candles", len(candles), query)
        candles = token_candles(price) if price is not None else []
    if len(candles) < MIN_DEX_CANDLES:
        raise NotFoundError(f"No price data available for {query}")

    return dex_chart(candles, pair, interval=interval, contract_address=contract_address)


def _asset_json(asset: Asset | None) -> dict[str, Any] | None:
    return asset.model_dump(mode="json") if asset is not None else None


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


@router.get("")
async def get_chart(
    credential: Annotated[Credential | None, Depends(get_credential)],
    subscriptions: Annotated[SubscriptionResolver, Depends(get_subscription_resolver)],
    resolver: Annotated[AssetResolver, Depends(get_asset_resolver)],
    market_data: Annotated[MarketDataService, Depends(get_market_data_service)],
    symbol: str | None = None,
    interval: str = "1day",
    contract_address: Annotated[str | None, Query(alias="contractAddress")] = None,
    is_dex: Annotated[str | None, Query(alias="isDex")] = None,
) -> dict[str, Any]:
    """Price and volume chart for a symbol or on-chain token."""
    _require_target(symbol, contract_address)
    bar_size = parse_interval(interval)
    require_subscription(
        credential, subscriptions, feature="chart data", action_subject="chart data"
    )

    resolved = None if contract_address else await _resolve_symbol(resolver, symbol)
    if _wants_dex(contract_address, is_dex, resolved):
        return await _onchain_chart(
            market_data,
            query=contract_address or symbol or "",
            contract_address=contract_address,
            interval=bar_size,
        )

    final_symbol = resolved.query_symbol if resolved is not None else str(symbol)
    try:
        candles = await market_data.fetch_candles(final_symbol, bar_size)
    except SymbolNotFoundError:
        raise NotFoundError(
            f"No chart data available for {final_symbol} (searched as: {symbol}) "
            f"at {bar_size.value} interval"
        ) from None

    logger.info("Chart for %s: %d bars at %s", final_symbol, len(candles), bar_size.value)
    return candle_chart(
        candles,
        symbol=final_symbol,
        original_symbol=symbol,
        interval=bar_size,
        resolved_asset=_asset_json(resolved),
    )


@router.get("/eod")
async def get_eod_chart(
    credential: Annotated[Credential | None, Depends(get_credential)],
    subscriptions: Annotated[SubscriptionResolver, Depends(get_subscription_resolver)],
    resolver: Annotated[AssetResolver, Depends(get_asset_resolver)],
    market_data: Annotated[MarketDataService, Depends(get_market_data_service)],
    symbol: str | None = None,
    contract_address: Annotated[str | None, Query(alias="contractAddress")] = None,
    is_dex: Annotated[str | None, Query(alias="isDex")] = None,
) -> dict[str, Any]:
    """End-of-day history. On-chain requests skip the subscription check."""
    _require_target(symbol, contract_address)
    if not contract_address and (is_dex or "").lower() != "true":
        require_subscription(
            credential,
            subscriptions,
            feature="EOD data",
            action_subject="EOD historical data",
        )

    resolved = None if contract_address else await _resolve_symbol(resolver, symbol)
    if _wants_dex(contract_address, is_dex, resolved):
        return await _onchain_chart(
            market_data,
            query=contract_address or symbol or "",
            contract_address=contract_address,
            interval=ChartInterval.EOD,
        )

    final_symbol = resolved.query_symbol if resolved is not None else str(symbol)
    try:
        rows = await market_data.fetch_eod_rows(final_symbol)
    except SymbolNotFoundError:
        raise NotFoundError(
            f"No EOD data available for {final_symbol} (searched as: {symbol})",
            error="No EOD data found",
        ) from None

    logger.info("EOD chart for %s: %d rows", final_symbol, len(rows))
    return eod_chart(
        rows,
        symbol=final_symbol,
        original_symbol=symbol,
        resolved_asset=_asset_json(resolved),
    )
