"""DexScreener client for on-chain token pairs.

Used by the asset resolver (contract addresses and unknown meme-coin
symbols) and by the chart endpoint's on-chain branch.
"""

from __future__ import annotations

import datetime
import logging
import re
from decimal import Decimal
from typing import Any, Final

import httpx

from Koyn_Finance.models.asset import OnchainMetadata
from Koyn_Finance.models.market_data import Candle
from Koyn_Finance.services._helpers import get_json, safe_decimal, safe_float, safe_int

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEXSCREENER_BASE_URL: Final[str] = "https://api.dexscreener.com/latest/dex"
DEXSCREENER_SOURCE: Final[str] = "dexscreener"
SEARCH_TIMEOUT_SECONDS: Final[float] = 15.0
CANDLE_LOOKBACK_DAYS: Final[int] = 7

# EVM address (0x + 40 hex) or a base58 (Solana style) address
ADDRESS_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(0x[a-fA-F0-9]{40}|[1-9A-HJ-NP-Za-km-z]{32,44})$"
)

LIQUIDITY_WEIGHT: Final[float] = 0.7
VOLUME_WEIGHT: Final[float] = 0.3

SAFETY_HIGH_LIQUIDITY: Final[float] = 10_000.0
SAFETY_MEDIUM_LIQUIDITY: Final[float] = 1_000.0

CHAIN_NAMES: Final[dict[str, str]] = {
    "solana": "Solana",
    "ethereum": "Ethereum",
    "bsc": "Binance Smart Chain",
    "polygon": "Polygon",
}


def looks_like_address(query: str) -> bool:
    """True for strings shaped like a token contract address."""
    return ADDRESS_PATTERN.match(query.strip()) is not None


def pair_liquidity(pair: dict[str, Any]) -> float:
    return safe_float((pair.get("liquidity") or {}).get("usd"))


def pair_volume_24h(pair: dict[str, Any]) -> float:
    return safe_float((pair.get("volume") or {}).get("h24"))


def pair_score(pair: dict[str, Any]) -> float:
    """Composite ranking: 70% USD liquidity, 30% 24h volume."""
    return LIQUIDITY_WEIGHT * pair_liquidity(pair) + VOLUME_WEIGHT * pair_volume_24h(pair)


def best_pair(pairs: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Highest-scoring pair; the earliest one wins ties."""
    best: dict[str, Any] | None = None
    for pair in pairs:
        if best is None or pair_score(pair) > pair_score(best):
            best = pair
    return best


def safety_score(liquidity_usd: float) -> str:
    if liquidity_usd > SAFETY_HIGH_LIQUIDITY:
        return "high"
    if liquidity_usd > SAFETY_MEDIUM_LIQUIDITY:
        return "medium"
    return "low"


def chain_name(chain_id: str) -> str:
    return CHAIN_NAMES.get(chain_id, chain_id or "Unknown")


def pair_price(pair: dict[str, Any]) -> Decimal | None:
    price = safe_decimal(pair.get("priceUsd"))
    return price if price is not None and price > 0 else None


def pair_change_24h(pair: dict[str, Any]) -> float:
    return safe_float((pair.get("priceChange") or {}).get("h24"))


def onchain_metadata(pair: dict[str, Any], contract_address: str | None = None) -> OnchainMetadata:
    """Summarize a DexScreener pair for an ``Asset``."""
    liquidity = pair_liquidity(pair)
    base = pair.get("baseToken") or {}
    chain_id = str(pair.get("chainId") or "")
    return OnchainMetadata(
        contract_address=contract_address or str(base.get("address") or ""),
        chain=chain_name(chain_id),
        chain_id=chain_id,
        pair_address=str(pair.get("pairAddress") or ""),
        dex_id=str(pair.get("dexId") or ""),
        url=str(pair.get("url") or ""),
        liquidity_usd=liquidity,
        volume_24h=pair_volume_24h(pair),
        market_cap=safe_float(pair.get("fdv") or pair.get("marketCap")),
        safety_score=safety_score(liquidity),
    )


class DexScreenerClient:
    """Async client for the public DexScreener API (no key required)."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str = DEXSCREENER_BASE_URL,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=5.0, read=SEARCH_TIMEOUT_SECONDS, write=10.0, pool=5.0),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def search(self, query: str) -> list[dict[str, Any]]:
        """Return every pair DexScreener matches for *query*."""
        data = await get_json(
            self._client,
            f"{self._base_url}/search",
            params={"q": query},
            timeout=SEARCH_TIMEOUT_SECONDS,
            symbol=query,
            source=DEXSCREENER_SOURCE,
        )
        pairs = data.get("pairs") if isinstance(data, dict) else None
        if not isinstance(pairs, list):
            return []
        result = [p for p in pairs if isinstance(p, dict)]
        logger.debug("DexScreener returned %d pairs for %s", len(result), query)
        return result

    async def find_best_pair(self, query: str) -> dict[str, Any] | None:
        return best_pair(await self.search(query))

    async def find_exact_symbol_pair(self, query: str) -> dict[str, Any] | None:
        """First pair whose base-token symbol equals *query* (case-insensitive)."""
        wanted = query.strip().lower()
        for pair in await self.search(query):
            symbol = str((pair.get("baseToken") or {}).get("symbol") or "")
            if symbol.lower() == wanted:
                return pair
        return None

    async def candles(
        self,
        chain_id: str,
        pair_address: str,
        *,
        intraday: bool,
    ) -> list[Candle]:
        """Recent candles for a pair (5-minute bars when *intraday*, else hourly)."""
        now = datetime.datetime.now(datetime.UTC)
        since = now - datetime.timedelta(days=CANDLE_LOOKBACK_DAYS)
        data = await get_json(
            self._client,
            f"{self._base_url}/pairs/{chain_id}/{pair_address}/candles",
            params={
                "from": int(since.timestamp()),
                "to": int(now.timestamp()),
                "resolution": 5 if intraday else 60,
            },
            timeout=SEARCH_TIMEOUT_SECONDS,
            symbol=pair_address,
            source=DEXSCREENER_SOURCE,
        )
        raw = data.get("candles") if isinstance(data, dict) else None
        bars: list[Candle] = []
        for row in raw if isinstance(raw, list) else []:
            candle = _candle_from_row(row)
            if candle is not None:
                bars.append(candle)
        bars.sort(key=lambda bar: bar.timestamp)
        return bars


def _candle_from_row(row: object) -> Candle | None:
    if not isinstance(row, dict) or row.get("time") is None:
        return None
    close = safe_decimal(row.get("close") or row.get("price"))
    if close is None:
        return None
    return Candle(
        timestamp=datetime.datetime.fromtimestamp(safe_int(row["time"]), tz=datetime.UTC),
        open=safe_decimal(row.get("open"), close) or close,
        high=safe_decimal(row.get("high"), close) or close,
        low=safe_decimal(row.get("low"), close) or close,
        close=close,
        volume=safe_int(row.get("volume")),
    )
