"""Free text to canonical ``Asset``, first matching tier wins.

Tiers, in order:

1. Curated catalog: static aliases ("bitcoin", "apple"), then catalog
   tokens in the query, then cashtags (``$PLUG``), then a whole-query match
   against catalog names.
2. Contract address: best DexScreener pair for the address.
3. On-chain symbol: a DexScreener pair whose base-token symbol equals the
   query exactly.
4. LLM: ``{symbol, name, type}`` extracted by Gemini.

Address-shaped queries skip tier 1 entirely. Resolved assets are enriched
with a live quote when one is available; enrichment failures are ignored.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Final

from Koyn_Finance.agents._parsing import ParsedAsset, parse_asset_guess
from Koyn_Finance.agents.llm_client import LLMClient, LLMRequestError
from Koyn_Finance.agents.prompts.asset_prompt import build_asset_prompt
from Koyn_Finance.data.catalog import AssetCatalog, CatalogEntry
from Koyn_Finance.models.asset import Asset
from Koyn_Finance.models.enums import AssetClass, ResolutionSource
from Koyn_Finance.services.asset_strategies import strategy_for
from Koyn_Finance.services.dexscreener import (
    DexScreenerClient,
    looks_like_address,
    onchain_metadata,
    pair_change_24h,
    pair_price,
)
from Koyn_Finance.services.market_data import MarketDataService
from Koyn_Finance.utils.exceptions import DataFetchError, ResolutionFailure

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ASSET_DETECTION_TIMEOUT: Final[float] = 10.0
ASSET_DETECTION_TEMPERATURE: Final[float] = 0.1

DEFAULT_SYMBOL: Final[str] = "BTC"
DEFAULT_NAME: Final[str] = "Bitcoin"

_MIN_LOWERCASE_TOKEN: Final[int] = 3

# (phrase, catalog token, display name); multi-word phrases come first
ALIASES: Final[tuple[tuple[str, str, str | None], ...]] = (
    ("bitcoin cash", "BCH", None),
    ("binance coin", "BNB", None),
    ("ethereum classic", "ETC", None),
    ("shiba inu", "SHIB", None),
    ("crude oil", "CLUSD", None),
    ("natural gas", "NGUSD", None),
    ("dow jones", "DIA", "SPDR Dow Jones Industrial Average ETF"),
    ("s&p 500", "SPY", "SPDR S&P 500 ETF"),
    ("s&p500", "SPY", "SPDR S&P 500 ETF"),
    ("sp500", "SPY", "SPDR S&P 500 ETF"),
    ("eur/usd", "EURUSD", None),
    ("apple", "AAPL", "Apple Inc."),
    ("appl", "AAPL", "Apple Inc."),
    ("aple", "AAPL", "Apple Inc."),
    ("google", "GOOGL", "Alphabet Inc."),
    ("alphabet", "GOOGL", "Alphabet Inc."),
    ("microsoft", "MSFT", "Microsoft Corporation"),
    ("tesla", "TSLA", "Tesla, Inc."),
    ("amazon", "AMZN", "Amazon.com, Inc."),
    ("nvidia", "NVDA", "NVIDIA Corporation"),
    ("facebook", "META", "Meta Platforms, Inc."),
    ("netflix", "NFLX", "Netflix, Inc."),
    ("bitcoin", "BTC", None),
    ("ethereum", "ETH", None),
    ("ether", "ETH", None),
    ("binance", "BNB", None),
    ("solana", "SOL", None),
    ("cardano", "ADA", None),
    ("polkadot", "DOT", None),
    ("chainlink", "LINK", None),
    ("polygon", "MATIC", None),
    ("avalanche", "AVAX", None),
    ("uniswap", "UNI", None),
    ("litecoin", "LTC", None),
    ("ripple", "XRP", None),
    ("dogecoin", "DOGE", None),
    ("gold", "GLD", "SPDR Gold Shares"),
    ("silver", "SLV", "iShares Silver Trust"),
    ("oil", "CLUSD", None),
    ("crude", "CLUSD", None),
    ("wti", "CLUSD", None),
    ("nasdaq", "QQQ", "Invesco QQQ Trust"),
    ("dow", "DIA", "SPDR Dow Jones Industrial Average ETF"),
    ("us30", "DJI", None),
    ("nikkei", "N225", None),
)

# Lower-case words that are also coin tickers; only matched when typed in capitals
COMMON_WORDS: Final[frozenset[str]] = frozenset(
    {"apt", "arb", "atom", "dot", "etc", "link", "near", "sui", "ton", "uni"}
)

_ALIAS_PATTERNS: Final[tuple[tuple[re.Pattern[str], str, str | None], ...]] = tuple(
    (re.compile(rf"(?<![\w]){re.escape(phrase)}(?![\w])"), token, name)
    for phrase, token, name in ALIASES
)
_TOKEN_RE: Final[re.Pattern[str]] = re.compile(r"\$?[A-Za-z0-9^][A-Za-z0-9.^/]*")
_CASHTAG_RE: Final[re.Pattern[str]] = re.compile(r"\$([A-Za-z]{1,5})\b")


def asset_from_entry(
    entry: CatalogEntry,
    source: ResolutionSource,
    *,
    name: str | None = None,
) -> Asset:
    """Build an Asset for a curated instrument, symbol formatted for its class."""
    strategy = strategy_for(entry.asset_class)
    return Asset(
        id=entry.display_symbol,
        display_symbol=entry.display_symbol,
        query_symbol=strategy.format_symbol(entry.symbol),
        name=name or entry.name,
        asset_class=entry.asset_class,
        resolution_source=source,
    )


def asset_from_pair(
    pair: dict[str, Any],
    source: ResolutionSource,
    *,
    contract_address: str | None = None,
) -> Asset:
    """Build an on-chain token Asset (priced) from a DexScreener pair."""
    base = pair.get("baseToken") or {}
    metadata = onchain_metadata(pair, contract_address)
    symbol = str(base.get("symbol") or "").upper() or metadata.contract_address[:8].upper()
    return Asset(
        id=symbol,
        display_symbol=symbol,
        query_symbol=metadata.contract_address or symbol,
        name=str(base.get("name") or f"Token {symbol}"),
        asset_class=AssetClass.ONCHAIN_TOKEN,
        resolution_source=source,
        onchain=metadata,
        price=pair_price(pair),
        price_change_24h=pair_change_24h(pair),
    )


def symbol_asset(
    symbol: str,
    asset_class: AssetClass,
    source: ResolutionSource,
    *,
    name: str | None = None,
) -> Asset:
    """Asset for a symbol outside the catalog."""
    strategy = strategy_for(asset_class)
    display = symbol.strip().lstrip("$").upper()
    return Asset(
        id=display,
        display_symbol=display,
        query_symbol=strategy.format_symbol(display),
        name=name or display,
        asset_class=asset_class,
        resolution_source=source,
    )


class AssetResolver:
    """Layered asset detection over the catalog, DexScreener, and Gemini.

    Usage::

        resolver = AssetResolver(catalog, dex=dex, llm=llm, market_data=market_data)
        asset = await resolver.resolve("what do you think about apple?")

    Args:
        catalog: Immutable curated symbol table.
        dex: DexScreener client for address and on-chain symbol tiers.
        llm: Gemini client for the last tier (skipped when unconfigured).
        market_data: Quote source for price enrichment (skipped when ``None``).
    """

    def __init__(
        self,
        catalog: AssetCatalog,
        *,
        dex: DexScreenerClient | None = None,
        llm: LLMClient | None = None,
        market_data: MarketDataService | None = None,
    ) -> None:
        self._catalog = catalog
        self._dex = dex
        self._llm = llm
        self._market_data = market_data

    @property
    def catalog(self) -> AssetCatalog:
        return self._catalog

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def resolve(self, query: str, *, enrich: bool = True) -> Asset | None:
        """Resolve *query*; ``None`` when every tier comes back empty."""
        try:
            return await self.require(query, enrich=enrich)
        except ResolutionFailure as exc:
            logger.info("%s", exc)
            return None

    async def require(self, query: str, *, enrich: bool = True) -> Asset:
        """Like ``resolve`` but raises ``ResolutionFailure`` instead of returning ``None``."""
        text = query.strip()
        if not text:
            raise ResolutionFailure(query)

        asset: Asset | None = None
        if looks_like_address(text):
            asset = await self.match_address(text)
        else:
            asset = self.match_catalog(text)
            if asset is None:
                asset = await self.match_onchain_symbol(text)
            if asset is None:
                asset = await self.match_with_llm(text)

        if asset is None:
            raise ResolutionFailure(query)

        logger.info(
            "Resolved %r to %s (%s, %s)",
            query,
            asset.display_symbol,
            asset.asset_class,
            asset.resolution_source,
        )
        return await self._enrich(asset) if enrich else asset

    def explicit(self, symbol: str) -> Asset:
        """Caller-supplied symbol, always treated as a stock."""
        return symbol_asset(symbol, AssetClass.STOCK, ResolutionSource.EXPLICIT)

    def default(self) -> Asset:
        """Bitcoin, used when nothing in the question names an asset."""
        entry = self._catalog.lookup(DEFAULT_SYMBOL)
        if entry is not None:
            return asset_from_entry(entry, ResolutionSource.DEFAULT)
        return symbol_asset(
            DEFAULT_SYMBOL, AssetClass.CRYPTO, ResolutionSource.DEFAULT, name=DEFAULT_NAME
        )

    # ------------------------------------------------------------------
    # Tier 1: curated catalog
    # ------------------------------------------------------------------

    def match_catalog(self, query: str) -> Asset | None:
        """Aliases, then catalog tokens, then cashtags, then catalog names."""
        lowered = query.lower()
        for pattern, token, name in _ALIAS_PATTERNS:
            if not pattern.search(lowered):
                continue
            entry = self._catalog.lookup(token)
            if entry is not None:
                return asset_from_entry(entry, ResolutionSource.ALIAS, name=name)
            logger.warning("Alias %r points at missing catalog token %s", pattern.pattern, token)

        for raw in _TOKEN_RE.findall(query):
            entry = self._token_entry(raw)
            if entry is not None:
                return asset_from_entry(entry, ResolutionSource.CATALOG)

        cashtag = _CASHTAG_RE.search(query)
        if cashtag:
            return symbol_asset(
                cashtag.group(1), AssetClass.STOCK, ResolutionSource.TICKER_PATTERN
            )

        entry = self._catalog.find_exact(query)
        if entry is not None:
            return asset_from_entry(entry, ResolutionSource.CATALOG)
        return None

    def _token_entry(self, raw: str) -> CatalogEntry | None:
        """Catalog entry for one query token, or ``None``.

        Cashtags and tokens typed in capitals match any catalog list. A
        lower-case token only matches a coin, needs at least three characters
        and must not be an everyday English word, so "ups" or "etc" in a
        sentence never becomes an asset.
        """
        cashtag = raw.startswith("$")
        token = raw.lstrip("$").rstrip(".")
        if not token:
            return None
        typed_upper = token == token.upper() and any(ch.isalpha() for ch in token)
        if not (cashtag or typed_upper):
            if len(token) < _MIN_LOWERCASE_TOKEN or token.lower() in COMMON_WORDS:
                return None
            entry = self._catalog.lookup(token)
            if entry is None or entry.asset_class != AssetClass.CRYPTO:
                return None
            return entry
        return self._catalog.lookup(token)

    # ------------------------------------------------------------------
    # Tiers 2 and 3: DexScreener
    # ------------------------------------------------------------------

    async def match_address(self, address: str) -> Asset | None:
        if self._dex is None:
            return None
        try:
            pair = await self._dex.find_best_pair(address)
        except DataFetchError as exc:
            logger.warning("DexScreener address lookup failed for %s: %s", address, exc)
            return None
        if pair is None:
            logger.info("No DexScreener pairs for address %s", address)
            return None
        return asset_from_pair(pair, ResolutionSource.ONCHAIN_ADDRESS, contract_address=address)

    async def match_onchain_symbol(self, query: str) -> Asset | None:
        """Exact base-token symbol match; multi-word queries cannot match a symbol."""
        if self._dex is None or len(query.split()) != 1:
            return None
        symbol = query.lstrip("$")
        try:
            pair = await self._dex.find_exact_symbol_pair(symbol)
        except DataFetchError as exc:
            logger.warning("DexScreener symbol search failed for %s: %s", symbol, exc)
            return None
        if pair is None:
            return None
        return asset_from_pair(pair, ResolutionSource.ONCHAIN_SYMBOL)

    # ------------------------------------------------------------------
    # Tier 4: LLM
    # ------------------------------------------------------------------

    async def match_with_llm(self, query: str) -> Asset | None:
        if self._llm is None or not self._llm.configured:
            return None
        try:
            response = await self._llm.generate(
                build_asset_prompt(query),
                temperature=ASSET_DETECTION_TEMPERATURE,
                top_k=1,
                timeouts=[ASSET_DETECTION_TIMEOUT],
                retry_delays=[],
            )
        except (DataFetchError, LLMRequestError) as exc:
            logger.warning("LLM asset detection failed for %r: %s", query, exc)
            return None

        guess = parse_asset_guess(response.content)
        if guess is None:
            return None
        return self._asset_from_guess(guess)

    def _asset_from_guess(self, guess: ParsedAsset) -> Asset:
        entry = self._catalog.lookup(guess.symbol)
        if entry is not None:
            return asset_from_entry(entry, ResolutionSource.LLM, name=guess.name)
        return symbol_asset(guess.symbol, guess.asset_class, ResolutionSource.LLM, name=guess.name)

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    async def _enrich(self, asset: Asset) -> Asset:
        if asset.price is not None or self._market_data is None:
            return asset
        quote = await self._market_data.fetch_quote(asset)
        if quote.is_synthetic:
            logger.info("No live price for %s, returning it unpriced", asset.display_symbol)
            return asset
        return asset.with_price(quote.value, quote.change_pct)
