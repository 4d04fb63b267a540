"""Curated instrument lists used by the first asset-resolution tier.

The JSON files under ``catalog/`` are loaded once at startup into an
immutable ``AssetCatalog`` snapshot that is handed to the resolver, so the
request path never touches the filesystem.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict

from Koyn_Finance.models.enums import AssetClass

logger = logging.getLogger(__name__)

CATALOG_FILES: dict[AssetClass, str] = {
    AssetClass.STOCK: "stocks.json",
    AssetClass.CRYPTO: "crypto.json",
    AssetClass.COMMODITY: "commodities.json",
    AssetClass.INDEX: "indices.json",
    AssetClass.FOREX: "forex.json",
}

# Minimum query length before a name substring match is attempted
_MIN_NAME_QUERY: int = 3


class CatalogEntry(BaseModel):
    """One curated instrument. ``symbol`` is the upstream query symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    name: str
    asset_class: AssetClass

    @property
    def display_symbol(self) -> str:
        if self.asset_class == AssetClass.CRYPTO:
            return self.symbol.removesuffix("USD")
        return self.symbol


class AssetCatalog:
    """Read-only symbol table over every curated list.

    Keys are upper-cased lookup tokens. Crypto entries are reachable by both
    ``BTCUSD`` and ``BTC``; indices by ``^GSPC`` and ``GSPC``; forex pairs by
    ``EURUSD`` and ``EUR/USD``. When two lists claim the same token the later
    list in ``CATALOG_FILES`` order wins.
    """

    def __init__(self, entries: list[CatalogEntry]) -> None:
        index: dict[str, CatalogEntry] = {}
        for entry in entries:
            for token in _lookup_tokens(entry):
                index[token] = entry
        self._entries: tuple[CatalogEntry, ...] = tuple(entries)
        self._index: Mapping[str, CatalogEntry] = MappingProxyType(index)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries)

    @property
    def tokens(self) -> frozenset[str]:
        return frozenset(self._index)

    def lookup(self, token: str) -> CatalogEntry | None:
        """Exact, case-insensitive lookup of a single symbol token."""
        return self._index.get(token.strip().upper())

    def of_class(self, asset_class: AssetClass) -> list[CatalogEntry]:
        return [entry for entry in self._entries if entry.asset_class == asset_class]

    def find_exact(self, query: str) -> CatalogEntry | None:
        """Match the whole query against each list in priority order.

        Crypto first (symbol with or without the USD suffix), then stocks by
        ticker, then commodities and indices by symbol or a name containing the
        query, then forex by symbol or currency pair.
        """
        wanted = query.strip().lower()
        if not wanted:
            return None

        for entry in self.of_class(AssetClass.CRYPTO):
            if wanted in (entry.symbol.lower(), entry.display_symbol.lower()):
                return entry
        for entry in self.of_class(AssetClass.STOCK):
            if entry.symbol.lower() == wanted:
                return entry
        for asset_class in (AssetClass.COMMODITY, AssetClass.INDEX):
            for entry in self.of_class(asset_class):
                if entry.symbol.lower() == wanted or entry.symbol.lstrip("^").lower() == wanted:
                    return entry
                if len(wanted) >= _MIN_NAME_QUERY and wanted in entry.name.lower():
                    return entry
        for entry in self.of_class(AssetClass.FOREX):
            if wanted in (token.lower() for token in _lookup_tokens(entry)):
                return entry
        return None

    @classmethod
    def load(cls, directory: Path) -> AssetCatalog:
        """Load every curated list under *directory*.

        A missing or corrupt file leaves that asset class empty instead of
        preventing startup.
        """
        entries: list[CatalogEntry] = []
        for asset_class, filename in CATALOG_FILES.items():
            path = directory / filename
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.error("Could not load %s catalog from %s: %s", asset_class, path, exc)
                continue
            loaded = _parse_entries(asset_class, raw)
            entries.extend(loaded)
            logger.debug("Loaded %d %s entries from %s", len(loaded), asset_class, path)

        catalog = cls(entries)
        logger.info("Asset catalog loaded: %d instruments from %s", len(catalog), directory)
        return catalog


def _lookup_tokens(entry: CatalogEntry) -> list[str]:
    symbol = entry.symbol.upper()
    tokens = [symbol]
    if entry.asset_class == AssetClass.CRYPTO:
        tokens.append(entry.display_symbol.upper())
    elif entry.asset_class == AssetClass.INDEX and symbol.startswith("^"):
        tokens.append(symbol[1:])
    elif entry.asset_class == AssetClass.FOREX and len(symbol) == 6:  # noqa: PLR2004
        tokens.append(f"{symbol[:3]}/{symbol[3:]}")
    return tokens


def _parse_entries(asset_class: AssetClass, raw: Any) -> list[CatalogEntry]:
    if asset_class == AssetClass.STOCK:
        tickers = raw.get("tickers", []) if isinstance(raw, dict) else []
        return [
            CatalogEntry(symbol=str(t), name=str(t), asset_class=asset_class) for t in tickers
        ]

    entries: list[CatalogEntry] = []
    for row in raw if isinstance(raw, list) else []:
        if not isinstance(row, dict) or not row.get("symbol"):
            continue
        if asset_class == AssetClass.FOREX:
            from_name = row.get("fromName") or row.get("fromCurrency", "")
            to_name = row.get("toName") or row.get("toCurrency", "")
            name = f"{from_name} to {to_name}"
        else:
            name = str(row.get("name") or row["symbol"])
        entries.append(CatalogEntry(symbol=str(row["symbol"]), name=name, asset_class=asset_class))
    return entries
