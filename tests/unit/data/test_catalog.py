"""Tests for AssetCatalog loading and lookups."""

import json
from pathlib import Path

import pytest

from Koyn_Finance.config import DEFAULT_CATALOG_DIR
from Koyn_Finance.data.catalog import AssetCatalog, CatalogEntry
from Koyn_Finance.models import AssetClass


@pytest.fixture(scope="module")
def catalog() -> AssetCatalog:
    """The catalog shipped with the package."""
    return AssetCatalog.load(DEFAULT_CATALOG_DIR)


class TestLoad:
    def test_every_class_loaded(self, catalog: AssetCatalog) -> None:
        for asset_class in (
            AssetClass.STOCK,
            AssetClass.CRYPTO,
            AssetClass.COMMODITY,
            AssetClass.INDEX,
            AssetClass.FOREX,
        ):
            assert catalog.of_class(asset_class), asset_class

    def test_missing_directory_gives_empty_catalog(self, tmp_path: Path) -> None:
        assert len(AssetCatalog.load(tmp_path)) == 0

    def test_corrupt_file_skips_only_that_class(self, tmp_path: Path) -> None:
        (tmp_path / "crypto.json").write_text("[oops", encoding="utf-8")
        (tmp_path / "stocks.json").write_text(json.dumps({"tickers": ["AAPL"]}), encoding="utf-8")
        catalog = AssetCatalog.load(tmp_path)
        assert [entry.symbol for entry in catalog] == ["AAPL"]

    def test_forex_names_built_from_currencies(self, tmp_path: Path) -> None:
        rows = [{"symbol": "EURUSD", "fromName": "Euro", "toName": "US Dollar"}]
        (tmp_path / "forex.json").write_text(json.dumps(rows), encoding="utf-8")
        entry = AssetCatalog.load(tmp_path).lookup("EURUSD")
        assert entry is not None
        assert entry.name == "Euro to US Dollar"


class TestLookup:
    def test_crypto_reachable_with_and_without_suffix(self, catalog: AssetCatalog) -> None:
        assert catalog.lookup("btc") == catalog.lookup("BTCUSD")
        entry = catalog.lookup("BTC")
        assert entry is not None
        assert entry.display_symbol == "BTC"

    def test_index_reachable_without_caret(self, catalog: AssetCatalog) -> None:
        entry = catalog.lookup("GSPC")
        assert entry is not None
        assert entry.symbol == "^GSPC"

    def test_forex_reachable_with_slash(self, catalog: AssetCatalog) -> None:
        entry = catalog.lookup("EUR/USD")
        assert entry is not None
        assert entry.symbol == "EURUSD"

    def test_unknown_token(self, catalog: AssetCatalog) -> None:
        assert catalog.lookup("NOTATICKER") is None


class TestFindExact:
    def test_crypto_wins_first(self, catalog: AssetCatalog) -> None:
        entry = catalog.find_exact("eth")
        assert entry is not None
        assert entry.asset_class == AssetClass.CRYPTO

    def test_commodity_by_name_substring(self, catalog: AssetCatalog) -> None:
        entry = catalog.find_exact("gold")
        assert entry is not None
        assert entry.symbol == "GCUSD"

    def test_short_name_fragment_ignored(self) -> None:
        catalog = AssetCatalog(
            [CatalogEntry(symbol="GCUSD", name="Gold Futures", asset_class=AssetClass.COMMODITY)]
        )
        assert catalog.find_exact("go") is None

    def test_blank_query(self, catalog: AssetCatalog) -> None:
        assert catalog.find_exact("   ") is None
