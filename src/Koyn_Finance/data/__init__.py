"""Persistence and reference data for Koyn Finance.

Re-exports the main public API: Database for the SQLite connection,
SubscriptionStore for the billing snapshot, AssetCatalog for curated lists.
"""

from Koyn_Finance.data.catalog import AssetCatalog, CatalogEntry
from Koyn_Finance.data.database import Database
from Koyn_Finance.data.subscriptions import SubscriptionStore

__all__ = ["AssetCatalog", "CatalogEntry", "Database", "SubscriptionStore"]
