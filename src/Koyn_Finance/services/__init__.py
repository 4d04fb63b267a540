"""Upstream clients, metering, resolution and aggregation services.

Re-exports the public service classes so consumers can import directly:
    from Koyn_Finance.services import MarketDataService, RateLimiter
"""

from Koyn_Finance.services.aggregation import SentimentService
from Koyn_Finance.services.asset_resolver import AssetResolver
from Koyn_Finance.services.asset_strategies import Upstreams
from Koyn_Finance.services.cache import CacheEntry, ServiceCache
from Koyn_Finance.services.dexscreener import DexScreenerClient
from Koyn_Finance.services.fmp import FmpClient
from Koyn_Finance.services.market_data import MarketDataService
from Koyn_Finance.services.news import NewsService
from Koyn_Finance.services.rate_limiter import RateLimiter
from Koyn_Finance.services.social import SocialSearchClient
from Koyn_Finance.services.subscriptions import SubscriptionResolver
from Koyn_Finance.services.usage_ledger import UsageLedger

__all__ = [
    # Infrastructure
    "CacheEntry",
    "ServiceCache",
    # Metering
    "RateLimiter",
    "SubscriptionResolver",
    "UsageLedger",
    # Upstream clients
    "DexScreenerClient",
    "FmpClient",
    "SocialSearchClient",
    "Upstreams",
    # Data services
    "AssetResolver",
    "MarketDataService",
    "NewsService",
    "SentimentService",
]
