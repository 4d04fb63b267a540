"""StrEnum types for the aggregation domain.

Values are the exact strings that appear on the wire or in persisted data.
Use enum members in business logic, never raw strings.
"""

from enum import StrEnum


class AssetClass(StrEnum):
    """Instrument category; decides which upstream endpoints apply."""

    STOCK = "stock"
    CRYPTO = "crypto"
    FOREX = "forex"
    COMMODITY = "commodity"
    INDEX = "index"
    ONCHAIN_TOKEN = "onchain-token"


class PriceSource(StrEnum):
    """Which tier of a fallback chain produced a price or series."""

    LIVE_PRIMARY = "live-primary"
    LIVE_SECONDARY = "live-secondary"
    CACHE = "cache"
    SYNTHETIC = "synthetic"


class ResolutionSource(StrEnum):
    """Which asset resolver tier produced an Asset."""

    EXPLICIT = "explicit"
    CATALOG = "catalog"
    ALIAS = "alias"
    TICKER_PATTERN = "ticker_pattern"
    ONCHAIN_ADDRESS = "dexscreener_address"
    ONCHAIN_SYMBOL = "dexscreener_symbol"
    LLM = "llm"
    DEFAULT = "default"


class SubscriptionPlan(StrEnum):
    """Plan tier controlling the daily request quota."""

    FREE = "free"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    UNLIMITED = "unlimited"


class SubscriptionStatus(StrEnum):
    """Status flag as stored by the billing webhook."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELED = "canceled"
    PAST_DUE = "past_due"


class SentimentLabel(StrEnum):
    """Coarse market sentiment shown to the user (title-cased on the wire)."""

    BULLISH = "Bullish"
    BEARISH = "Bearish"
    NEUTRAL = "Neutral"


class ChartInterval(StrEnum):
    """Bar sizes accepted by the chart endpoint."""

    ONE_MIN = "1min"
    FIVE_MIN = "5min"
    FIFTEEN_MIN = "15min"
    THIRTY_MIN = "30min"
    ONE_HOUR = "1hour"
    FOUR_HOUR = "4hour"
    EOD = "eod"
    ONE_DAY = "1day"
