"""Canonical asset identity produced by the asset resolver."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, field_serializer

from Koyn_Finance.models.enums import AssetClass, ResolutionSource


class OnchainMetadata(BaseModel):
    """DEX pair details for an on-chain token.

    Frozen because it is a snapshot of the best pair at resolution time.
    """

    model_config = ConfigDict(frozen=True)

    contract_address: str
    chain: str
    chain_id: str
    pair_address: str
    dex_id: str = ""
    url: str = ""
    liquidity_usd: float = 0.0
    volume_24h: float = 0.0
    market_cap: float = 0.0
    safety_score: str = "low"


class Asset(BaseModel):
    """A tradable instrument resolved from free text or a symbol.

    ``query_symbol`` is formatted for the upstream endpoint family selected by
    ``asset_class`` (``BTCUSD`` for crypto, ``^GSPC`` for indices, and so on)
    while ``display_symbol`` is what the user sees.  Price fields are empty
    until enrichment fills them via ``with_price``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    display_symbol: str
    query_symbol: str
    name: str
    asset_class: AssetClass
    resolution_source: ResolutionSource
    onchain: OnchainMetadata | None = None
    price: Decimal | None = None
    price_change_24h: float | None = None

    @field_serializer("price")
    def serialize_decimal(self, value: Decimal | None) -> str | None:
        """Serialize Decimal fields as strings to preserve precision."""
        return None if value is None else str(value)

    def with_price(self, price: Decimal, change_pct: float | None = None) -> "Asset":
        """Return a copy carrying a live price (and 24h change when known)."""
        update: dict[str, object] = {"price": price}
        if change_pct is not None:
            update["price_change_24h"] = change_pct
        return self.model_copy(update=update)
