"""Dependency injection providers for FastAPI route handlers.

All shared resources (settings, ledger, resolvers, services) are created once
in the application lifespan and stored on ``app.state``. Route handlers never
construct these directly; they declare dependencies and FastAPI injects them.
"""

import logging
from typing import Annotated

from fastapi import Depends, Request, Response

from Koyn_Finance.config import Settings
from Koyn_Finance.data.catalog import AssetCatalog
from Koyn_Finance.models import Credential, RateLimitDecision
from Koyn_Finance.services.aggregation import SentimentService
from Koyn_Finance.services.asset_resolver import AssetResolver
from Koyn_Finance.services.market_data import MarketDataService
from Koyn_Finance.services.rate_limiter import RateLimiter
from Koyn_Finance.services.subscriptions import SubscriptionResolver
from Koyn_Finance.utils.exceptions import AuthError

logger = logging.getLogger(__name__)

MISSING_CREDENTIAL_MESSAGE = (
    "Valid authentication is required. Please provide a valid JWT token in the "
    "Authorization header or subscription ID."
)


# ---------------------------------------------------------------------------
# app.state providers
# ---------------------------------------------------------------------------


async def get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


async def get_subscription_resolver(request: Request) -> SubscriptionResolver:
    resolver: SubscriptionResolver = request.app.state.subscription_resolver
    return resolver


async def get_rate_limiter(request: Request) -> RateLimiter:
    limiter: RateLimiter = request.app.state.rate_limiter
    return limiter


async def get_asset_resolver(request: Request) -> AssetResolver:
    resolver: AssetResolver = request.app.state.asset_resolver
    return resolver


async def get_catalog(request: Request) -> AssetCatalog:
    catalog: AssetCatalog = request.app.state.catalog
    return catalog


async def get_market_data_service(request: Request) -> MarketDataService:
    service: MarketDataService = request.app.state.market_data
    return service


async def get_sentiment_service(request: Request) -> SentimentService:
    service: SentimentService = request.app.state.sentiment_service
    return service


# ---------------------------------------------------------------------------
# Credentials and metering
# ---------------------------------------------------------------------------


async def get_credential(
    request: Request,
    resolver: Annotated[SubscriptionResolver, Depends(get_subscription_resolver)],
) -> Credential | None:
    """The caller's subscription from the bearer token or legacy ``?id=``."""
    return resolver.resolve_credential(
        request.headers.get("Authorization"), request.query_params
    )


async def meter_request(
    response: Response,
    credential: Credential | None,
    limiter: RateLimiter,
    settings: Settings,
    *,
    demo_token: str | None,
) -> RateLimitDecision | None:
    """Quota gate for metered endpoints.

    A matching demo token bypasses the gate and returns ``None``. Otherwise
    the caller needs a credential (401), quota (429) and a live subscription
    (401), in that order; a granted request has its quota headers set on
    *response*.

    Raises:
        AuthError: No credential, or the subscription is inactive.
        QuotaExceededError: The daily allowance is used up.
    """
    if demo_token and demo_token == settings.demo_token:
        logger.info("Demo access granted with valid demo token")
        return None

    if credential is None:
        raise AuthError(MISSING_CREDENTIAL_MESSAGE)

    decision = await limiter.acquire(credential.subscription_id)
    response.headers.update(limiter.headers(decision))
    return decision


def require_subscription(
    credential: Credential | None,
    resolver: SubscriptionResolver,
    *,
    feature: str,
    action_subject: str,
) -> Credential:
    """Unmetered gate for the chart endpoints: any live subscription passes.

    Args:
        feature: What is being accessed, e.g. ``chart data``.
        action_subject: Noun used in the renewal prompt, e.g. ``EOD historical data``.

    Raises:
        AuthError: No credential, or the subscription is inactive.
    """
    if credential is None:
        raise AuthError(
            f"Valid authentication is required for {feature} access. "
            "Please provide a valid JWT token or subscription ID.",
            action=f"Please subscribe or sign in to access {action_subject}",
        )
    if not resolver.is_active(credential.subscription_id):
        raise AuthError(
            "Invalid or inactive subscription",
            action=f"Please renew your subscription to access {action_subject}",
        )
    return credential
