"""Credential extraction and subscription liveness.

Callers authenticate with an HS256 bearer token issued by the account
service. Tokens carry either a ``subscriptionId`` or, in the older format,
only an ``email`` that is looked up in the subscription store. A bare
``?id=`` query parameter is still honored when no token is present, with a
deprecation warning.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable, Mapping
from typing import Any

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from Koyn_Finance.config import JWT_AUDIENCE, JWT_ISSUER
from Koyn_Finance.data.subscriptions import SubscriptionStore
from Koyn_Finance.models.enums import SubscriptionPlan, SubscriptionStatus
from Koyn_Finance.models.subscription import Credential, Subscription

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "Bearer "
_JWT_ALGORITHMS = ["HS256"]


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value


def _coerce_plan(raw: object) -> SubscriptionPlan | None:
    if raw is None:
        return None
    try:
        return SubscriptionPlan(str(raw).lower())
    except ValueError:
        return None


class SubscriptionResolver:
    """Turn request credentials into a subscription id, plan and liveness.

    Args:
        store: Subscription store to look ids and emails up in.
        jwt_secret: Shared HS256 secret. When unset every bearer token is
            rejected and only the legacy ``id`` parameter works.
        now: Clock returning an aware UTC datetime.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        *,
        jwt_secret: str | None,
        now: Callable[[], datetime.datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._jwt_secret = jwt_secret
        self._now = now
        if not jwt_secret:
            logger.warning("JWT_SECRET is not set; bearer tokens will be rejected")

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def verify_token(self, token: str) -> dict[str, Any] | None:
        """Verify signature, issuer, audience and expiry. None when invalid."""
        if not self._jwt_secret:
            return None
        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                self._jwt_secret,
                algorithms=_JWT_ALGORITHMS,
                issuer=JWT_ISSUER,
                audience=JWT_AUDIENCE,
            )
        except ExpiredSignatureError:
            logger.info("Rejected expired access token")
            return None
        except InvalidTokenError as exc:
            logger.info("Rejected invalid access token: %s", exc)
            return None
        return claims

    def resolve_credential(
        self,
        authorization: str | None,
        query_params: Mapping[str, str],
    ) -> Credential | None:
        """Extract the caller's subscription from a request.

        Tries the bearer token first. A valid token without a
        ``subscriptionId`` falls back to an email lookup that only accepts an
        active subscription. The legacy ``id`` parameter is consulted only
        when no bearer token produced an identity.
        """
        if authorization and authorization.startswith(_BEARER_PREFIX):
            token = authorization[len(_BEARER_PREFIX) :].strip()
            claims = self.verify_token(token) if token else None
            if claims is not None:
                credential = self._credential_from_claims(claims)
                if credential is not None:
                    return credential

        legacy_id = query_params.get("id")
        if legacy_id:
            logger.warning("Deprecated ?id= authentication used for subscription %s", legacy_id)
            return Credential(subscription_id=legacy_id, legacy=True)

        logger.debug("No credential found on request")
        return None

    def _credential_from_claims(self, claims: Mapping[str, Any]) -> Credential | None:
        email = claims.get("email")
        subscription_id = claims.get("subscriptionId")
        if subscription_id:
            return Credential(
                subscription_id=str(subscription_id),
                email=str(email) if email else None,
                plan=self._reconcile_plan(str(subscription_id), claims.get("plan")),
            )

        if not email:
            logger.info("Access token carries neither subscriptionId nor email")
            return None

        for subscription in self._store.find_by_email(str(email)):
            if subscription.status == SubscriptionStatus.ACTIVE:
                logger.info("Resolved subscription %s by token email", subscription.id)
                return Credential(
                    subscription_id=subscription.id,
                    email=str(email),
                    plan=_coerce_plan(subscription.plan),
                )
        logger.info("No active subscription for token email %s", email)
        return None

    def _reconcile_plan(self, subscription_id: str, claimed: object) -> SubscriptionPlan | None:
        """The stored plan wins over the token's ``plan`` claim; a mismatch is logged."""
        claimed_plan = _coerce_plan(claimed)
        subscription = self._store.get(subscription_id)
        if subscription is None:
            return claimed_plan
        stored_plan = _coerce_plan(subscription.plan)
        if claimed is not None and claimed_plan != stored_plan:
            logger.warning(
                "Token plan %s for subscription %s differs from stored plan %s; using stored plan",
                claimed,
                subscription_id,
                subscription.plan,
            )
        return stored_plan

    # ------------------------------------------------------------------
    # Plan and liveness
    # ------------------------------------------------------------------

    def get(self, subscription_id: str) -> Subscription | None:
        return self._store.get(subscription_id)

    def plan_for(self, subscription_id: str) -> SubscriptionPlan | str:
        """Return the billing plan, or ``free`` when the subscription is not live.

        Unknown plan strings are returned as-is; the rate limiter maps them to
        the free allowance.
        """
        subscription = self._store.get(subscription_id)
        if subscription is None:
            logger.debug("No subscription %s, using free plan", subscription_id)
            return SubscriptionPlan.FREE
        if subscription.status != SubscriptionStatus.ACTIVE:
            logger.debug(
                "Subscription %s is %s, using free plan", subscription_id, subscription.status
            )
            return SubscriptionPlan.FREE
        renewal = subscription.renewal_date
        if renewal is not None and _as_utc(renewal) <= self._now():
            logger.info("Subscription %s expired on %s", subscription_id, renewal)
            return SubscriptionPlan.FREE
        return _coerce_plan(subscription.plan) or str(subscription.plan)

    def is_active(self, subscription_id: str) -> bool:
        """``active`` status, or any status but ``inactive`` with a future renewal date."""
        subscription = self._store.get(subscription_id)
        if subscription is None:
            return False
        if subscription.status == SubscriptionStatus.ACTIVE:
            return True
        if subscription.status == SubscriptionStatus.INACTIVE:
            return False
        return (
            subscription.renewal_date is not None
            and _as_utc(subscription.renewal_date) > self._now()
        )

    def has_access(self, email: str, subscription_id: str) -> bool:
        """True when *subscription_id* belongs to *email* and is live."""
        subscription = self._store.get(subscription_id)
        if subscription is None or subscription.email.lower() != email.strip().lower():
            return False
        return self.is_active(subscription_id)
