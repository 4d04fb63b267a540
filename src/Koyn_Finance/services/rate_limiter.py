"""Daily request quota per subscription plan.

The limiter owns the plan table and delegates counting to the UsageLedger.
``check`` is a read-only decision; ``acquire`` performs the full gate used by
the HTTP layer, consuming one unit only when the request is let through.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Final

from Koyn_Finance.models.enums import SubscriptionPlan
from Koyn_Finance.models.subscription import UNLIMITED, RateLimitDecision
from Koyn_Finance.services.subscriptions import SubscriptionResolver
from Koyn_Finance.services.usage_ledger import UsageLedger
from Koyn_Finance.utils.exceptions import AuthError, QuotaExceededError

logger = logging.getLogger(__name__)

RESET_DESCRIPTION: Final[str] = "Daily at midnight UTC"


class RateLimiter:
    """Plan-aware allow/deny gate.

    Usage::

        limiter = RateLimiter(ledger, resolver, plan_limits={"free": 1, "monthly": 10})

        decision = await limiter.check("sub_123")   # does not consume
        decision = await limiter.acquire("sub_123") # consumes or raises
        response.headers.update(limiter.headers(decision))
    """

    def __init__(
        self,
        ledger: UsageLedger,
        resolver: SubscriptionResolver,
        *,
        plan_limits: Mapping[str, int],
    ) -> None:
        self._ledger = ledger
        self._resolver = resolver
        self._plan_limits = dict(plan_limits)
        self._plan_limits[SubscriptionPlan.UNLIMITED.value] = UNLIMITED

        logger.info("RateLimiter initialized: limits=%s", self._plan_limits)

    def limit_for(self, plan: SubscriptionPlan | str) -> int:
        """Daily allowance for *plan*; unknown plans get the free allowance."""
        key = plan.value if isinstance(plan, SubscriptionPlan) else str(plan).lower()
        limit = self._plan_limits.get(key)
        if limit is None:
            logger.warning("Unknown plan %r, applying free limit", plan)
            return self._plan_limits.get(SubscriptionPlan.FREE.value, 0)
        return limit

    async def check(self, subscription_id: str) -> RateLimitDecision:
        """Return the current decision without consuming anything."""
        raw_plan = self._resolver.plan_for(subscription_id)
        limit = self.limit_for(raw_plan)
        used = await self._ledger.get_today_count(subscription_id)
        return RateLimitDecision(
            allowed=limit == UNLIMITED or used < limit,
            used=used,
            limit=limit,
            plan=raw_plan if isinstance(raw_plan, SubscriptionPlan) else SubscriptionPlan.FREE,
        )

    async def acquire(self, subscription_id: str) -> RateLimitDecision:
        """Run the full gate for one request.

        Order: quota first (429), then liveness (401), then consume. The
        consume step re-checks the allowance under the ledger lock, so a
        concurrent request that took the last unit still yields a 429.

        Raises:
            QuotaExceededError: The plan's daily allowance is used up.
            AuthError: The subscription is not active.
        """
        decision = await self.check(subscription_id)
        if not decision.allowed:
            logger.info(
                "Rate limit exceeded for %s: %d/%d (plan: %s)",
                subscription_id,
                decision.used,
                decision.limit,
                decision.plan,
            )
            raise QuotaExceededError(
                used=decision.used, limit=decision.limit, plan=decision.plan.value
            )

        if not self._resolver.is_active(subscription_id):
            logger.info("Inactive subscription attempted API access: %s", subscription_id)
            raise AuthError(
                "Invalid or inactive subscription",
                action="Please renew your subscription to access this feature",
            )

        allowed, used = await self._ledger.try_consume(subscription_id, decision.limit)
        if not allowed:
            raise QuotaExceededError(used=used, limit=decision.limit, plan=decision.plan.value)

        logger.info(
            "API access granted for %s: %d/%s (plan: %s)",
            subscription_id,
            used,
            "unlimited" if decision.limit == UNLIMITED else decision.limit,
            decision.plan,
        )
        return decision.model_copy(update={"used": used})

    @staticmethod
    def headers(decision: RateLimitDecision) -> dict[str, str]:
        """Quota headers for a granted request; unlimited plans report -1."""
        return {
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": str(decision.remaining),
            "X-RateLimit-Used": str(decision.used),
            "X-RateLimit-Plan": decision.plan.value,
            "X-RateLimit-Reset": RESET_DESCRIPTION,
        }
