"""Subscription, usage, and rate-limit decision models."""

import datetime

from pydantic import BaseModel, ConfigDict, Field

from Koyn_Finance.models.enums import SubscriptionPlan, SubscriptionStatus

UNLIMITED: int = -1


class Subscription(BaseModel):
    """A billing subscription as read from the external subscription store.

    Field aliases match the camelCase keys written by the billing webhook.
    Unknown plan or status strings are kept verbatim so that a new billing
    tier never crashes the loader; the resolver treats them as ``free``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    email: str = ""
    status: SubscriptionStatus | str = SubscriptionStatus.INACTIVE
    plan: SubscriptionPlan | str = SubscriptionPlan.FREE
    renewal_date: datetime.datetime | None = Field(default=None, alias="renewalDate")
    started_at: datetime.datetime | None = Field(default=None, alias="startedAt")


class UsageRecord(BaseModel):
    """Requests consumed by one subscription on one UTC day."""

    model_config = ConfigDict(frozen=True)

    subscription_id: str
    date: datetime.date
    count: int


class RateLimitDecision(BaseModel):
    """Outcome of a quota check.

    ``limit`` is ``UNLIMITED`` (-1) for plans without a daily cap.
    """

    model_config = ConfigDict(frozen=True)

    allowed: bool
    used: int
    limit: int
    plan: SubscriptionPlan

    @property
    def remaining(self) -> int:
        if self.limit == UNLIMITED:
            return UNLIMITED
        return max(0, self.limit - self.used)


class Credential(BaseModel):
    """Identity extracted from an inbound request."""

    model_config = ConfigDict(frozen=True)

    subscription_id: str
    email: str | None = None
    plan: SubscriptionPlan | None = None
    legacy: bool = False
