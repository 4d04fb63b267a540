"""Subscription access check for the frontend gate.

GET /api/user/access: Whether the caller's subscription is live and
                      belongs to the given email. Does not consume quota.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from Koyn_Finance.models import Credential
from Koyn_Finance.services.subscriptions import SubscriptionResolver
from Koyn_Finance.web.deps import get_credential, get_subscription_resolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])


class AccessStatus(BaseModel):
    """Subscription gate answer for the frontend."""

    model_config = ConfigDict(frozen=True)

    has_access: bool
    is_subscribed: bool
    is_active: bool
    subscription_id: str
    email: str | None = None

    def to_wire(self) -> dict[str, object]:
        return {
            "hasAccess": self.has_access,
            "isSubscribed": self.is_subscribed,
            "isActive": self.is_active,
            "subscriptionId": self.subscription_id,
            "email": self.email,
        }


@router.get("/access", response_model=None)
async def get_access(
    request: Request,
    credential: Annotated[Credential | None, Depends(get_credential)],
    subscriptions: Annotated[SubscriptionResolver, Depends(get_subscription_resolver)],
    email: str | None = None,
) -> JSONResponse | dict[str, object]:
    """``hasAccess`` requires a live subscription owned by ``email``."""
    if credential is None:
        return JSONResponse(
            status_code=401,
            content={
                "error": "No subscription ID provided",
                "hasAccess": False,
                "isSubscribed": False,
            },
        )

    user_email = email or request.headers.get("x-user-email") or credential.email
    is_active = subscriptions.is_active(credential.subscription_id)
    is_subscribed = bool(user_email) and subscriptions.has_access(
        str(user_email), credential.subscription_id
    )
    status = AccessStatus(
        has_access=is_active and is_subscribed,
        is_subscribed=is_subscribed,
        is_active=is_active,
        subscription_id=credential.subscription_id,
        email=user_email,
    )
    logger.info(
        "Access check for %s: active=%s subscribed=%s",
        credential.subscription_id,
        is_active,
        is_subscribed,
    )
    return status.to_wire()
