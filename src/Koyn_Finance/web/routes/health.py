"""Health route.

GET /api/health: Liveness check plus which upstream keys are configured.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from Koyn_Finance.config import Settings
from Koyn_Finance.web.deps import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    settings: Annotated[Settings, Depends(get_settings)],
) -> dict[str, object]:
    return {
        "status": "ok",
        "upstreams": {
            "fmp": settings.fmp_api_key is not None,
            "gemini": settings.gemini_api_key is not None,
            "xai": settings.xai_api_key is not None,
        },
    }
