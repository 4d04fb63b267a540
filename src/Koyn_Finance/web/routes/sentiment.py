"""Sentiment API route.

POST /api/sentiment: Resolve the asset in a question and return price,
                     chart, social sentiment, narrative and news.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ConfigDict, Field

from Koyn_Finance.agents.prompts import ConversationTurn
from Koyn_Finance.config import Settings
from Koyn_Finance.models import Credential
from Koyn_Finance.services.aggregation import SentimentService, sentiment_response
from Koyn_Finance.services.rate_limiter import RateLimiter
from Koyn_Finance.web.deps import (
    get_credential,
    get_rate_limiter,
    get_sentiment_service,
    get_settings,
    meter_request,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sentiment"])

DEFAULT_QUESTION = "Is now a good time to buy crypto?"


class SentimentRequest(BaseModel):
    """Body of ``POST /api/sentiment``."""

    model_config = ConfigDict(frozen=True)

    question: str = Field(default=DEFAULT_QUESTION)
    demo_token: str | None = None
    asset: str | None = Field(default=None, description="Explicit symbol, analysed as a stock")
    context: list[ConversationTurn] = Field(default_factory=list)


@router.post("/sentiment")
async def post_sentiment(
    body: SentimentRequest,
    response: Response,
    credential: Annotated[Credential | None, Depends(get_credential)],
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    settings: Annotated[Settings, Depends(get_settings)],
    service: Annotated[SentimentService, Depends(get_sentiment_service)],
) -> dict[str, Any]:
    """Analyse the asset named in ``question``.

    Only authentication and quota failures produce a non-200 status; upstream
    failures degrade to synthetic data, reported in ``data_quality``.
    """
    await meter_request(response, credential, limiter, settings, demo_token=body.demo_token)

    question = body.question.strip() or DEFAULT_QUESTION
    result = await service.analyze(
        question,
        explicit_symbol=body.asset,
        conversation=body.context,
    )
    return sentiment_response(question, result)
