"""Narrative analyzer: lexicon sentiment plus an LLM-written market analysis.

The lexicon score is computed first and always returned. The LLM narrative
replaces its label when the model answers; when every attempt fails, the
fallback narrative carries the lexicon label instead.
"""

from __future__ import annotations

import logging

from Koyn_Finance.agents._parsing import extract_sentiment_label
from Koyn_Finance.agents.fallback import build_fallback_narrative
from Koyn_Finance.agents.lexicon import score_texts
from Koyn_Finance.agents.llm_client import LLMClient, LLMRequestError
from Koyn_Finance.agents.prompts.narrative_prompt import ConversationTurn, build_narrative_prompt
from Koyn_Finance.models import (
    Asset,
    EnrichmentData,
    Narrative,
    NewsItem,
    PriceQuote,
    SentimentScore,
)
from Koyn_Finance.utils.exceptions import AnalysisDegradedError, DataFetchError

logger = logging.getLogger(__name__)

LLM_SOURCE: str = "llm"


class NarrativeAnalyzer:
    """Produces the sentiment label and narrative text for one asset.

    Usage::

        analyzer = NarrativeAnalyzer(llm)
        score, narrative = await analyzer.analyze(
            question="How is Apple doing?",
            asset=asset,
            quote=quote,
            social_texts=posts,
        )

    Args:
        llm: Gemini client; an unconfigured client goes straight to the fallback.
        timeouts: Per-attempt timeouts passed to the client (tests shorten them).
        retry_delays: Backoff between attempts passed to the client.
    """

    def __init__(
        self,
        llm: LLMClient,
        *,
        timeouts: list[float] | None = None,
        retry_delays: list[float] | None = None,
    ) -> None:
        self._llm = llm
        self._timeouts = timeouts
        self._retry_delays = retry_delays

    async def analyze(
        self,
        *,
        question: str,
        asset: Asset,
        quote: PriceQuote,
        social_texts: list[str],
        news: list[NewsItem] | None = None,
        enrichment: EnrichmentData | None = None,
        conversation: list[ConversationTurn] | None = None,
    ) -> tuple[SentimentScore, Narrative]:
        """Score *social_texts* and ask the LLM for a narrative. Never raises."""
        score = score_texts(social_texts)
        logger.info(
            "Lexicon sentiment for %s: %s (confidence %.2f, %d posts)",
            asset.display_symbol,
            score.label,
            score.confidence,
            len(social_texts),
        )

        prompt = build_narrative_prompt(
            question=question,
            asset=asset,
            quote=quote,
            social_texts=social_texts,
            news=news,
            enrichment=enrichment,
            conversation=conversation,
        )
        try:
            narrative = await self._generate(prompt)
        except AnalysisDegradedError as exc:
            logger.error("Narrative unavailable for %s: %s", asset.display_symbol, exc)
            return score, build_fallback_narrative(asset, quote, score)

        logger.info("LLM narrative for %s labelled %s", asset.display_symbol, narrative.label)
        return score, narrative

    async def _generate(self, prompt: str) -> Narrative:
        if not self._llm.configured:
            raise AnalysisDegradedError("LLM is not configured")
        try:
            response = await self._llm.generate(
                prompt, timeouts=self._timeouts, retry_delays=self._retry_delays
            )
        except (DataFetchError, LLMRequestError) as exc:
            raise AnalysisDegradedError(str(exc)) from exc

        return Narrative(
            label=extract_sentiment_label(response.content),
            text=response.content,
            source=LLM_SOURCE,
            model_used=response.model,
            truncated=response.truncated,
        )
