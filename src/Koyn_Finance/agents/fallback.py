"""Fixed narrative used when the LLM is unavailable.

The label comes from the lexicon score so the response still carries a
sentiment; the text never mentions the upstream error.
"""

from __future__ import annotations

import logging

from Koyn_Finance.agents.prompts.narrative_prompt import format_price
from Koyn_Finance.models import Asset, Narrative, PriceQuote, SentimentScore

logger = logging.getLogger(__name__)

FALLBACK_SOURCE: str = "fallback"


def build_fallback_narrative(
    asset: Asset,
    quote: PriceQuote,
    sentiment: SentimentScore,
) -> Narrative:
    """Return the "temporarily unavailable" narrative for *asset*."""
    logger.warning("Using fallback narrative for %s", asset.display_symbol)
    text = (
        f"Technical analysis for {asset.name or asset.display_symbol} is temporarily "
        f"unavailable due to API timeout. Current price: ${format_price(quote.value)}. "
        "Please try again later."
    )
    return Narrative(label=sentiment.label, text=text, source=FALLBACK_SOURCE)
