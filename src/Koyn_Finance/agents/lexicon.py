"""Rule-based financial sentiment used as the preliminary (and fallback) label.

Counts whole-word hits from a positive and a negative finance lexicon. An odd
number of negation words swaps the two tallies.
"""

from __future__ import annotations

import re
from typing import Final

from Koyn_Finance.models.analysis import SentimentBreakdown, SentimentScore
from Koyn_Finance.models.enums import SentimentLabel

# ---------------------------------------------------------------------------
# Word lists
# ---------------------------------------------------------------------------

POSITIVE_WORDS: Final[tuple[str, ...]] = (
    "good", "great", "excellent", "positive", "bull", "bullish", "up", "rise", "rising",
    "growth", "profit", "gain", "increase", "increasing", "outperform", "buy", "strong",
    "opportunity", "potential", "upside", "recovery", "rebound", "rally", "boom", "success",
    "successful", "promising", "improve", "improving", "improved", "advantage",
    "advantageous", "optimistic", "optimism", "confident", "confidence", "support",
    "supported", "supporting",
)

NEGATIVE_WORDS: Final[tuple[str, ...]] = (
    "bad", "poor", "negative", "bear", "bearish", "down", "fall", "falling", "decline",
    "declining", "decrease", "decreasing", "loss", "lose", "losing", "underperform", "sell",
    "weak", "weakness", "risk", "risky", "danger", "dangerous", "threat", "threatened",
    "threatening", "struggle", "struggling", "struggled", "concern", "concerned",
    "concerning", "worry", "worried", "worrying", "pessimistic", "pessimism", "doubt",
    "doubtful", "skeptical", "skepticism", "fear", "fearful", "recession", "crash", "crisis",
    "problem", "problematic",
)

NEGATION_WORDS: Final[tuple[str, ...]] = (
    "not", "no", "don't", "doesn't", "didn't", "won't", "wouldn't", "couldn't",
    "shouldn't", "isn't", "aren't", "wasn't", "weren't", "haven't", "hasn't", "hadn't",
    "never",
)

NEUTRAL_CONFIDENCE: Final[float] = 0.5
EMPTY_BREAKDOWN: Final[SentimentBreakdown] = SentimentBreakdown(
    bullish=0.33, neutral=0.34, bearish=0.33
)


def _word_pattern(words: tuple[str, ...]) -> re.Pattern[str]:
    alternation = "|".join(re.escape(word) for word in sorted(words, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternation})\b")


_POSITIVE_RE: Final[re.Pattern[str]] = _word_pattern(POSITIVE_WORDS)
_NEGATIVE_RE: Final[re.Pattern[str]] = _word_pattern(NEGATIVE_WORDS)
_NEGATION_RE: Final[re.Pattern[str]] = _word_pattern(NEGATION_WORDS)


def score_text(text: str) -> SentimentScore:
    """Score one body of text.

    >>> score = score_text("The stock is bullish and strong, not bearish")
    >>> (score.positive, score.negative, score.label.value)
    (1, 2, 'Bearish')
    """
    lowered = text.lower()
    positive = len(_POSITIVE_RE.findall(lowered))
    negative = len(_NEGATIVE_RE.findall(lowered))
    negations = len(_NEGATION_RE.findall(lowered))

    if negations % 2 == 1:
        positive, negative = negative, positive

    if positive > negative:
        label = SentimentLabel.BULLISH
    elif negative > positive:
        label = SentimentLabel.BEARISH
    else:
        label = SentimentLabel.NEUTRAL

    total = positive + negative
    confidence = (
        NEUTRAL_CONFIDENCE + NEUTRAL_CONFIDENCE * abs(positive - negative) / total
        if total
        else NEUTRAL_CONFIDENCE
    )
    word_count = len(lowered.split()) or 1
    breakdown = SentimentBreakdown(
        bullish=positive / (total or 1),
        neutral=max(0.0, 1.0 - total / word_count),
        bearish=negative / (total or 1),
    )
    return SentimentScore(
        label=label,
        confidence=confidence,
        positive=positive,
        negative=negative,
        negations=negations,
        breakdown=breakdown,
    )


def score_texts(texts: list[str]) -> SentimentScore:
    """Score a batch of social posts as one document.

    No posts at all is reported as Neutral with an even breakdown.
    """
    if not texts:
        return SentimentScore(
            label=SentimentLabel.NEUTRAL,
            confidence=NEUTRAL_CONFIDENCE,
            breakdown=EMPTY_BREAKDOWN,
        )
    return score_text(" ".join(texts))
