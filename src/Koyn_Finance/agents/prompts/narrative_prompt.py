"""Narrative prompt builder for the market analysis LLM call.

Gemini takes a single text part, so the system instructions and the user
content are joined into one string. Every section after the price line is
optional and omitted when its data is missing.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Final

from pydantic import BaseModel, ConfigDict

from Koyn_Finance.models.analysis import EnrichmentData
from Koyn_Finance.models.asset import Asset
from Koyn_Finance.models.market_data import NewsItem, PriceQuote

PROMPT_VERSION: Final[str] = "v1.0"

MAX_SOCIAL_SNIPPETS: Final[int] = 10
MAX_SOCIAL_CHARS: Final[int] = 2000
MAX_CONVERSATION_TURNS: Final[int] = 6
MAX_NEWS_HEADLINES: Final[int] = 5
MAX_INSIDER_TRADES: Final[int] = 5


class ConversationTurn(BaseModel):
    """One prior exchange in the user's chat session."""

    model_config = ConfigDict(frozen=True)

    role: str
    content: str


# ---------------------------------------------------------------------------
# System prompt
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT: Final[str] = f"""\
# VERSION: {PROMPT_VERSION}

## Role
You are a seasoned professional trader and technical analyst with 20+ years \
of market experience. Provide sophisticated but CONCISE technical analysis \
that would be valuable to advanced traders.

## Prices
- Treat the current price data provided as accurate market conditions.
- Do not label legitimate market prices as "hypothetical" or "unrealistic" \
unless there is clear evidence of a data error.
- Cryptocurrency ETFs trade far below the underlying coin. When analyzing a \
crypto asset, state whether the price is the ETF or the coin itself.

## Formatting
- Use clear section headers (e.g. "## Key Support Levels:").
- Separate topics with blank lines; use bullet points where helpful.
- Keep the analysis compact and focused on the most critical points.

## Steps
1. Analyze any social media posts included below and state whether market \
sentiment is Bullish, Bearish, or Neutral.
2. Examine current price action, trend, support/resistance levels, and key \
technical indicators.
3. For stocks, analyze any insider trading activity.
4. Identify potential entry/exit points with specific price targets.
5. Include both bullish and bearish scenarios.
6. Conclude with actionable insights for traders.

Tag news sources when referenced, e.g. [Bloomberg], [Reuters].
"""

_SOURCES_FOOTER: Final[str] = (
    "Reference these news sources in your analysis where relevant: Barron's, "
    "Investor's Business Daily, MarketWatch, Bloomberg, CNBC, Wall Street Journal, "
    "Financial Times, Reuters, CoinDesk, and CoinTelegraph. Tag each source "
    "appropriately in your response."
)


# ---------------------------------------------------------------------------
# Section formatters
# ---------------------------------------------------------------------------


def _number(value: Any, digits: int = 2) -> str:
    try:
        return f"{float(value):,.{digits}f}"
    except (TypeError, ValueError):
        return "N/A"


def format_price(value: Decimal) -> str:
    """Human price: two decimals above 1, up to eight significant below."""
    if abs(value) >= 1:
        return f"{value:,.2f}"
    return f"{value:.8f}".rstrip("0").rstrip(".") or "0"


def _social_section(asset: Asset, social_texts: list[str]) -> str:
    if not social_texts:
        return ""
    samples = "\n\n".join(social_texts[:MAX_SOCIAL_SNIPPETS])[:MAX_SOCIAL_CHARS]
    return (
        f"\n\nHere are some social media posts about {asset.name} for sentiment analysis "
        f"(determine if Bullish, Bearish, or Neutral):\n{samples}"
    )


def _conversation_section(turns: list[ConversationTurn]) -> str:
    if not turns:
        return ""
    recent = turns[-MAX_CONVERSATION_TURNS:]
    lines = [f"{turn.role.capitalize()}: {turn.content.strip()}" for turn in recent]
    return "\n\nRecent conversation:\n" + "\n".join(lines)


def _news_section(news: list[NewsItem]) -> str:
    if not news:
        return ""
    lines = [f"- {item.title} [{item.source}]" for item in news[:MAX_NEWS_HEADLINES]]
    section = "\n\nRecent news:\n" + "\n".join(lines)
    cached_ages = [item.cache_age for item in news if item.cached and item.cache_age is not None]
    if cached_ages:
        section += f"\n(Note: Using cached news data from {max(cached_ages) // 60} minutes ago)"
    return section


def _enrichment_section(enrichment: EnrichmentData | None) -> str:
    """Fundamentals block; each sub-section appears only when its data exists."""
    if enrichment is None or enrichment.is_empty:
        return ""

    lines: list[str] = []
    estimates = enrichment.analyst_estimates
    if estimates:
        lines.append("Analyst Estimates:")
        eps = estimates.get("epsAvg", estimates.get("estimatedEPS"))
        revenue = estimates.get("revenueAvg", estimates.get("estimatedRevenueAvg"))
        if eps is not None:
            lines.append(f"- Estimated EPS: ${_number(eps)}")
        if revenue is not None:
            lines.append(f"- Estimated Revenue: ${_number(float(revenue) / 1_000_000)} million")

    target = enrichment.price_target
    if target:
        consensus = target.get("targetConsensus", target.get("priceTarget"))
        high, low = _number(target.get("targetHigh")), _number(target.get("targetLow"))
        lines.append("Price Target:")
        lines.append(f"- Target: ${_number(consensus)}")
        lines.append(f"- High: ${high}, Low: ${low}")

    rating = enrichment.rating
    if rating:
        lines.append("Stock Rating:")
        lines.append(
            f"- Overall Rating: {rating.get('rating', 'N/A')} "
            f"(Score: {rating.get('overallScore', rating.get('ratingScore', 'N/A'))})"
        )

    metrics = enrichment.key_metrics or {}
    ratios = enrichment.ratios or {}
    metric_lines = [
        (label, value)
        for label, value in (
            ("P/E Ratio", ratios.get("priceToEarningsRatio", metrics.get("peRatio"))),
            ("P/B Ratio", ratios.get("priceToBookRatio", metrics.get("pbRatio"))),
            ("Debt to Equity", ratios.get("debtToEquityRatio", metrics.get("debtToEquity"))),
        )
        if value is not None
    ]
    roe = metrics.get("returnOnEquity")
    if metric_lines or roe is not None:
        lines.append("Key Metrics:")
        lines.extend(f"- {label}: {_number(value)}" for label, value in metric_lines)
        if roe is not None:
            lines.append(f"- ROE: {_number(float(roe) * 100)}%")

    if enrichment.peers:
        lines.append("Peer Companies:")
        lines.append(f"- {', '.join(enrichment.peers)}")

    if enrichment.insider_trades:
        lines.append("Recent Insider Trading:")
        for trade in enrichment.insider_trades[:MAX_INSIDER_TRADES]:
            lines.append(
                f"- {str(trade.get('transactionDate', ''))[:10]}: "
                f"{trade.get('reportingName', 'Insider')} ({trade.get('typeOfOwner', 'Unknown')}) "
                f"{trade.get('transactionType', 'Unknown')} "
                f"{trade.get('securitiesTransacted', 0)} shares at ${_number(trade.get('price'))}"
            )

    return "\n\n" + "\n".join(lines) if lines else ""


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def build_narrative_prompt(
    *,
    question: str,
    asset: Asset,
    quote: PriceQuote,
    social_texts: list[str],
    news: list[NewsItem] | None = None,
    enrichment: EnrichmentData | None = None,
    conversation: list[ConversationTurn] | None = None,
) -> str:
    """Build the full narrative prompt text.

    Parameters
    ----------
    question:
        The user's question, verbatim.
    social_texts:
        Social posts; at most 10 are used, capped at 2000 characters total.
    conversation:
        Earlier turns of the chat session; only the most recent few are kept.

    Returns
    -------
    str
        System instructions followed by the user content.
    """
    user_prompt = (
        f"{question}\n\n{asset.name} is currently priced at ${format_price(quote.value)}."
        + _social_section(asset, social_texts)
        + _news_section(news or [])
        + _conversation_section(conversation or [])
        + _enrichment_section(enrichment)
        + "\n\n"
        + _SOURCES_FOOTER
    )
    return f"{_SYSTEM_PROMPT}\n\n{user_prompt}"
