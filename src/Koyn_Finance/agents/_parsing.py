"""Defensive parsing of free-form LLM output.

Models wrap JSON in markdown fences, prefix it with chatter, or forget it
entirely. Every helper here returns ``None`` (or a neutral default) instead of
raising, so a bad completion is just another failed tier.

This is a private module, not exported from ``agents/__init__.py``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict

from Koyn_Finance.models.enums import AssetClass, SentimentLabel

logger = logging.getLogger(__name__)

# Regex to strip markdown JSON fences the LLM sometimes wraps around output.
_JSON_FENCE_RE: re.Pattern[str] = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.DOTALL)
_JSON_OBJECT_RE: re.Pattern[str] = re.compile(r"\{[\s\S]*\}")
_LABEL_RE: re.Pattern[str] = re.compile(r"\b(bullish|bearish|neutral)\b", re.IGNORECASE)
_SYMBOL_RE: re.Pattern[str] = re.compile(r"^[A-Za-z0-9.^/\-]{1,15}$")

ASSET_SCHEMA_HINT: str = '{"symbol": "AAPL", "name": "Apple Inc.", "type": "stock"}'

# Extra spellings the model uses for asset types
_TYPE_ALIASES: dict[str, AssetClass] = {
    "equity": AssetClass.STOCK,
    "etf": AssetClass.STOCK,
    "cryptocurrency": AssetClass.CRYPTO,
    "currency": AssetClass.FOREX,
    "fx": AssetClass.FOREX,
    "token": AssetClass.ONCHAIN_TOKEN,
}


class ParsedAsset(BaseModel):
    """An asset guess extracted from an LLM completion."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    name: str
    asset_class: AssetClass


def extract_json(text: str) -> dict[str, Any] | None:
    """Return the first JSON object found in *text*, or ``None``.

    Tries, in order: a fenced block, the whole string, then the widest
    ``{...}`` span.
    """
    if not text:
        return None

    candidates: list[str] = []
    fence = _JSON_FENCE_RE.search(text)
    if fence:
        candidates.append(fence.group(1).strip())
    candidates.append(text.strip())
    span = _JSON_OBJECT_RE.search(text)
    if span:
        candidates.append(span.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    logger.debug("No JSON object found in LLM output (%d chars)", len(text))
    return None


def _coerce_asset_class(raw: object) -> AssetClass:
    value = str(raw or "").strip().lower()
    try:
        return AssetClass(value)
    except ValueError:
        return _TYPE_ALIASES.get(value, AssetClass.STOCK)


def parse_asset_guess(text: str) -> ParsedAsset | None:
    """Parse a ``{symbol, name, type}`` completion.

    A missing, empty, or implausible symbol counts as no answer. Unknown
    types default to ``stock``.
    """
    data = extract_json(text)
    if data is None:
        return None

    symbol = str(data.get("symbol") or "").strip().lstrip("$").upper()
    if not symbol or not _SYMBOL_RE.match(symbol):
        logger.info("LLM asset guess had no usable symbol: %r", data.get("symbol"))
        return None

    name = str(data.get("name") or symbol).strip() or symbol
    return ParsedAsset(symbol=symbol, name=name, asset_class=_coerce_asset_class(data.get("type")))


def extract_sentiment_label(text: str) -> SentimentLabel:
    """First bullish/bearish/neutral word in *text*; Neutral when none appears."""
    match = _LABEL_RE.search(text or "")
    if match is None:
        return SentimentLabel.NEUTRAL
    return SentimentLabel(match.group(1).capitalize())
