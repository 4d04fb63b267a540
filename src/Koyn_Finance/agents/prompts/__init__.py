"""Versioned prompt templates for the Gemini calls.

Gemini's ``generateContent`` takes plain text parts, so each builder returns
a single string with the instructions first and the request data after.
"""

from Koyn_Finance.agents.prompts.asset_prompt import build_asset_prompt
from Koyn_Finance.agents.prompts.narrative_prompt import (
    ConversationTurn,
    build_narrative_prompt,
    format_price,
)

__all__ = [
    "ConversationTurn",
    "build_asset_prompt",
    "build_narrative_prompt",
    "format_price",
]
