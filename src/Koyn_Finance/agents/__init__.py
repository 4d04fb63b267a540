"""LLM-backed analysis: asset detection parsing and the market narrative."""

from Koyn_Finance.agents.fallback import build_fallback_narrative
from Koyn_Finance.agents.lexicon import score_text, score_texts
from Koyn_Finance.agents.llm_client import DEFAULT_MODEL, LLMClient, LLMResponse
from Koyn_Finance.agents.narrative import NarrativeAnalyzer
from Koyn_Finance.agents.prompts import ConversationTurn

__all__ = [
    "DEFAULT_MODEL",
    "ConversationTurn",
    "LLMClient",
    "LLMResponse",
    "NarrativeAnalyzer",
    "build_fallback_narrative",
    "score_text",
    "score_texts",
]
