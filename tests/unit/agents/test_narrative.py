"""Tests for NarrativeAnalyzer: LLM narrative with lexicon fallback."""

from unittest.mock import AsyncMock

import pytest

from Koyn_Finance.agents.llm_client import LLMClient, LLMRequestError, LLMResponse
from Koyn_Finance.agents.narrative import NarrativeAnalyzer
from Koyn_Finance.models import Asset, PriceQuote, SentimentLabel
from Koyn_Finance.utils.exceptions import UpstreamUnavailableError

POSTS = ["AAPL looking strong ahead of earnings", "great quarter, buy the dip"]


@pytest.fixture()
def llm() -> AsyncMock:
    mock = AsyncMock(spec=LLMClient)
    mock.configured = True
    return mock


class TestNarrativeAnalyzer:
    @pytest.mark.asyncio()
    async def test_llm_label_and_text(
        self, llm: AsyncMock, stock_asset: Asset, sample_quote: PriceQuote
    ) -> None:
        llm.generate.return_value = LLMResponse(
            content="## Key Support Levels:\n- $180\n\nSentiment: Bearish near term.",
            model="gemini-1.5-pro",
        )
        analyzer = NarrativeAnalyzer(llm, timeouts=[1.0], retry_delays=[])

        score, narrative = await analyzer.analyze(
            question="How is Apple doing?",
            asset=stock_asset,
            quote=sample_quote,
            social_texts=POSTS,
        )

        assert score.label == SentimentLabel.BULLISH
        assert narrative.label == SentimentLabel.BEARISH
        assert narrative.source == "llm"
        assert narrative.model_used == "gemini-1.5-pro"
        assert narrative.text.startswith("## Key Support Levels:")
        _, kwargs = llm.generate.call_args
        assert kwargs == {"timeouts": [1.0], "retry_delays": []}

    @pytest.mark.asyncio()
    async def test_truncation_flag_carried(
        self, llm: AsyncMock, stock_asset: Asset, sample_quote: PriceQuote
    ) -> None:
        llm.generate.return_value = LLMResponse(content="Partial", model="m", truncated=True)
        _, narrative = await NarrativeAnalyzer(llm).analyze(
            question="q", asset=stock_asset, quote=sample_quote, social_texts=[]
        )
        assert narrative.truncated is True
        assert narrative.label == SentimentLabel.NEUTRAL

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        "error",
        [
            UpstreamUnavailableError("down", symbol="", source="gemini"),
            LLMRequestError("bad key", status_code=403),
        ],
    )
    async def test_llm_failure_uses_lexicon_label(
        self,
        llm: AsyncMock,
        stock_asset: Asset,
        sample_quote: PriceQuote,
        error: Exception,
    ) -> None:
        llm.generate.side_effect = error
        score, narrative = await NarrativeAnalyzer(llm).analyze(
            question="q", asset=stock_asset, quote=sample_quote, social_texts=POSTS
        )
        assert narrative.source == "fallback"
        assert narrative.label == score.label == SentimentLabel.BULLISH
        assert "temporarily unavailable" in narrative.text

    @pytest.mark.asyncio()
    async def test_unconfigured_llm_not_called(
        self, llm: AsyncMock, stock_asset: Asset, sample_quote: PriceQuote
    ) -> None:
        llm.configured = False
        _, narrative = await NarrativeAnalyzer(llm).analyze(
            question="q", asset=stock_asset, quote=sample_quote, social_texts=[]
        )
        assert narrative.source == "fallback"
        assert narrative.label == SentimentLabel.NEUTRAL
        llm.generate.assert_not_awaited()
