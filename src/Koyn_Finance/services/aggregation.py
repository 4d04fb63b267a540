"""Sentiment aggregation: one question in, one analysed asset out.

Pipeline for ``POST /api/sentiment``:

1. Pick the asset (explicit symbol, resolver, or Bitcoin).
2. Fetch quote, series, news, fundamentals and social posts concurrently.
3. Reconcile: a synthetic series is regenerated to end on the quote, and a
   crypto quote more than 5% away from the last series point is replaced
   by that point.
4. Run the narrative analyzer.

No step after authentication raises; every failure degrades to synthetic
data or the fallback narrative and the response still carries HTTP 200.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import uuid
from decimal import Decimal
from typing import Any, Final

from Koyn_Finance.agents.narrative import NarrativeAnalyzer
from Koyn_Finance.agents.prompts import ConversationTurn
from Koyn_Finance.models import (
    AnalysisResult,
    Asset,
    AssetClass,
    EnrichmentData,
    NewsItem,
    PriceQuote,
    PriceSeries,
    PriceSource,
)
from Koyn_Finance.services.asset_resolver import AssetResolver
from Koyn_Finance.services.charts import sentiment_chart
from Koyn_Finance.services.market_data import MarketDataService
from Koyn_Finance.services.news import NewsService
from Koyn_Finance.services.social import SocialSearchClient

logger = logging.getLogger(__name__)

CRYPTO_DIVERGENCE_LIMIT: Final[Decimal] = Decimal("0.05")


def reconcile_crypto_quote(quote: PriceQuote, series: PriceSeries) -> PriceQuote:
    """Replace *quote* with the series' last point when they disagree by more than 5%."""
    last = series.last_value
    if last <= 0:
        return quote
    divergence = abs(quote.value - last) / last
    if divergence <= CRYPTO_DIVERGENCE_LIMIT:
        return quote
    logger.warning(
        "Quote %s for %s diverges %.1f%% from series close %s, using series close",
        quote.value,
        quote.symbol,
        float(divergence) * 100,
        last,
    )
    return quote.model_copy(update={"value": last, "source": series.source})


def price_change_percentage(result: AnalysisResult) -> float:
    """24h change from the asset, else the quote, else the last two series points."""
    if result.asset.price_change_24h is not None:
        return result.asset.price_change_24h
    if result.price_quote.change_pct is not None:
        return result.price_quote.change_pct
    values = result.price_series.values
    previous, latest = values[-2], values[-1]
    return (latest - previous) / previous * 100 if previous else 0.0


class SentimentService:
    """Runs the sentiment pipeline for one question.

    Usage::

        service = SentimentService(resolver, market_data, news, social, analyzer)
        result = await service.analyze("What's the outlook for Tesla?")
        body = sentiment_response("What's the outlook for Tesla?", result)
    """

    def __init__(
        self,
        resolver: AssetResolver,
        market_data: MarketDataService,
        news: NewsService,
        social: SocialSearchClient,
        analyzer: NarrativeAnalyzer,
    ) -> None:
        self._resolver = resolver
        self._market_data = market_data
        self._news = news
        self._social = social
        self._analyzer = analyzer

    async def pick_asset(self, question: str, explicit_symbol: str | None = None) -> Asset:
        if explicit_symbol and explicit_symbol.strip():
            return self._resolver.explicit(explicit_symbol)
        asset = await self._resolver.resolve(question, enrich=False)
        if asset is None:
            logger.info("No asset found in question, defaulting to Bitcoin")
            return self._resolver.default()
        return asset

    async def analyze(
        self,
        question: str,
        *,
        explicit_symbol: str | None = None,
        conversation: list[ConversationTurn] | None = None,
    ) -> AnalysisResult:
        asset = await self.pick_asset(question, explicit_symbol)

        results = await asyncio.gather(
            self._market_data.fetch_quote(asset),
            self._market_data.fetch_series(asset),
            self._news.fetch_news(asset),
            self._market_data.fetch_enrichment(asset),
            self._social.fetch_posts(asset),
            return_exceptions=True,
        )
        quote_result, series_result, news_result, enrichment_result, social_result = results

        if isinstance(quote_result, BaseException):
            logger.error("Quote failed for %s: %s", asset.display_symbol, quote_result)
            quote = self._market_data.default_quote(asset)
        else:
            quote = quote_result

        if isinstance(series_result, BaseException):
            logger.error("Series failed for %s: %s", asset.display_symbol, series_result)
            series = self._market_data.synthetic_series(asset, quote.value)
        elif series_result.source == PriceSource.SYNTHETIC:
            series = self._market_data.synthetic_series(asset, quote.value)
        else:
            series = series_result

        if asset.asset_class == AssetClass.CRYPTO and series.source != PriceSource.SYNTHETIC:
            quote = reconcile_crypto_quote(quote, series)

        news: list[NewsItem] = [] if isinstance(news_result, BaseException) else news_result
        enrichment = (
            EnrichmentData() if isinstance(enrichment_result, BaseException) else enrichment_result
        )
        social_texts: list[str] = (
            [] if isinstance(social_result, BaseException) else social_result
        )
        for name, outcome in (
            ("news", news_result),
            ("enrichment", enrichment_result),
            ("social", social_result),
        ):
            if isinstance(outcome, BaseException):
                logger.warning("%s failed for %s: %s", name, asset.display_symbol, outcome)

        sentiment, narrative = await self._analyzer.analyze(
            question=question,
            asset=asset,
            quote=quote,
            social_texts=social_texts,
            news=news,
            enrichment=enrichment,
            conversation=conversation,
        )

        result = AnalysisResult(
            asset=asset,
            price_quote=quote,
            price_series=series,
            sentiment=sentiment,
            narrative=narrative,
            news=news,
        )
        quality = result.data_quality
        logger.info(
            "Sentiment for %s: %s (price %s, series %s, narrative %s)",
            asset.display_symbol,
            result.sentiment_label,
            quality.price_source,
            quality.series_source,
            quality.narrative_source,
        )
        return result


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


def asset_payload(asset: Asset, price: float) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": asset.name,
        "symbol": asset.display_symbol,
        "type": asset.asset_class.value,
        "price": price,
    }
    onchain = asset.onchain
    if onchain is not None:
        payload.update(
            {
                "priceUsd": price,
                "priceChange24h": asset.price_change_24h,
                "volume24h": onchain.volume_24h,
                "liquidity": onchain.liquidity_usd,
                "marketCap": onchain.market_cap,
                "contractAddress": onchain.contract_address,
                "chain": onchain.chain,
                "safetyScore": onchain.safety_score,
                "dexInfo": {
                    "dexId": onchain.dex_id,
                    "pairAddress": onchain.pair_address,
                    "chainId": onchain.chain_id,
                    "url": onchain.url,
                },
            }
        )
    return payload


def news_payload(item: NewsItem) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "title": item.title,
        "url": item.url,
        "source": item.source,
        "description": item.description or "No description available.",
        "publishedDate": item.published_at,
    }
    if item.cached:
        payload["cached"] = True
        payload["cacheAge"] = item.cache_age
    if item.fallback:
        payload["fallback"] = True
    return payload


def sentiment_response(question: str, result: AnalysisResult) -> dict[str, Any]:
    """JSON body for ``POST /api/sentiment``."""
    price = float(result.price_quote.value)
    return {
        "question": question,
        "results": [
            {
                "asset": asset_payload(result.asset, price),
                "asset_price": price,
                "chart": sentiment_chart(result.asset, result.price_series),
                "social_sentiment": result.sentiment_label.value,
                "analysis": result.narrative_text,
                "price_change_percentage": price_change_percentage(result),
                "data_quality": result.data_quality.model_dump(),
                "actions": {
                    "can_save": True,
                    "can_share": True,
                    "result_id": str(uuid.uuid4()),
                    "saved": False,
                },
            }
        ],
        "news": [news_payload(item) for item in result.news],
        "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
    }
