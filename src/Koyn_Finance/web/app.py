"""FastAPI app factory and lifespan wiring.

Every long-lived object (database, upstream clients, ledger, resolvers) is
built once in ``lifespan`` and stored on ``app.state``; ``web.deps`` hands
them to route handlers.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator

from fastapi import FastAPI

from Koyn_Finance.agents.llm_client import LLMClient
from Koyn_Finance.agents.narrative import NarrativeAnalyzer
from Koyn_Finance.config import Settings, load_settings
from Koyn_Finance.data.catalog import AssetCatalog
from Koyn_Finance.data.database import Database
from Koyn_Finance.data.subscriptions import SubscriptionStore
from Koyn_Finance.logging_config import configure_logging
from Koyn_Finance.services.aggregation import SentimentService
from Koyn_Finance.services.asset_resolver import AssetResolver
from Koyn_Finance.services.asset_strategies import Upstreams
from Koyn_Finance.services.cache import ServiceCache
from Koyn_Finance.services.dexscreener import DexScreenerClient
from Koyn_Finance.services.fmp import FmpClient
from Koyn_Finance.services.market_data import MarketDataService
from Koyn_Finance.services.news import NewsService
from Koyn_Finance.services.rate_limiter import RateLimiter
from Koyn_Finance.services.social import SocialSearchClient
from Koyn_Finance.services.subscriptions import SubscriptionResolver
from Koyn_Finance.services.usage_ledger import UsageLedger
from Koyn_Finance.web.middleware import RequestLoggingMiddleware, register_exception_handlers
from Koyn_Finance.web.routes import (
    access_router,
    chart_router,
    health_router,
    markets_router,
    sentiment_router,
)

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Open shared resources on startup and release them on shutdown."""
    settings: Settings = app.state.settings

    database = Database(settings.db_path)
    await database.connect()

    ledger = UsageLedger(database)
    cache = ServiceCache(database)
    purge_task = asyncio.create_task(
        ledger.run_purge_loop(
            interval_seconds=settings.usage_purge_interval_seconds,
            retention_days=settings.usage_retention_days,
            cache=cache,
        )
    )

    fmp = FmpClient(settings.fmp_api_key)
    dex = DexScreenerClient()
    llm = LLMClient(settings.gemini_api_key)
    social = SocialSearchClient(settings.xai_api_key)

    subscription_resolver = SubscriptionResolver(
        SubscriptionStore(settings.subscriptions_path), jwt_secret=settings.jwt_secret
    )
    market_data = MarketDataService(Upstreams(fmp=fmp, dex=dex))
    catalog = AssetCatalog.load(settings.catalog_dir)
    asset_resolver = AssetResolver(catalog, dex=dex, llm=llm, market_data=market_data)

    app.state.database = database
    app.state.usage_ledger = ledger
    app.state.subscription_resolver = subscription_resolver
    app.state.rate_limiter = RateLimiter(
        ledger, subscription_resolver, plan_limits=settings.plan_limits
    )
    app.state.market_data = market_data
    app.state.catalog = catalog
    app.state.asset_resolver = asset_resolver
    app.state.sentiment_service = SentimentService(
        asset_resolver,
        market_data,
        NewsService(fmp, cache),
        social,
        NarrativeAnalyzer(llm),
    )
    logger.info("Koyn Finance services started")

    try:
        yield
    finally:
        purge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await purge_task
        for client in (fmp, dex, llm, social):
            await client.aclose()
        await database.close()
        logger.info("Koyn Finance services stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Configuration to serve with; read from the environment
            when omitted.
    """
    configure_logging()

    app = FastAPI(title="Koyn Finance", lifespan=lifespan, docs_url=None, redoc_url=None)
    app.state.settings = settings or load_settings()

    register_exception_handlers(app)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(sentiment_router, prefix="/api")
    app.include_router(chart_router, prefix="/api")
    app.include_router(markets_router, prefix="/api")
    app.include_router(access_router, prefix="/api")
    app.include_router(health_router, prefix="/api")

    logger.info("Koyn Finance web app created")
    return app
