"""FastAPI route modules for Koyn Finance.

Re-exports all routers so the application factory can import them:
    from Koyn_Finance.web.routes import chart_router, sentiment_router
"""

from Koyn_Finance.web.routes.access import router as access_router
from Koyn_Finance.web.routes.chart import router as chart_router
from Koyn_Finance.web.routes.health import router as health_router
from Koyn_Finance.web.routes.markets import router as markets_router
from Koyn_Finance.web.routes.sentiment import router as sentiment_router

__all__ = [
    "access_router",
    "chart_router",
    "health_router",
    "markets_router",
    "sentiment_router",
]
