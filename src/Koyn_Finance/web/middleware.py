"""Exception handlers and request logging middleware.

Maps domain exceptions from ``Koyn_Finance.utils.exceptions`` to the JSON
bodies the frontend expects. Provides request logging middleware that logs
method, path, status code, and duration at INFO level.
"""

import logging
import time

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from Koyn_Finance.utils.exceptions import (
    AuthError,
    DataFetchError,
    QuotaExceededError,
    RequestError,
)

logger = logging.getLogger(__name__)

QUOTA_RESET_TIME = "Daily limits reset at midnight UTC"
QUOTA_ACTION = "Please upgrade your plan for higher limits or wait for the daily reset"


# ---------------------------------------------------------------------------
# Domain exception -> HTTP status handlers
# ---------------------------------------------------------------------------


async def _auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map AuthError to HTTP 401 with the subscription prompt."""
    logger.info("Unauthorized %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.error,
            "message": exc.message,
            "subscription_required": True,
            "action": exc.action,
        },
    )


async def _quota_exceeded_handler(request: Request, exc: QuotaExceededError) -> JSONResponse:
    """Map QuotaExceededError to HTTP 429 with usage details."""
    logger.info("Quota exceeded on %s: %d/%d (%s)", request.url.path, exc.used, exc.limit, exc.plan)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.error,
            "message": exc.message,
            "rate_limit_exceeded": True,
            "usage": exc.used,
            "limit": exc.limit,
            "plan": exc.plan,
            "reset_time": QUOTA_RESET_TIME,
            "action": QUOTA_ACTION,
        },
    )


async def _request_error_handler(request: Request, exc: RequestError) -> JSONResponse:
    """Map InvalidRequestError / NotFoundError to HTTP 400 / 404."""
    logger.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.error, "message": exc.message},
    )


async def _data_fetch_error_handler(request: Request, exc: DataFetchError) -> JSONResponse:
    """Map DataFetchError to HTTP 502 (catch-all for upstream errors)."""
    logger.error("Data fetch error: %s", exc)
    return JSONResponse(
        status_code=502,
        content={"success": False, "error": "Upstream unavailable", "message": str(exc)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all domain exception handlers on the FastAPI application.

    More specific exception types must be registered before their base classes
    so FastAPI matches them correctly.
    """
    app.add_exception_handler(AuthError, _auth_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(QuotaExceededError, _quota_exceeded_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestError, _request_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(DataFetchError, _data_fetch_error_handler)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status code, and duration.

    Health checks are logged at DEBUG so load balancer polling stays quiet.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process request, log timing information, and return response."""
        start_time = time.monotonic()
        response = await call_next(request)
        duration_ms = (time.monotonic() - start_time) * 1000

        level = logging.DEBUG if request.url.path == "/api/health" else logging.INFO
        logger.log(
            level,
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )

        return response
