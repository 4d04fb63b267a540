"""Shared helpers for the upstream-facing service modules.

Consolidates safe numeric conversions, the JSON GET wrapper that maps httpx
failures onto the domain exception hierarchy, and the retry-with-backoff
loop used by every provider client.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Coroutine, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any, Final

import httpx

from Koyn_Finance.utils.exceptions import (
    DataFetchError,
    SymbolNotFoundError,
    UpstreamRateLimitError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared constants
# ---------------------------------------------------------------------------

DEFAULT_TIMEOUT_SECONDS: Final[float] = 10.0

MAX_ATTEMPTS: Final[int] = 3
BACKOFF_DELAYS: Final[list[float]] = [0.5, 1.0, 2.0]
# Upper bound on an upstream Retry-After hint
MAX_RETRY_AFTER_SECONDS: Final[float] = 10.0

_HTTP_TOO_MANY_REQUESTS: Final[int] = 429
_HTTP_ERROR_FLOOR: Final[int] = 400


# ---------------------------------------------------------------------------
# Safe type conversions
# ---------------------------------------------------------------------------


def safe_decimal(value: object, default: Decimal | None = None) -> Decimal | None:
    """Convert an upstream number (often a float or numeric string) to Decimal.

    Goes through ``str`` so 0.1 stays 0.1. Returns *default* for None, NaN,
    infinities, booleans, and anything unparseable.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


def safe_float(value: object, default: float = 0.0) -> float:
    """Convert to float, treating None / NaN / garbage as *default*."""
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(str(value))
    except (TypeError, ValueError):
        return default
    return default if math.isnan(result) or math.isinf(result) else result


def safe_int(value: object, default: int = 0) -> int:
    """Convert to int via float so ``"1.2e6"`` and ``1200000.0`` both work."""
    return int(safe_float(value, float(default)))


def retry_after_seconds(response: httpx.Response) -> float | None:
    """Parse a numeric ``Retry-After`` header, if the upstream sent one."""
    header = response.headers.get("Retry-After")
    if header is None:
        return None
    value = safe_float(header, -1.0)
    return value if value > 0 else None


# ---------------------------------------------------------------------------
# HTTP wrapper
# ---------------------------------------------------------------------------


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: Mapping[str, str | int] | None = None,
    method: str = "GET",
    json_body: Any = None,
    headers: Mapping[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    symbol: str,
    source: str,
) -> Any:
    """Request *url* (GET unless *method* says otherwise) and decode the JSON body.

    Upstream failures are raised as domain exceptions.

    Raises:
        UpstreamRateLimitError: HTTP 429 (``retry_after`` set when known).
        UpstreamUnavailableError: timeouts, transport errors, other HTTP errors,
            or a body that is not JSON.
    """
    try:
        response = await client.request(
            method, url, params=params, json=json_body, headers=headers, timeout=timeout
        )
    except httpx.TimeoutException as exc:
        raise UpstreamUnavailableError(
            f"{source} timed out after {timeout:.0f}s for {symbol}",
            symbol=symbol,
            source=source,
        ) from exc
    except httpx.HTTPError as exc:
        raise UpstreamUnavailableError(
            f"{source} request failed for {symbol}: {exc}",
            symbol=symbol,
            source=source,
        ) from exc

    if response.status_code == _HTTP_TOO_MANY_REQUESTS:
        raise UpstreamRateLimitError(
            f"{source} rate limited request for {symbol}",
            symbol=symbol,
            source=source,
            retry_after=retry_after_seconds(response),
        )
    if response.status_code >= _HTTP_ERROR_FLOOR:
        raise UpstreamUnavailableError(
            f"{source} returned HTTP {response.status_code} for {symbol}",
            symbol=symbol,
            source=source,
            http_status=response.status_code,
        )

    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamUnavailableError(
            f"{source} returned a non-JSON body for {symbol}",
            symbol=symbol,
            source=source,
            http_status=response.status_code,
        ) from exc


# ---------------------------------------------------------------------------
# Retry wrapper
# ---------------------------------------------------------------------------


async def fetch_with_retry[T](
    fetch_fn: Callable[[], Coroutine[Any, Any, T]],
    *,
    symbol: str,
    source: str,
    label: str,
    max_attempts: int = MAX_ATTEMPTS,
    backoff_delays: list[float] | None = None,
) -> T:
    """Run *fetch_fn* up to *max_attempts* times with exponential backoff.

    ``SymbolNotFoundError`` is re-raised immediately because asking again will
    not conjure up data. A 429 with ``retry_after`` waits that long, capped at
    ``MAX_RETRY_AFTER_SECONDS``, instead of the scheduled delay. Everything
    else retries, then surfaces as ``UpstreamUnavailableError``.

    Args:
        fetch_fn: Zero-argument callable returning a fresh coroutine per attempt.
        symbol: Symbol for error context.
        source: Provider name for error context.
        label: Human-readable label for log messages.
        max_attempts: Total attempts including the first one.
        backoff_delays: Delay schedule in seconds between attempts.

    Raises:
        SymbolNotFoundError: Re-raised immediately.
        UpstreamUnavailableError: After exhausting all attempts.
    """
    delays = backoff_delays if backoff_delays is not None else BACKOFF_DELAYS
    last_exc: Exception | None = None

    for attempt in range(max_attempts):
        try:
            return await fetch_fn()
        except SymbolNotFoundError:
            raise
        except (DataFetchError, TimeoutError, httpx.HTTPError) as exc:
            last_exc = exc
            logger.warning(
                "%s failed (attempt %d/%d): %s",
                label,
                attempt + 1,
                max_attempts,
                exc,
            )

        if attempt < max_attempts - 1:
            delay = delays[attempt] if attempt < len(delays) else delays[-1]
            hinted: float | None = getattr(last_exc, "retry_after", None)
            await asyncio.sleep(min(hinted, MAX_RETRY_AFTER_SECONDS) if hinted else delay)

    assert last_exc is not None  # noqa: S101
    raise UpstreamUnavailableError(
        f"Failed to fetch {label} after {max_attempts} attempts: {last_exc}",
        symbol=symbol,
        source=source,
    ) from last_exc
