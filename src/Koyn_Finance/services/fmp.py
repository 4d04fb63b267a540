"""Financial Modeling Prep (FMP) HTTP client.

Thin wrapper over the FMP REST API: attaches the API key, maps transport and
HTTP failures to domain exceptions, and normalizes the two response shapes
FMP uses (a bare list, or an object with a ``historical`` list) into a list
of row dicts. Endpoint selection per asset class lives in the strategies.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Final

import httpx

from Koyn_Finance.services._helpers import get_json
from Koyn_Finance.utils.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

FMP_BASE_URL: Final[str] = "https://financialmodelingprep.com"
FMP_SOURCE: Final[str] = "fmp"
FMP_TIMEOUT_SECONDS: Final[float] = 10.0

_ERROR_KEY: Final[str] = "Error Message"


class FmpClient:
    """Async FMP client sharing one pooled ``httpx.AsyncClient``.

    Usage::

        fmp = FmpClient(api_key="...")
        rows = await fmp.get_rows("/stable/quote", symbol="AAPL", params={"symbol": "AAPL"})
        await fmp.aclose()

    Pass ``client`` to share a connection pool (or an ``httpx.MockTransport``
    in tests); an injected client is not closed by ``aclose``.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str = FMP_BASE_URL,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=5.0, read=30.0, write=10.0, pool=5.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )

        logger.info(
            "FmpClient initialized: api_key=%s",
            "configured" if api_key else "not configured",
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def aclose(self) -> None:
        """Close the httpx client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def get(
        self,
        path: str,
        *,
        symbol: str,
        params: Mapping[str, str | int] | None = None,
        timeout: float = FMP_TIMEOUT_SECONDS,
    ) -> Any:
        """GET an FMP path and return the decoded JSON body.

        Raises:
            UpstreamUnavailableError: No API key, transport failure, HTTP
                error, or an FMP ``Error Message`` body.
            UpstreamRateLimitError: FMP answered 429.
        """
        if not self._api_key:
            raise UpstreamUnavailableError(
                "FMP_API_KEY is not configured",
                symbol=symbol,
                source=FMP_SOURCE,
            )

        query: dict[str, str | int] = dict(params or {})
        query["apikey"] = self._api_key
        data = await get_json(
            self._client,
            f"{self._base_url}{path}",
            params=query,
            timeout=timeout,
            symbol=symbol,
            source=FMP_SOURCE,
        )
        if isinstance(data, dict) and _ERROR_KEY in data:
            raise UpstreamUnavailableError(
                f"FMP error for {symbol}: {data[_ERROR_KEY]}",
                symbol=symbol,
                source=FMP_SOURCE,
            )
        return data

    async def get_rows(
        self,
        path: str,
        *,
        symbol: str,
        params: Mapping[str, str | int] | None = None,
        timeout: float = FMP_TIMEOUT_SECONDS,
    ) -> list[dict[str, Any]]:
        """Like ``get`` but always returns a list of row dicts (possibly empty)."""
        data = await self.get(path, symbol=symbol, params=params, timeout=timeout)
        if isinstance(data, dict):
            data = data.get("historical", [])
        if not isinstance(data, list):
            logger.debug("Unexpected FMP payload type %s for %s", type(data).__name__, path)
            return []
        return [row for row in data if isinstance(row, dict)]

    async def first_row(
        self,
        path: str,
        *,
        symbol: str,
        params: Mapping[str, str | int] | None = None,
        timeout: float = FMP_TIMEOUT_SECONDS,
    ) -> dict[str, Any] | None:
        rows = await self.get_rows(path, symbol=symbol, params=params, timeout=timeout)
        return rows[0] if rows else None
