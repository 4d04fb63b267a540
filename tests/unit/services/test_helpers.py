"""Tests for the shared service helpers: conversions, get_json, retry."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from Koyn_Finance.services._helpers import (
    MAX_RETRY_AFTER_SECONDS,
    fetch_with_retry,
    get_json,
    safe_decimal,
    safe_float,
    safe_int,
)
from Koyn_Finance.utils.exceptions import (
    SymbolNotFoundError,
    UpstreamRateLimitError,
    UpstreamUnavailableError,
)


class TestSafeConversions:
    def test_decimal_from_float_keeps_repr(self) -> None:
        assert safe_decimal(0.1) == Decimal("0.1")

    def test_decimal_from_string(self) -> None:
        assert safe_decimal(" 186.52 ") == Decimal("186.52")

    @pytest.mark.parametrize("value", [None, True, "abc", float("nan"), float("inf")])
    def test_decimal_rejects_garbage(self, value: object) -> None:
        assert safe_decimal(value) is None

    def test_decimal_default(self) -> None:
        assert safe_decimal("x", Decimal("1")) == Decimal("1")

    def test_float(self) -> None:
        assert safe_float("3.5") == 3.5
        assert safe_float(None, 9.0) == 9.0
        assert safe_float(float("nan")) == 0.0

    def test_int_accepts_scientific_notation(self) -> None:
        assert safe_int("1.2e6") == 1_200_000
        assert safe_int("junk", 4) == 4


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestGetJson:
    @pytest.mark.asyncio()
    async def test_decodes_body(self) -> None:
        async with _client(lambda request: httpx.Response(200, json=[{"a": 1}])) as client:
            data = await get_json(client, "https://x.test/q", symbol="AAPL", source="fmp")
        assert data == [{"a": 1}]

    @pytest.mark.asyncio()
    async def test_posts_json_body(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        async with _client(handler) as client:
            await get_json(
                client,
                "https://x.test/p",
                method="POST",
                json_body={"q": 1},
                symbol="AAPL",
                source="xai",
            )
        assert seen[0].method == "POST"
        assert json.loads(seen[0].content) == {"q": 1}

    @pytest.mark.asyncio()
    async def test_429_raises_rate_limit_with_retry_after(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "3"})

        async with _client(handler) as client:
            with pytest.raises(UpstreamRateLimitError) as exc_info:
                await get_json(client, "https://x.test/q", symbol="AAPL", source="fmp")
        assert exc_info.value.retry_after == 3.0

    @pytest.mark.asyncio()
    async def test_http_error_raises_unavailable(self) -> None:
        async with _client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(UpstreamUnavailableError) as exc_info:
                await get_json(client, "https://x.test/q", symbol="AAPL", source="fmp")
        assert exc_info.value.http_status == 503

    @pytest.mark.asyncio()
    async def test_non_json_body(self) -> None:
        async with _client(lambda request: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(UpstreamUnavailableError, match="non-JSON"):
                await get_json(client, "https://x.test/q", symbol="AAPL", source="fmp")

    @pytest.mark.asyncio()
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(UpstreamUnavailableError, match="request failed"):
                await get_json(client, "https://x.test/q", symbol="AAPL", source="fmp")

    @pytest.mark.asyncio()
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with _client(handler) as client:
            with pytest.raises(UpstreamUnavailableError, match="timed out"):
                await get_json(client, "https://x.test/q", symbol="AAPL", source="fmp")


class TestFetchWithRetry:
    @pytest.mark.asyncio()
    async def test_succeeds_after_transient_failure(self) -> None:
        fetch = AsyncMock(
            side_effect=[UpstreamUnavailableError("down", symbol="A", source="s"), "ok"]
        )
        with patch("Koyn_Finance.services._helpers.asyncio.sleep", new_callable=AsyncMock):
            result = await fetch_with_retry(fetch, symbol="A", source="s", label="quote")
        assert result == "ok"
        assert fetch.await_count == 2

    @pytest.mark.asyncio()
    async def test_symbol_not_found_not_retried(self) -> None:
        fetch = AsyncMock(side_effect=SymbolNotFoundError("none", symbol="A", source="s"))
        with pytest.raises(SymbolNotFoundError):
            await fetch_with_retry(fetch, symbol="A", source="s", label="quote")
        assert fetch.await_count == 1

    @pytest.mark.asyncio()
    async def test_exhausted_attempts_raise_unavailable(self) -> None:
        fetch = AsyncMock(side_effect=TimeoutError())
        with (
            patch("Koyn_Finance.services._helpers.asyncio.sleep", new_callable=AsyncMock),
            pytest.raises(UpstreamUnavailableError, match="after 3 attempts"),
        ):
            await fetch_with_retry(fetch, symbol="A", source="s", label="quote")
        assert fetch.await_count == 3

    @pytest.mark.asyncio()
    async def test_retry_after_hint_used(self) -> None:
        limited = UpstreamRateLimitError("slow down", symbol="A", source="s", retry_after=7.0)
        fetch = AsyncMock(side_effect=[limited, "ok"])
        with patch(
            "Koyn_Finance.services._helpers.asyncio.sleep", new_callable=AsyncMock
        ) as sleep:
            await fetch_with_retry(fetch, symbol="A", source="s", label="quote")
        sleep.assert_awaited_once_with(7.0)

    @pytest.mark.asyncio()
    async def test_long_retry_after_hint_capped(self) -> None:
        limited = UpstreamRateLimitError(
            "slow down", symbol="A", source="s", retry_after=3600.0
        )
        fetch = AsyncMock(side_effect=limited)
        with (
            patch("Koyn_Finance.services._helpers.asyncio.sleep", new_callable=AsyncMock) as sleep,
            pytest.raises(UpstreamUnavailableError),
        ):
            await fetch_with_retry(fetch, symbol="A", source="s", label="news")
        assert sleep.await_count == 2
        for call in sleep.await_args_list:
            assert call.args == (MAX_RETRY_AFTER_SECONDS,)
