"""Tests for the Gemini LLM client wrapper.

Verifies request shape, retry logic, truncation handling and error mapping,
all against httpx.MockTransport instead of the real endpoint.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from Koyn_Finance.agents.llm_client import (
    DEFAULT_MODEL,
    TRUNCATED_PLACEHOLDER,
    LLMClient,
    LLMRequestError,
    LLMResponse,
)
from Koyn_Finance.utils.exceptions import UpstreamUnavailableError

BASE_URL = "https://gemini.test/v1beta/models"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _body(text: str, finish_reason: str = "STOP") -> dict[str, object]:
    """Build a response matching the ``generateContent`` shape."""
    return {
        "candidates": [
            {"content": {"parts": [{"text": text}]}, "finishReason": finish_reason}
        ]
    }


def _client(
    handler: Callable[[httpx.Request], httpx.Response],
    api_key: str | None = "gem-key",
) -> LLMClient:
    transport = httpx.MockTransport(handler)
    return LLMClient(api_key, client=httpx.AsyncClient(transport=transport), base_url=BASE_URL)


def _sequence(*responses: httpx.Response) -> tuple[Callable, list[httpx.Request]]:
    """Handler replaying *responses* in order, recording each request."""
    seen: list[httpx.Request] = []
    pending = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return pending.pop(0)

    return handler, seen


@pytest.fixture()
def no_sleep():
    with patch("Koyn_Finance.agents.llm_client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


# ---------------------------------------------------------------------------
# Success
# ---------------------------------------------------------------------------


class TestGenerateSuccess:
    """Tests for LLMClient.generate() happy path."""

    @pytest.mark.asyncio()
    async def test_text_returned(self) -> None:
        handler, seen = _sequence(httpx.Response(200, json=_body("  Bullish outlook.  ")))
        response = await _client(handler).generate("prompt")

        assert isinstance(response, LLMResponse)
        assert response.content == "Bullish outlook."
        assert response.model == DEFAULT_MODEL
        assert response.truncated is False
        assert len(seen) == 1

    @pytest.mark.asyncio()
    async def test_request_shape(self) -> None:
        handler, seen = _sequence(httpx.Response(200, json=_body("ok")))
        await _client(handler).generate("hello", temperature=0.1, top_k=1)

        request = seen[0]
        assert request.url.path == f"/v1beta/models/{DEFAULT_MODEL}:generateContent"
        assert request.url.params["key"] == "gem-key"
        payload = json.loads(request.content)
        assert payload["contents"][0]["parts"][0]["text"] == "hello"
        assert payload["generationConfig"]["temperature"] == 0.1
        assert payload["generationConfig"]["topK"] == 1

    @pytest.mark.asyncio()
    async def test_parts_joined(self) -> None:
        body = {"candidates": [{"content": {"parts": [{"text": "a"}, {"text": "b"}]}}]}
        handler, _ = _sequence(httpx.Response(200, json=body))
        assert (await _client(handler).generate("p")).content == "ab"


# ---------------------------------------------------------------------------
# Truncation
# ---------------------------------------------------------------------------


class TestTruncation:
    @pytest.mark.asyncio()
    async def test_partial_text_flagged(self) -> None:
        handler, _ = _sequence(httpx.Response(200, json=_body("Partial", "MAX_TOKENS")))
        response = await _client(handler).generate("p")
        assert response.content == "Partial"
        assert response.truncated is True

    @pytest.mark.asyncio()
    async def test_empty_truncated_text_gets_placeholder(self) -> None:
        handler, _ = _sequence(httpx.Response(200, json=_body("", "MAX_TOKENS")))
        response = await _client(handler).generate("p")
        assert response.content == TRUNCATED_PLACEHOLDER
        assert response.truncated is True


# ---------------------------------------------------------------------------
# Retries and errors
# ---------------------------------------------------------------------------


class TestRetries:
    @pytest.mark.asyncio()
    async def test_server_error_then_success(self, no_sleep: AsyncMock) -> None:
        handler, seen = _sequence(
            httpx.Response(503),
            httpx.Response(429),
            httpx.Response(200, json=_body("third time")),
        )
        response = await _client(handler).generate("p")

        assert response.content == "third time"
        assert len(seen) == 3
        assert [call.args[0] for call in no_sleep.await_args_list] == [2.0, 4.0]

    @pytest.mark.asyncio()
    async def test_all_attempts_fail(self, no_sleep: AsyncMock) -> None:
        handler, seen = _sequence(*(httpx.Response(500) for _ in range(3)))
        with pytest.raises(UpstreamUnavailableError, match="after 3 attempts"):
            await _client(handler).generate("p")
        assert len(seen) == 3

    @pytest.mark.asyncio()
    async def test_single_attempt_no_sleep(self, no_sleep: AsyncMock) -> None:
        handler, seen = _sequence(httpx.Response(500))
        with pytest.raises(UpstreamUnavailableError):
            await _client(handler).generate("p", timeouts=[10.0], retry_delays=[])
        assert len(seen) == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_empty_answer_is_retried(self, no_sleep: AsyncMock) -> None:
        handler, seen = _sequence(
            httpx.Response(200, json={"candidates": []}),
            httpx.Response(200, json=_body("ok")),
        )
        assert (await _client(handler).generate("p")).content == "ok"
        assert len(seen) == 2

    @pytest.mark.asyncio()
    async def test_client_error_not_retried(self, no_sleep: AsyncMock) -> None:
        handler, seen = _sequence(httpx.Response(403))
        with pytest.raises(LLMRequestError) as excinfo:
            await _client(handler).generate("p")
        assert excinfo.value.status_code == 403
        assert len(seen) == 1

    @pytest.mark.asyncio()
    async def test_no_key_skips_network(self) -> None:
        handler, seen = _sequence()
        client = _client(handler, api_key=None)
        assert client.configured is False
        with pytest.raises(UpstreamUnavailableError, match="not configured"):
            await client.generate("p")
        assert seen == []


class TestLifecycle:
    @pytest.mark.asyncio()
    async def test_shared_client_left_open(self) -> None:
        shared = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        await LLMClient("k", client=shared).aclose()
        assert shared.is_closed is False
        await shared.aclose()
