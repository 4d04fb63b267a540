"""Gemini LLM client wrapper with async interface, retry logic, and truncation handling.

Talks to the ``generateContent`` REST endpoint through ``httpx.AsyncClient``.
Each attempt gets a longer timeout than the last; between attempts the
client sleeps with exponential backoff.

Retry strategy:
- Timeouts, connection errors, 429 and 5xx: retry with backoff
  [2 s, 4 s, 8 s] using per-attempt timeouts [30 s, 40 s, 50 s].
- 4xx other than 429 (bad key, bad request): raise immediately.
- A ``MAX_TOKENS`` finish reason is not an error; the partial text is
  returned with ``truncated=True``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Final

import httpx
from pydantic import BaseModel, ConfigDict

from Koyn_Finance.utils.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

GEMINI_BASE_URL: Final[str] = "https://generativelanguage.googleapis.com/v1beta/models"
GEMINI_SOURCE: Final[str] = "gemini"
DEFAULT_MODEL: Final[str] = "gemini-1.5-pro"

DEFAULT_TEMPERATURE: Final[float] = 0.7
DEFAULT_TOP_K: Final[int] = 40
DEFAULT_TOP_P: Final[float] = 0.8
DEFAULT_MAX_OUTPUT_TOKENS: Final[int] = 2048

ATTEMPT_TIMEOUTS: Final[list[float]] = [30.0, 40.0, 50.0]
RETRY_DELAYS: Final[list[float]] = [2.0, 4.0, 8.0]

_TRUNCATED_FINISH_REASON: Final[str] = "MAX_TOKENS"
TRUNCATED_PLACEHOLDER: Final[str] = (
    "Analysis was truncated due to length limits. "
    "The market analysis is partially available but may be incomplete."
)
_SERVER_ERROR: Final[int] = 500
_TOO_MANY_REQUESTS: Final[int] = 429
_CLIENT_ERROR: Final[int] = 400


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class LLMResponse(BaseModel):
    """Parsed response from a Gemini ``generateContent`` call."""

    model_config = ConfigDict(frozen=True)

    content: str
    model: str
    finish_reason: str = ""
    truncated: bool = False
    duration_ms: int = 0


class LLMRequestError(Exception):
    """Non-retryable rejection from the model endpoint (bad key, bad request)."""

    def __init__(self, message: str, *, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(message)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class LLMClient:
    """Async client for Google Gemini text generation.

    Parameters
    ----------
    api_key:
        Gemini API key. When ``None`` every call raises
        ``UpstreamUnavailableError`` without touching the network.
    model:
        Model name used in the endpoint path.
    client:
        Optional shared ``httpx.AsyncClient`` (tests pass one backed by
        ``httpx.MockTransport``).
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = DEFAULT_MODEL,
        client: httpx.AsyncClient | None = None,
        base_url: str = GEMINI_BASE_URL,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(ATTEMPT_TIMEOUTS[-1]),
            limits=httpx.Limits(max_connections=5, max_keepalive_connections=2),
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    @property
    def model(self) -> str:
        return self._model

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        top_k: int = DEFAULT_TOP_K,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        timeouts: list[float] | None = None,
        retry_delays: list[float] | None = None,
    ) -> LLMResponse:
        """Generate text for *prompt*, retrying transient failures.

        Parameters
        ----------
        prompt:
            Full prompt text, sent as a single user turn.
        temperature:
            Sampling temperature (0.1 for structured extraction, 0.7 for prose).
        top_k:
            Top-k sampling cutoff (1 makes extraction effectively greedy).
        timeouts:
            Per-attempt timeouts; the number of entries is the attempt count.
        retry_delays:
            Sleep before attempt ``n + 1`` after attempt ``n`` failed.

        Returns
        -------
        LLMResponse
            Generated text, possibly truncated.

        Raises
        ------
        UpstreamUnavailableError
            No key configured, or every attempt failed.
        LLMRequestError
            The endpoint rejected the request outright.
        """
        if not self._api_key:
            raise UpstreamUnavailableError(
                "Gemini API key is not configured", symbol="", source=GEMINI_SOURCE
            )

        attempt_timeouts = timeouts or ATTEMPT_TIMEOUTS
        delays = retry_delays if retry_delays is not None else RETRY_DELAYS
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "topK": top_k,
                "topP": DEFAULT_TOP_P,
                "maxOutputTokens": max_output_tokens,
            },
        }

        last_error: Exception | None = None
        for attempt, timeout in enumerate(attempt_timeouts):
            try:
                return await self._do_generate(payload, timeout=timeout)
            except LLMRequestError:
                raise
            except (httpx.HTTPError, UpstreamUnavailableError) as exc:
                last_error = exc
                logger.warning(
                    "Gemini attempt %d/%d failed (timeout %.0fs): %s",
                    attempt + 1,
                    len(attempt_timeouts),
                    timeout,
                    exc,
                )
            if attempt < len(attempt_timeouts) - 1:
                await asyncio.sleep(delays[min(attempt, len(delays) - 1)] if delays else 0)

        logger.error("Gemini failed after %d attempts: %s", len(attempt_timeouts), last_error)
        raise UpstreamUnavailableError(
            f"Gemini failed after {len(attempt_timeouts)} attempts: {last_error}",
            symbol="",
            source=GEMINI_SOURCE,
        ) from last_error

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _do_generate(self, payload: dict[str, Any], *, timeout: float) -> LLMResponse:
        started = time.monotonic()
        response = await self._client.post(
            f"{self._base_url}/{self._model}:generateContent",
            params={"key": self._api_key},
            json=payload,
            timeout=timeout,
        )
        status = response.status_code
        if status == _TOO_MANY_REQUESTS or status >= _SERVER_ERROR:
            raise UpstreamUnavailableError(
                f"Gemini returned HTTP {status}",
                symbol="",
                source=GEMINI_SOURCE,
                http_status=status,
            )
        if status >= _CLIENT_ERROR:
            logger.error("Gemini rejected the request: HTTP %d", status)
            raise LLMRequestError(f"Gemini rejected the request: HTTP {status}", status_code=status)

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamUnavailableError(
                "Gemini returned a non-JSON body", symbol="", source=GEMINI_SOURCE
            ) from exc

        content, finish_reason = _extract_text(data)
        if not content and finish_reason == _TRUNCATED_FINISH_REASON:
            content = TRUNCATED_PLACEHOLDER
        if not content:
            raise UpstreamUnavailableError(
                f"Gemini returned no text (finish reason {finish_reason or 'unknown'})",
                symbol="",
                source=GEMINI_SOURCE,
            )

        truncated = finish_reason == _TRUNCATED_FINISH_REASON
        if truncated:
            logger.warning("Gemini response truncated at %d chars", len(content))

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "LLM response: model=%s chars=%d finish=%s duration_ms=%d",
            self._model,
            len(content),
            finish_reason,
            duration_ms,
        )
        return LLMResponse(
            content=content,
            model=self._model,
            finish_reason=finish_reason,
            truncated=truncated,
            duration_ms=duration_ms,
        )


def _extract_text(data: object) -> tuple[str, str]:
    """Pull the first candidate's text and finish reason out of a response body."""
    if not isinstance(data, dict):
        return "", ""
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return "", ""
    first = candidates[0] if isinstance(candidates[0], dict) else {}
    finish_reason = str(first.get("finishReason") or "")
    parts = (first.get("content") or {}).get("parts") or []
    text = "".join(
        str(part.get("text") or "") for part in parts if isinstance(part, dict)
    )
    return text.strip(), finish_reason
