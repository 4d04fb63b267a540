"""Social posts about an asset via Grok live search.

Grok answers in free text; ``parse_search_results`` splits it into individual
posts. Any failure yields an empty list, which the lexicon scores as Neutral.
"""

from __future__ import annotations

import logging
import re
from typing import Final

import httpx

from Koyn_Finance.models.asset import Asset
from Koyn_Finance.models.enums import AssetClass
from Koyn_Finance.services._helpers import get_json
from Koyn_Finance.utils.exceptions import DataFetchError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

GROK_URL: Final[str] = "https://api.x.ai/v1/chat/completions"
GROK_SOURCE: Final[str] = "grok"
GROK_MODEL: Final[str] = "grok-2-1212"
GROK_TIMEOUT_SECONDS: Final[float] = 10.0
GROK_TEMPERATURE: Final[float] = 0.3
GROK_MAX_TOKENS: Final[int] = 2000

MAX_POSTS: Final[int] = 30
MAX_FALLBACK_SENTENCES: Final[int] = 10
MIN_LINE_LENGTH: Final[int] = 10
MIN_POST_LENGTH: Final[int] = 20

_SYSTEM_PROMPT: Final[str] = (
    "You are a financial sentiment analysis assistant. Search for recent social media "
    "posts and news about the requested asset. Focus on posts from the last 24 hours "
    "that express sentiment about price movements, market outlook, or trading opinions."
)

_NUMBERING = re.compile(r"^\d+\.\s*")
_BULLET = re.compile(r"^[-•*]\s*")
_QUOTED = re.compile(r'^"(.*)"$')
_PREFIX = re.compile(r"^(?:Tweet|Post):\s*", re.IGNORECASE)
_SLANG = re.compile(r"\b(bullish|bearish|pump|dump|moon|crash|buy|sell|hold)\b", re.IGNORECASE)
_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def search_query(asset: Asset) -> str:
    if asset.asset_class == AssetClass.STOCK:
        return f"{asset.display_symbol} {asset.name} stock price sentiment"
    return f"{asset.name} {asset.display_symbol} price sentiment"


def _clean_line(line: str) -> str:
    cleaned = _NUMBERING.sub("", line.strip())
    cleaned = _BULLET.sub("", cleaned)
    cleaned = _QUOTED.sub(r"\1", cleaned)
    return _PREFIX.sub("", cleaned).strip()


def _mentions_asset(text: str, asset: Asset) -> bool:
    lowered = text.lower()
    return asset.display_symbol.lower() in lowered or asset.name.lower() in lowered


def parse_search_results(text: str, asset: Asset) -> list[str]:
    """Split a live-search answer into sentiment-relevant posts.

    A line counts as a post when, after stripping numbering, bullets, quotes
    and ``Tweet:``/``Post:`` prefixes, it is longer than 20 characters and
    mentions the asset, a ``$`` sign, or market slang. When no line
    qualifies, up to 10 sentences that mention the asset are used instead.
    """
    posts: list[str] = []
    for line in text.splitlines():
        if len(line.strip()) <= MIN_LINE_LENGTH:
            continue
        post = _clean_line(line)
        if len(post) <= MIN_POST_LENGTH:
            continue
        if _mentions_asset(post, asset) or "$" in post or _SLANG.search(post):
            posts.append(post)

    if not posts:
        sentences = [
            s.strip() for s in _SENTENCE_SPLIT.split(text) if len(s.strip()) > MIN_POST_LENGTH
        ]
        posts = [s for s in sentences[:MAX_FALLBACK_SENTENCES] if _mentions_asset(s, asset)]

    return posts[:MAX_POSTS]


class SocialSearchClient:
    """Fetches recent social posts about an asset from the xAI chat API."""

    def __init__(
        self,
        api_key: str | None,
        *,
        client: httpx.AsyncClient | None = None,
        url: str = GROK_URL,
    ) -> None:
        self._api_key = api_key
        self._url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(GROK_TIMEOUT_SECONDS),
            limits=httpx.Limits(max_connections=5, max_keepalive_connections=2),
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_posts(self, asset: Asset) -> list[str]:
        """Return up to 30 posts about *asset*. Never raises."""
        if not self._api_key:
            logger.info("No xAI key configured, skipping social search for %s", asset.id)
            return []

        query = search_query(asset)
        body = {
            "model": GROK_MODEL,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f"Search for recent social media posts and tweets about {query}. "
                        "Find posts from the last 24 hours that contain sentiment about price "
                        "movements, market outlook, or trading opinions. Return the actual "
                        "text content of these posts, focusing on posts with clear bullish, "
                        "bearish, or neutral sentiment indicators. Limit to 50 most relevant "
                        "posts."
                    ),
                },
            ],
            "temperature": GROK_TEMPERATURE,
            "max_tokens": GROK_MAX_TOKENS,
        }
        try:
            data = await get_json(
                self._client,
                self._url,
                method="POST",
                json_body=body,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=GROK_TIMEOUT_SECONDS,
                symbol=asset.id,
                source=GROK_SOURCE,
            )
        except DataFetchError as exc:
            logger.warning("Social search failed for %s: %s", asset.id, exc)
            return []

        content = _message_content(data)
        posts = parse_search_results(content, asset) if content else []
        logger.info("Found %d social posts for %s", len(posts), asset.id)
        return posts


def _message_content(data: object) -> str:
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message") or {}
    return str(message.get("content") or "") if isinstance(message, dict) else ""
