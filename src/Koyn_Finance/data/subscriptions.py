"""Read-only access to the subscription store written by the billing webhook.

The store is a JSON array of subscription objects. It is re-read only when
the file's modification time changes, so lookups on the request path are
dictionary hits.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pydantic

from Koyn_Finance.models.subscription import Subscription

logger = logging.getLogger(__name__)


class SubscriptionStore:
    """Lookup-by-id and lookup-by-email over ``subscriptions.json``.

    A missing or unreadable file behaves like an empty store; malformed rows
    are skipped with a warning rather than failing the whole load.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._mtime: float | None = None
        self._by_id: dict[str, Subscription] = {}
        self._all: list[Subscription] = []

    def get(self, subscription_id: str) -> Subscription | None:
        self._reload_if_changed()
        return self._by_id.get(subscription_id)

    def find_by_email(self, email: str) -> list[Subscription]:
        """Return every subscription for *email* (case-insensitive), newest first."""
        self._reload_if_changed()
        wanted = email.strip().lower()
        matches = [sub for sub in self._all if sub.email.lower() == wanted]
        return sorted(
            matches,
            key=lambda sub: sub.started_at.timestamp() if sub.started_at else 0.0,
            reverse=True,
        )

    def _reload_if_changed(self) -> None:
        try:
            mtime = self._path.stat().st_mtime
        except FileNotFoundError:
            if self._mtime is not None or self._all:
                logger.warning("Subscription store %s disappeared", self._path)
            self._mtime = None
            self._by_id = {}
            self._all = []
            return

        if mtime == self._mtime:
            return

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to read subscription store %s: %s", self._path, exc)
            return

        rows = raw if isinstance(raw, list) else []
        loaded: list[Subscription] = []
        for row in rows:
            try:
                loaded.append(Subscription.model_validate(row))
            except pydantic.ValidationError as exc:
                logger.warning("Skipping malformed subscription row: %s", exc.errors()[0])

        self._all = loaded
        self._by_id = {sub.id: sub for sub in loaded}
        self._mtime = mtime
        logger.info("Loaded %d subscriptions from %s", len(loaded), self._path)
