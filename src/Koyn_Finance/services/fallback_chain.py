"""Ordered fallback chains with tagged results.

A chain is a list of ``Tier``s. Each tier either produces a value (``Ok``
tagged with the tier's source) or fails (``Err`` with a reason). ``first_ok``
walks the tiers in order and stops at the first success, so the policy
"live primary, then live secondary, then synthetic" can be tested without
any network access.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ok[T]:
    """A tier produced a value."""

    value: T
    source: str
    tier: str = ""


@dataclass(frozen=True)
class Err:
    """Every tier failed (or a single tier failed, when used per tier)."""

    reason: str
    failures: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Tier[T]:
    """One strategy attempt.

    ``fetch`` returns ``None`` (or an empty collection) when the upstream
    answered but had nothing useful; that counts as a failure for the chain.
    """

    name: str
    source: str
    fetch: Callable[[], Awaitable[T | None]]


async def first_ok[T](tiers: Sequence[Tier[T]], *, label: str) -> Ok[T] | Err:
    """Try each tier in order and return the first non-empty result.

    Exceptions are caught per tier (upstream clients raise a mix of httpx,
    timeout, and domain errors) and recorded as failures; the next tier runs.
    """
    failures: list[str] = []
    for tier in tiers:
        try:
            value = await tier.fetch()
        except Exception as exc:  # noqa: BLE001
            failures.append(f"{tier.name}: {exc}")
            logger.warning("%s: tier %s failed: %s", label, tier.name, exc)
            continue

        if value is None or (isinstance(value, list | tuple | dict) and not value):
            failures.append(f"{tier.name}: empty")
            logger.info("%s: tier %s returned no data", label, tier.name)
            continue

        if failures:
            logger.info("%s: served by fallback tier %s", label, tier.name)
        return Ok(value=value, source=tier.source, tier=tier.name)

    logger.error("%s: all %d tiers failed", label, len(tiers))
    return Err(reason=f"{label}: all tiers failed", failures=tuple(failures))
