"""Centralized logging configuration for CLI and web entry points."""

from __future__ import annotations

import logging
import os

LOG_FORMAT: str = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_MODULE_LOGGERS: dict[str, str] = {
    "AGENTS": "Koyn_Finance.agents",
    "SERVICES": "Koyn_Finance.services",
    "WEB": "Koyn_Finance.web",
    "DATA": "Koyn_Finance.data",
}

# Third-party loggers that are chatty at INFO
_NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "aiosqlite")


def _resolve_level(name: str | None, default: int | None) -> int | None:
    if not name:
        return default
    resolved = getattr(logging, name.upper(), None)
    return resolved if isinstance(resolved, int) else default


def configure_logging(
    *,
    level: str = "",
    verbose: bool = False,
    quiet: bool = False,
) -> None:
    """Configure the root logger for both the CLI and the web app.

    Priority: verbose > quiet > level param > LOG_LEVEL env > INFO default.
    ``force=True`` replaces whatever uvicorn installed before us.
    LOG_LEVEL_{AGENTS,SERVICES,WEB,DATA} override single packages.
    """
    if verbose:
        effective = logging.DEBUG
    elif quiet:
        effective = logging.WARNING
    else:
        requested = level or os.environ.get("LOG_LEVEL", "INFO")
        effective = _resolve_level(requested, logging.INFO) or logging.INFO

    logging.basicConfig(level=effective, format=LOG_FORMAT, force=True)

    # RequestLoggingMiddleware replaces the uvicorn access log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    if effective > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    for key, logger_name in _MODULE_LOGGERS.items():
        module_level = _resolve_level(os.environ.get(f"LOG_LEVEL_{key}"), None)
        if module_level is not None:
            logging.getLogger(logger_name).setLevel(module_level)
