"""Runtime configuration read from environment variables.

Everything the server needs from its environment is collected into one
frozen ``Settings`` model at startup and stored on ``app.state``, so no module
reads the environment while handling a request. Variable names match the
deployed server (``JWT_SECRET``, ``MONTHLY`` ...); storage paths use the
``KOYN_`` prefix. A ``.env`` file in the working directory is read as well.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Final

from pydantic import (
    AliasChoices,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_DB_PATH: Final[str] = "data/koyn.db"
DEFAULT_SUBSCRIPTIONS_PATH: Final[str] = "data/subscriptions.json"
DEFAULT_CATALOG_DIR: Final[Path] = Path(__file__).parent / "data" / "catalog"
DEFAULT_DEMO_TOKEN: Final[str] = "koyn_demo_2024"

JWT_ISSUER: Final[str] = "koyn.finance"
JWT_AUDIENCE: Final[str] = "koyn.finance-users"

# Daily request allowance per plan -> default
DEFAULT_PLAN_LIMITS: Final[dict[str, int]] = {
    "free": 1,
    "monthly": 10,
    "quarterly": 30,
    "yearly": 100,
}

DEFAULT_RETENTION_DAYS: Final[int] = 7
DEFAULT_PURGE_INTERVAL_SECONDS: Final[int] = 60 * 60


def _env(name: str) -> AliasChoices:
    return AliasChoices(name, f"KOYN_{name}")


class Settings(BaseSettings):
    """Immutable snapshot of the server configuration.

    Keyword arguments win over the environment, so tests build one directly
    with ``Settings(jwt_secret=...)``. Empty variables count as unset.
    """

    model_config = SettingsConfigDict(
        env_prefix="KOYN_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    jwt_secret: str | None = Field(default=None, validation_alias=_env("JWT_SECRET"))
    fmp_api_key: str | None = Field(default=None, validation_alias=_env("FMP_API_KEY"))
    gemini_api_key: str | None = Field(default=None, validation_alias=_env("GEMINI_API_KEY"))
    xai_api_key: str | None = Field(default=None, validation_alias=_env("XAI_API_KEY"))
    demo_token: str = Field(default=DEFAULT_DEMO_TOKEN, validation_alias=_env("DEMO_TOKEN"))

    free_limit: int = Field(default=DEFAULT_PLAN_LIMITS["free"], validation_alias=_env("FREE"))
    monthly_limit: int = Field(
        default=DEFAULT_PLAN_LIMITS["monthly"], validation_alias=_env("MONTHLY")
    )
    quarterly_limit: int = Field(
        default=DEFAULT_PLAN_LIMITS["quarterly"], validation_alias=_env("QUARTERLY")
    )
    yearly_limit: int = Field(
        default=DEFAULT_PLAN_LIMITS["yearly"], validation_alias=_env("YEARLY")
    )

    db_path: str = DEFAULT_DB_PATH
    subscriptions_path: Path = Path(DEFAULT_SUBSCRIPTIONS_PATH)
    catalog_dir: Path = DEFAULT_CATALOG_DIR
    usage_retention_days: int = Field(
        default=DEFAULT_RETENTION_DAYS, validation_alias=_env("USAGE_RETENTION_DAYS")
    )
    usage_purge_interval_seconds: int = Field(
        default=DEFAULT_PURGE_INTERVAL_SECONDS,
        validation_alias=_env("USAGE_PURGE_INTERVAL_SECONDS"),
    )

    @field_validator(
        "free_limit",
        "monthly_limit",
        "quarterly_limit",
        "yearly_limit",
        "usage_retention_days",
        "usage_purge_interval_seconds",
        mode="wrap",
    )
    @classmethod
    def _default_on_bad_integer(
        cls, value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo
    ) -> int:
        """A typo in one limit keeps its default instead of refusing to start."""
        try:
            return handler(value)
        except ValidationError:
            assert info.field_name is not None  # noqa: S101
            field = cls.model_fields[info.field_name]
            alias = field.validation_alias
            name = alias.choices[0] if isinstance(alias, AliasChoices) else info.field_name
            logger.warning("Ignoring non-integer %s=%r, using %d", name, value, field.default)
            return field.default

    @property
    def plan_limits(self) -> dict[str, int]:
        return {
            "free": self.free_limit,
            "monthly": self.monthly_limit,
            "quarterly": self.quarterly_limit,
            "yearly": self.yearly_limit,
        }


def load_settings() -> Settings:
    """Build a ``Settings`` instance from the current environment.

    Missing API keys are allowed: the matching upstream tier is simply skipped
    and the fallback chain moves on.
    """
    settings = Settings()
    logger.info(
        "Settings loaded: jwt=%s fmp=%s gemini=%s xai=%s limits=%s",
        "configured" if settings.jwt_secret else "missing",
        "configured" if settings.fmp_api_key else "missing",
        "configured" if settings.gemini_api_key else "missing",
        "configured" if settings.xai_api_key else "missing",
        settings.plan_limits,
    )
    return settings
