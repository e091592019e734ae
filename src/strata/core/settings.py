"""Runtime settings for strata.

Configuration is read from ``STRATA_``-prefixed environment variables and an
optional ``.env`` file, validated by pydantic at startup.

Examples:
    >>> import os
    >>> os.environ["STRATA_DATABASE_URL"] = "sqlite:///account.db"
    >>> get_settings.cache_clear()
    >>> get_settings().database_url
    'sqlite:///account.db'

Fields
──────
database_url : Where :func:`~strata.core.connection.create_connection_source` connects
log_level    : structlog level
json_logs    : Force JSON (True) or console (False) rendering; auto when unset
fetch_size   : Rows fetched per cursor round-trip during lazy iteration
echo_sql     : Log every statement at INFO instead of DEBUG
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StrataSettings(BaseSettings):
    """Settings shared by the DAL, the demo and the CLI."""

    model_config = SettingsConfigDict(
        env_prefix="STRATA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite:///:memory:",
        description="Database URL, SQLite path, or 'memory'",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None
    echo_sql: bool = False

    # ── Iteration ────────────────────────────────────────────────
    fetch_size: int = Field(default=100, ge=1)

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level


@lru_cache(maxsize=1)
def get_settings() -> StrataSettings:
    """Return the process-wide settings (cached; ``cache_clear()`` to reload)."""
    return StrataSettings()


__all__ = [
    "StrataSettings",
    "get_settings",
]
