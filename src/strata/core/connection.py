"""Connection-source factory: build a source from a URL string.

This is the single entry point the CLI and the demo use to get a
:class:`~strata.core.protocols.ConnectionSource`; library users may also
construct the adapters directly.

Supported URLs
--------------
==========================  ==========================================  ===========================
Form                        Example                                     Source
==========================  ==========================================  ===========================
``memory``                  ``memory``, ``:memory:``, ``None``          SQLite RAM (``sqlite3``)
``sqlite``                  ``sqlite:///path/to/file.db``               SQLite file (``sqlite3``)
file path                   ``./data/app.db``                           SQLite file (``sqlite3``)
``postgresql``              ``postgresql://user:pw@host:5432/db``       SQLAlchemy engine
``postgres``                ``postgres://...`` (alias)                  SQLAlchemy engine
any ``scheme+driver``       ``mysql+pymysql://...``                     SQLAlchemy engine
==========================  ==========================================  ===========================

An unknown scheme, or a driver that is not installed, raises
:class:`~strata.core.errors.InvalidConfigError`; there is no silent fallback
to another backend.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import exc

from strata.core.adapters.base import BaseConnectionSource
from strata.core.adapters.sqlalchemy import SQLAlchemyConnectionSource
from strata.core.adapters.sqlite import SqliteConnectionSource
from strata.core.errors import InvalidConfigError
from strata.core.logging import get_logger
from strata.core.settings import StrataSettings, get_settings

logger = get_logger(__name__)

_ENGINE_SCHEMES = ("postgresql", "mysql", "mariadb", "sqlite")


# ── ConnectionInfo ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConnectionInfo:
    """What a URL resolves to."""

    backend: str
    """``"sqlite"`` for the built-in driver, ``"sqlalchemy"`` for an engine."""

    persistent: bool
    """Whether data survives process exit."""

    url: str
    """The URL, with PostgreSQL aliases normalised."""

    path: str | None = None
    """For file-based SQLite, the database path."""

    @property
    def is_sqlite(self) -> bool:
        return self.backend == "sqlite"


# ── URL parsing ──────────────────────────────────────────────────────────


def parse_url(url: str | None) -> ConnectionInfo:
    """Classify a database URL without opening anything.

    Raises:
        InvalidConfigError: The URL has a scheme strata cannot route.
    """
    if url is None or url.strip() in ("", "memory", ":memory:"):
        return ConnectionInfo("sqlite", persistent=False, url=":memory:")
    url = url.strip()

    for prefix in ("sqlite:///", "sqlite://"):
        if url.startswith(prefix):
            path = url[len(prefix):]
            if not path or path == ":memory:":
                return ConnectionInfo("sqlite", persistent=False, url=":memory:")
            return ConnectionInfo("sqlite", persistent=True, url=url, path=path)

    if "://" not in url:
        # Bare file path
        return ConnectionInfo("sqlite", persistent=True, url=url, path=url)

    scheme, rest = url.split("://", 1)
    if scheme == "postgres" or scheme.startswith("postgres+"):
        scheme = "postgresql" + scheme[len("postgres"):]
        url = f"{scheme}://{rest}"
    if scheme.split("+", 1)[0] not in _ENGINE_SCHEMES:
        raise InvalidConfigError("database_url", url, f"Unsupported database URL scheme {scheme!r}")
    return ConnectionInfo("sqlalchemy", persistent=True, url=url)


# ── Main factory ─────────────────────────────────────────────────────────


def create_connection_source(url: str | None = None, *, echo: bool = False) -> BaseConnectionSource:
    """Create a connection source for *url*.

    Parameters:
        url: Database URL, file path or ``"memory"``; see the module docs
        echo: Passed to the SQLAlchemy engine (ignored for ``sqlite3``)

    Raises:
        InvalidConfigError: Unroutable URL, or a missing database driver.
    """
    info = parse_url(url)
    if info.is_sqlite:
        if info.path is None:
            source: BaseConnectionSource = SqliteConnectionSource(":memory:")
        else:
            if not info.path.startswith("file:"):
                Path(info.path).parent.mkdir(parents=True, exist_ok=True)
            source = SqliteConnectionSource(info.path)
    else:
        try:
            source = SQLAlchemyConnectionSource(info.url, echo=echo)
        except (exc.ArgumentError, ImportError) as e:
            raise InvalidConfigError("database_url", info.url, f"Cannot create engine: {e}") from e
        except ValueError as e:
            # No strata dialect for the engine's backend
            raise InvalidConfigError("database_url", info.url, str(e)) from e
    logger.debug("connection_source_created", backend=info.backend, persistent=info.persistent)
    return source


def source_from_settings(settings: StrataSettings | None = None) -> BaseConnectionSource:
    """Connection source for the configured ``database_url``."""
    settings = settings or get_settings()
    return create_connection_source(settings.database_url, echo=settings.echo_sql)


__all__ = [
    "ConnectionInfo",
    "create_connection_source",
    "parse_url",
    "source_from_settings",
]
