"""
Connection sources for the supported backends.

- :class:`SqliteConnectionSource` - standard-library ``sqlite3``, one shared
  connection (the reference backend)
- :class:`SQLAlchemyConnectionSource` - any SQLAlchemy engine, pooled
  connections

Both satisfy :class:`~strata.core.protocols.ConnectionSource`.
"""

from .base import BaseConnectionSource
from .sqlalchemy import SQLAlchemyConnectionSource, create_strata_engine
from .sqlite import SqliteConnectionSource

__all__ = [
    "BaseConnectionSource",
    "SQLAlchemyConnectionSource",
    "SqliteConnectionSource",
    "create_strata_engine",
]
