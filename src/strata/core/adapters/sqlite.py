"""SQLite connection source.

Uses the built-in sqlite3 module with one shared connection per source, the
way a single-file (or in-memory) database is normally driven. Suitable for:

- Development and testing
- Embedded, single-process applications

The connection runs in autocommit mode (``isolation_level=None``): a
statement outside ``begin()`` is its own transaction, and explicit
``BEGIN``/``COMMIT``/``ROLLBACK`` are issued only by the transaction manager.
Because every Dao call borrows the same connection, a statement issued while a
transaction is open joins that transaction.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from typing import Any

from strata.core.dialect import SQLiteDialect
from strata.core.errors import (
    ErrorContext,
    IntegrityError,
    StorageConnectionError,
    StorageError,
)
from strata.core.logging import get_logger
from strata.core.protocols import Connection

from .base import BaseConnectionSource

logger = get_logger(__name__)


def translate_error(error: sqlite3.Error, sql: str | None = None) -> StorageError:
    """Map a sqlite3 exception onto the strata storage taxonomy."""
    context = ErrorContext(statement=sql)
    message = f"SQLite error: {error}"
    if isinstance(error, sqlite3.IntegrityError):
        return IntegrityError(message, context=context, cause=error)
    if isinstance(error, sqlite3.ProgrammingError) and "closed" in str(error).lower():
        return StorageConnectionError(message, context=context, cause=error)
    return StorageError(message, context=context, cause=error)


class SqliteCursor:
    """Adapter: ``sqlite3.Cursor`` → ``Cursor`` protocol with translated errors."""

    def __init__(self, cursor: sqlite3.Cursor, sql: str):
        self._cursor = cursor
        self._sql = sql

    @property
    def description(self) -> Any:
        return self._cursor.description

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    @property
    def lastrowid(self) -> Any:
        return self._cursor.lastrowid

    def fetchone(self) -> Any:
        try:
            return self._cursor.fetchone()
        except sqlite3.Error as e:
            raise translate_error(e, self._sql) from e

    def fetchmany(self, size: int = 100) -> list:
        try:
            return self._cursor.fetchmany(size)
        except sqlite3.Error as e:
            raise translate_error(e, self._sql) from e

    def fetchall(self) -> list:
        try:
            return self._cursor.fetchall()
        except sqlite3.Error as e:
            raise translate_error(e, self._sql) from e

    def close(self) -> None:
        self._cursor.close()


class SqliteConnection:
    """Adapter: ``sqlite3.Connection`` → ``Connection`` protocol.

    Each ``execute`` opens its own cursor so a lazy iteration can stay open
    while other statements run on the same connection.
    """

    def __init__(self, path: str = ":memory:", *, timeout: float = 5.0) -> None:
        uri = path.startswith("file:")
        try:
            self._conn = sqlite3.connect(
                path,
                timeout=timeout,
                check_same_thread=False,
                isolation_level=None,
                uri=uri,
            )
        except sqlite3.Error as e:
            raise StorageConnectionError(f"Failed to connect to SQLite: {e}", cause=e) from e
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._dialect = SQLiteDialect()

    # -- Connection protocol -----------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._conn.in_transaction

    def execute(self, sql: str, params: Sequence[Any] = ()) -> SqliteCursor:
        try:
            return SqliteCursor(self._conn.execute(sql, tuple(params)), sql)
        except sqlite3.Error as e:
            raise translate_error(e, sql) from e

    def begin(self) -> None:
        self._run("BEGIN")

    def commit(self) -> None:
        try:
            self._conn.commit()
        except sqlite3.Error as e:
            raise translate_error(e, "COMMIT") from e

    def rollback(self) -> None:
        try:
            self._conn.rollback()
        except sqlite3.Error as e:
            raise translate_error(e, "ROLLBACK") from e

    def savepoint(self, name: str) -> None:
        self._run(self._dialect.savepoint(name))

    def release_savepoint(self, name: str) -> None:
        self._run(self._dialect.release_savepoint(name))

    def rollback_to_savepoint(self, name: str) -> None:
        # ROLLBACK TO leaves the savepoint on the stack; release it as well.
        self._run(self._dialect.rollback_to_savepoint(name))
        self._run(self._dialect.release_savepoint(name))

    def close(self) -> None:
        self._conn.close()

    def _run(self, sql: str) -> None:
        self.execute(sql).close()

    def __repr__(self) -> str:
        return f"SqliteConnection({self._conn!r})"


class SqliteConnectionSource(BaseConnectionSource):
    """
    Connection source over one shared SQLite connection.

    The connection is opened lazily on first use and closed with the source.
    ``release_connection`` is a no-op: the connection lives as long as the
    source does.
    """

    def __init__(self, path: str = ":memory:", *, timeout: float = 5.0):
        super().__init__(SQLiteDialect())
        self.path = path
        self._timeout = timeout
        self._conn: SqliteConnection | None = None

    def _acquire(self) -> Connection:
        if self._conn is None:
            self._conn = SqliteConnection(self.path, timeout=self._timeout)
            logger.debug("sqlite_connected", path=self.path)
        return self._conn

    def release_connection(self, conn: Connection) -> None:
        pass

    def _shutdown(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("sqlite_closed", path=self.path)

    def __repr__(self) -> str:
        return f"SqliteConnectionSource(path={self.path!r}, closed={self.closed})"


__all__ = [
    "SqliteConnection",
    "SqliteConnectionSource",
    "SqliteCursor",
    "translate_error",
]
