"""SQLAlchemy connection source.

Drives any backend SQLAlchemy has a driver for (PostgreSQL via psycopg2,
MySQL, SQLite, ...) through an :class:`~sqlalchemy.engine.Engine`. Each
``get_connection`` checks a connection out of the engine's pool and
``release_connection`` returns it.

Statements are passed to the driver unchanged with
:meth:`~sqlalchemy.engine.Connection.exec_driver_sql`, so the placeholders
produced by the matching :class:`~strata.core.dialect.Dialect` (``?`` for
pysqlite, ``%s`` for psycopg2 and mysqlclient) are what the driver expects.

Usage::

    source = SQLAlchemyConnectionSource("postgresql+psycopg2://app@db/app")
    accounts = Dao(source, ACCOUNT_MAPPER)
"""

from __future__ import annotations

from collections import deque
from collections.abc import Sequence
from typing import Any

from sqlalchemy import create_engine, event, exc
from sqlalchemy.engine import Connection as SAConnection
from sqlalchemy.engine import CursorResult, Engine, make_url
from sqlalchemy.pool import StaticPool

from strata.core.dialect import get_dialect
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


_READ_VERBS = frozenset({"SELECT", "WITH", "PRAGMA", "SHOW", "EXPLAIN", "VALUES"})


def _is_read(sql: str) -> bool:
    words = sql.split(None, 1)
    return bool(words) and words[0].upper() in _READ_VERBS


def translate_error(error: exc.SQLAlchemyError, sql: str | None = None) -> StorageError:
    """Map a SQLAlchemy exception onto the strata storage taxonomy."""
    context = ErrorContext(statement=sql)
    message = f"Database error: {error}"
    if isinstance(error, exc.IntegrityError):
        return IntegrityError(message, context=context, cause=error)
    if isinstance(error, (exc.DisconnectionError, exc.ResourceClosedError)) or (
        isinstance(error, exc.DBAPIError) and error.connection_invalidated
    ):
        return StorageConnectionError(message, context=context, cause=error)
    return StorageError(message, context=context, cause=error)


def create_strata_engine(url: str, *, echo: bool = False, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    In-memory SQLite uses :class:`~sqlalchemy.pool.StaticPool` so every
    checkout sees the same database. For any SQLite URL, foreign keys are
    enabled on connect and pysqlite's own transaction handling is turned
    off: SQLAlchemy emits ``BEGIN`` itself, so savepoints nest inside the
    outer transaction instead of starting one of their own.
    """
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        if parsed.database in (None, "", ":memory:"):
            kwargs.setdefault("poolclass", StaticPool)
        engine = create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _emit_begin(conn: SAConnection) -> None:
            conn.exec_driver_sql("BEGIN")

        return engine

    return create_engine(url, echo=echo, **kwargs)


class SQLAlchemyCursor:
    """Adapter: ``CursorResult`` → ``Cursor`` protocol.

    Rows come back as plain dicts keyed by column name, and ``description``
    is synthesised from the result keys. ``rows`` holds rows already drained
    from a result whose transaction has been committed.
    """

    def __init__(self, result: CursorResult, sql: str, *, rows: list[dict[str, Any]] | None = None):
        self._result = result
        self._sql = sql
        self._rows = deque(rows) if rows is not None else None
        self._keys = list(result.keys()) if result.returns_rows else None
        self._rowcount = result.rowcount
        self._lastrowid = None if result.returns_rows else result.lastrowid

    @property
    def description(self) -> list[tuple[Any, ...]] | None:
        if self._keys is None:
            return None
        return [(k, None, None, None, None, None, None) for k in self._keys]

    @property
    def rowcount(self) -> int:
        return self._rowcount

    @property
    def lastrowid(self) -> Any:
        return self._lastrowid

    def fetchone(self) -> dict[str, Any] | None:
        rows = self.fetchmany(1)
        return rows[0] if rows else None

    def fetchmany(self, size: int = 100) -> list[dict[str, Any]]:
        if self._rows is not None:
            return [self._rows.popleft() for _ in range(min(size, len(self._rows)))]
        try:
            return [dict(r._mapping) for r in self._result.fetchmany(size)]
        except exc.SQLAlchemyError as e:
            raise translate_error(e, self._sql) from e

    def fetchall(self) -> list[dict[str, Any]]:
        if self._rows is not None:
            rows, self._rows = list(self._rows), deque()
            return rows
        try:
            return [dict(r._mapping) for r in self._result.fetchall()]
        except exc.SQLAlchemyError as e:
            raise translate_error(e, self._sql) from e

    def close(self) -> None:
        self._result.close()


class SQLAlchemyConnection:
    """Adapter: SQLAlchemy ``Connection`` → ``Connection`` protocol.

    Outside ``begin()`` every statement that is not a read is committed right
    after it runs, matching the autocommit contract of the protocol. Rows a
    write returns (``INSERT ... RETURNING``) are drained before that commit.
    """

    def __init__(self, connection: SAConnection) -> None:
        self._conn = connection
        self._tx: Any = None
        self._savepoints: dict[str, Any] = {}

    @property
    def in_transaction(self) -> bool:
        return self._tx is not None and self._tx.is_active

    def execute(self, sql: str, params: Sequence[Any] = ()) -> SQLAlchemyCursor:
        try:
            result = self._conn.exec_driver_sql(sql, tuple(params) if params else None)
            if self.in_transaction or _is_read(sql):
                return SQLAlchemyCursor(result, sql)
            rows = [dict(r._mapping) for r in result] if result.returns_rows else None
            cursor = SQLAlchemyCursor(result, sql, rows=rows)
            self._conn.commit()
        except exc.SQLAlchemyError as e:
            raise translate_error(e, sql) from e
        return cursor

    def begin(self) -> None:
        try:
            if self._conn.in_transaction():
                # End the implicit transaction autobegun by earlier reads.
                self._conn.commit()
            self._tx = self._conn.begin()
        except exc.SQLAlchemyError as e:
            raise translate_error(e, "BEGIN") from e

    def commit(self) -> None:
        tx, self._tx = self._tx, None
        self._savepoints.clear()
        try:
            if tx is not None:
                tx.commit()
            else:
                self._conn.commit()
        except exc.SQLAlchemyError as e:
            raise translate_error(e, "COMMIT") from e

    def rollback(self) -> None:
        tx, self._tx = self._tx, None
        self._savepoints.clear()
        try:
            if tx is not None:
                tx.rollback()
            else:
                self._conn.rollback()
        except exc.SQLAlchemyError as e:
            raise translate_error(e, "ROLLBACK") from e

    def savepoint(self, name: str) -> None:
        try:
            self._savepoints[name] = self._conn.begin_nested()
        except exc.SQLAlchemyError as e:
            raise translate_error(e, f"SAVEPOINT {name}") from e

    def release_savepoint(self, name: str) -> None:
        try:
            self._savepoints.pop(name).commit()
        except exc.SQLAlchemyError as e:
            raise translate_error(e, f"RELEASE SAVEPOINT {name}") from e

    def rollback_to_savepoint(self, name: str) -> None:
        try:
            self._savepoints.pop(name).rollback()
        except exc.SQLAlchemyError as e:
            raise translate_error(e, f"ROLLBACK TO SAVEPOINT {name}") from e

    def close(self) -> None:
        self._conn.close()


class SQLAlchemyConnectionSource(BaseConnectionSource):
    """
    Connection source over a pooled SQLAlchemy engine.

    Parameters:
        engine: An :class:`~sqlalchemy.engine.Engine`, or a URL passed to
                :func:`create_strata_engine`
        **engine_kwargs: Forwarded to :func:`create_strata_engine` when
                         *engine* is a URL
    """

    def __init__(self, engine: Engine | str, **engine_kwargs: Any):
        if isinstance(engine, str):
            engine = create_strata_engine(engine, **engine_kwargs)
        super().__init__(get_dialect(engine.dialect.name))
        self.engine = engine

    def _acquire(self) -> Connection:
        try:
            return SQLAlchemyConnection(self.engine.connect())
        except exc.SQLAlchemyError as e:
            raise StorageConnectionError(f"Cannot connect: {e}", cause=e) from e

    def release_connection(self, conn: Connection) -> None:
        conn.close()

    def _shutdown(self) -> None:
        self.engine.dispose()
        logger.debug("engine_disposed", url=self.engine.url.render_as_string(hide_password=True))

    def __repr__(self) -> str:
        return f"SQLAlchemyConnectionSource({self.engine.url!r})"


__all__ = [
    "SQLAlchemyConnection",
    "SQLAlchemyConnectionSource",
    "SQLAlchemyCursor",
    "create_strata_engine",
    "translate_error",
]
