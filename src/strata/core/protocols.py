"""
Canonical protocol definitions for strata.

The DAL never imports a database driver. It consumes three structural
contracts defined here, and any object with the right shape satisfies them:

Architecture:
    ::

        protocols.py
        ├── Cursor            — DB-API shaped handle over one statement's rows
        ├── Connection        — executes statements, owns transaction state
        └── ConnectionSource  — hands out connections and the SQL dialect

    Implementations:
    ┌──────────────────────────────────────────────────────────────────┐
    │ SqliteConnectionSource     → one shared sqlite3 connection       │
    │ SQLAlchemyConnectionSource → pooled SQLAlchemy Engine connections│
    └──────────────────────────────────────────────────────────────────┘

Connection contract:
    - Statements executed outside ``begin()`` are committed immediately.
    - ``begin()`` on a connection already in a transaction is an error;
      nesting goes through savepoints.
    - Driver exceptions are translated to
      :class:`~strata.core.errors.StorageError` subclasses.

Guardrails:
    ❌ DON'T: Import sqlite3 or sqlalchemy outside the adapters and the
       connection factory
    ✅ DO: Depend on these protocols and let the source pick the driver

Tags:
    protocol, connection, cursor, database, strata, contracts
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from strata.core.dialect import Dialect


@runtime_checkable
class Cursor(Protocol):
    """
    Live handle over the result of one statement.

    Rows may be fetched lazily; a cursor holds backend resources until
    ``close()`` is called. ``sqlite3.Cursor`` satisfies this protocol as-is.
    """

    @property
    def description(self) -> Sequence[Sequence[Any]] | None:
        """DB-API 2.0 column description; first item of each entry is the name."""
        ...

    @property
    def rowcount(self) -> int:
        """Rows affected by the last DML statement (-1 when unknown)."""
        ...

    @property
    def lastrowid(self) -> Any:
        """Generated key of the last inserted row, when the backend reports it."""
        ...

    def fetchone(self) -> Any:
        ...

    def fetchmany(self, size: int = ...) -> list:
        ...

    def fetchall(self) -> list:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class Connection(Protocol):
    """
    Minimal SYNCHRONOUS connection for the DAL.

    Architecture:
        ::

            Connection Protocol:
            ┌────────────────────────────────────────────────────────┐
            │ execute(sql, params)       → Cursor                    │
            │ begin()                    → start explicit txn        │
            │ commit() / rollback()      → end explicit txn          │
            │ savepoint(name)            → nested scope              │
            │ release_savepoint(name)    → keep nested effects       │
            │ rollback_to_savepoint(name)→ undo nested effects       │
            │ in_transaction             → explicit txn active?      │
            │ close()                    → release driver resources  │
            └────────────────────────────────────────────────────────┘

    Examples:
        >>> conn.begin()
        >>> conn.execute("DELETE FROM account WHERE id = ?", (7,))
        >>> conn.rollback()
    """

    @property
    def in_transaction(self) -> bool:
        ...

    def execute(self, sql: str, params: Sequence[Any] = ()) -> Cursor:
        """Execute one statement with positional parameters. SYNC."""
        ...

    def begin(self) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def savepoint(self, name: str) -> None:
        ...

    def release_savepoint(self, name: str) -> None:
        ...

    def rollback_to_savepoint(self, name: str) -> None:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class ConnectionSource(Protocol):
    """
    Supplier of connections, consumed by Dao and TransactionManager.

    The Dao borrows a connection for the duration of one call
    (``get_connection`` … ``release_connection``); it never owns the source.
    A source may hand out the same connection every time (SQLite) or pool
    them (SQLAlchemy).
    """

    @property
    def dialect(self) -> Dialect:
        """SQL dialect spoken by connections from this source."""
        ...

    def get_connection(self) -> Connection:
        ...

    def release_connection(self, conn: Connection) -> None:
        ...

    def close(self) -> None:
        ...


__all__ = [
    "Cursor",
    "Connection",
    "ConnectionSource",
]
