"""SQL dialect abstraction for backend-agnostic statement building.

The query builder, the Dao and the schema helpers never write
backend-specific SQL. They ask a :class:`Dialect` for fragments
(placeholders, quoted identifiers, generated-key retrieval, paging, DDL
column types) and interpolate them into their templates.

Architecture::

    QueryBuilder / Dao / schema
    ┌────────────────────────────────────────────────────────────────┐
    │  sql = f"SELECT {cols} FROM {d.quote(table)} WHERE ..."        │
    │  sql += d.limit_offset(limit, offset)                          │
    └────────────────────────────────────────────────────────────────┘
                              │
                              ▼
    ┌────────────────┐ ┌──────────────────┐ ┌──────────────────┐
    │ SQLite         │ │ PostgreSQL       │ │ MySQL            │
    │ ?, "col"       │ │ %s, "col"        │ │ %s, `col`        │
    │ lastrowid      │ │ RETURNING id     │ │ lastrowid        │
    └────────────────┘ └──────────────────┘ └──────────────────┘

Examples:
    >>> d = SQLiteDialect()
    >>> d.placeholders(3)
    '?, ?, ?'
    >>> d.quote("account")
    '"account"'
    >>> get_dialect("postgresql").insert("account", ["name"], returning="id")
    'INSERT INTO "account" ("name") VALUES (%s) RETURNING "id"'

Guardrails:
    ❌ DON'T: Embed values in SQL text
    ✅ DO: Bind every value through placeholders

Tags:
    dialect, sql, abstraction, portability, strata
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Every method returns a **SQL fragment** (string) that is valid for
    the target database.
    """

    @property
    def name(self) -> str:
        """Human-readable dialect name (e.g. ``'sqlite'``)."""
        ...

    @property
    def returns_generated_keys(self) -> bool:
        """True if INSERT reports the new key through ``RETURNING`` rows
        rather than ``cursor.lastrowid``."""
        ...

    # -- Placeholder generation --------------------------------------------

    def placeholder(self, index: int) -> str:
        """Single positional placeholder (0-based index)."""
        ...

    def placeholders(self, count: int) -> str:
        """Comma-separated placeholder list."""
        ...

    # -- Identifiers -------------------------------------------------------

    def quote(self, identifier: str) -> str:
        """Quote a table or column name."""
        ...

    # -- DML helpers -------------------------------------------------------

    def insert(self, table: str, columns: list[str], returning: str | None = None) -> str:
        """``INSERT INTO table (cols) VALUES (…)`` with optional key retrieval.

        *returning* is honoured only when :attr:`returns_generated_keys`.
        An empty *columns* list inserts a row of defaults.
        """
        ...

    def limit_offset(self, limit: int | None, offset: int | None) -> str:
        """Trailing paging clause (leading space included), or ``''``."""
        ...

    # -- Transactions ------------------------------------------------------

    def savepoint(self, name: str) -> str:
        ...

    def release_savepoint(self, name: str) -> str:
        ...

    def rollback_to_savepoint(self, name: str) -> str:
        ...

    # -- DDL helpers -------------------------------------------------------

    def auto_increment(self) -> str:
        """DDL fragment for an auto-incrementing integer primary key."""
        ...

    def column_type(self, python_type: type) -> str:
        """DDL column type for a mapped Python type."""
        ...

    def table_exists_query(self) -> str:
        """Query taking one placeholder (table name) that returns rows iff
        the table exists."""
        ...


# =========================================================================
# Concrete Dialect Implementations
# =========================================================================


class _StandardSavepoints:
    """SQL:1999 savepoint statements shared by every supported backend."""

    def savepoint(self, name: str) -> str:
        return f"SAVEPOINT {name}"

    def release_savepoint(self, name: str) -> str:
        return f"RELEASE SAVEPOINT {name}"

    def rollback_to_savepoint(self, name: str) -> str:
        return f"ROLLBACK TO SAVEPOINT {name}"


class SQLiteDialect(_StandardSavepoints):
    """SQLite dialect: ``?`` placeholders, ``cursor.lastrowid`` keys."""

    _TYPES = {int: "INTEGER", str: "TEXT", float: "REAL", bool: "INTEGER", bytes: "BLOB"}

    @property
    def name(self) -> str:
        return "sqlite"

    @property
    def returns_generated_keys(self) -> bool:
        return False

    # -- Placeholders ------------------------------------------------------

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    # -- DML ---------------------------------------------------------------

    def insert(self, table: str, columns: list[str], returning: str | None = None) -> str:  # noqa: ARG002
        if not columns:
            return f"INSERT INTO {self.quote(table)} DEFAULT VALUES"
        cols = ", ".join(self.quote(c) for c in columns)
        return f"INSERT INTO {self.quote(table)} ({cols}) VALUES ({self.placeholders(len(columns))})"

    def limit_offset(self, limit: int | None, offset: int | None) -> str:
        if limit is None and offset is None:
            return ""
        # SQLite only accepts OFFSET after a LIMIT; -1 means unbounded.
        sql = f" LIMIT {limit if limit is not None else -1}"
        if offset is not None:
            sql += f" OFFSET {offset}"
        return sql

    # -- DDL ---------------------------------------------------------------

    def auto_increment(self) -> str:
        return "INTEGER PRIMARY KEY AUTOINCREMENT"

    def column_type(self, python_type: type) -> str:
        return self._TYPES.get(python_type, "TEXT")

    def table_exists_query(self) -> str:
        return "SELECT name FROM sqlite_master WHERE type='table' AND name = ?"


class PostgreSQLDialect(_StandardSavepoints):
    """PostgreSQL dialect: ``%s`` placeholders (psycopg2), ``RETURNING`` keys."""

    _TYPES = {
        int: "INTEGER",
        str: "TEXT",
        float: "DOUBLE PRECISION",
        bool: "BOOLEAN",
        bytes: "BYTEA",
    }

    @property
    def name(self) -> str:
        return "postgresql"

    @property
    def returns_generated_keys(self) -> bool:
        return True

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def insert(self, table: str, columns: list[str], returning: str | None = None) -> str:
        if columns:
            cols = ", ".join(self.quote(c) for c in columns)
            sql = f"INSERT INTO {self.quote(table)} ({cols}) VALUES ({self.placeholders(len(columns))})"
        else:
            sql = f"INSERT INTO {self.quote(table)} DEFAULT VALUES"
        if returning:
            sql += f" RETURNING {self.quote(returning)}"
        return sql

    def limit_offset(self, limit: int | None, offset: int | None) -> str:
        sql = ""
        if limit is not None:
            sql += f" LIMIT {limit}"
        if offset is not None:
            sql += f" OFFSET {offset}"
        return sql

    def auto_increment(self) -> str:
        return "SERIAL PRIMARY KEY"

    def column_type(self, python_type: type) -> str:
        return self._TYPES.get(python_type, "TEXT")

    def table_exists_query(self) -> str:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = %s"
        )


class MySQLDialect(_StandardSavepoints):
    """MySQL/MariaDB dialect: ``%s`` placeholders, backtick identifiers."""

    _TYPES = {int: "INTEGER", str: "VARCHAR(255)", float: "DOUBLE", bool: "BOOLEAN", bytes: "BLOB"}

    @property
    def name(self) -> str:
        return "mysql"

    @property
    def returns_generated_keys(self) -> bool:
        return False

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def quote(self, identifier: str) -> str:
        return "`" + identifier.replace("`", "``") + "`"

    def insert(self, table: str, columns: list[str], returning: str | None = None) -> str:  # noqa: ARG002
        cols = ", ".join(self.quote(c) for c in columns)
        return f"INSERT INTO {self.quote(table)} ({cols}) VALUES ({self.placeholders(len(columns))})"

    def limit_offset(self, limit: int | None, offset: int | None) -> str:
        if limit is None and offset is None:
            return ""
        # MySQL has no OFFSET without LIMIT; this is the documented maximum.
        sql = f" LIMIT {limit if limit is not None else 18446744073709551615}"
        if offset is not None:
            sql += f" OFFSET {offset}"
        return sql

    def auto_increment(self) -> str:
        return "INTEGER PRIMARY KEY AUTO_INCREMENT"

    def column_type(self, python_type: type) -> str:
        return self._TYPES.get(python_type, "TEXT")

    def table_exists_query(self) -> str:
        return (
            "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s"
        )


# =========================================================================
# Registry / Factory
# =========================================================================

# Pre-instantiated singletons (dialects are stateless)
_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
    "postgres": PostgreSQLDialect(),  # alias
    "mysql": MySQLDialect(),
    "mariadb": MySQLDialect(),  # alias
}


def get_dialect(db_type: str) -> Dialect:
    """Get a dialect by database type name.

    Args:
        db_type: One of ``'sqlite'``, ``'postgresql'``, ``'postgres'``,
                 ``'mysql'``, ``'mariadb'``.

    Raises:
        ValueError: If ``db_type`` is not recognised.
    """
    key = db_type.lower()
    if key not in _DIALECTS:
        raise ValueError(
            f"Unknown dialect '{db_type}'. "
            f"Supported: {sorted(set(_DIALECTS) - {'postgres', 'mariadb'})}"
        )
    return _DIALECTS[key]


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation (third-party drivers, test doubles)."""
    _DIALECTS[name.lower()] = dialect


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "MySQLDialect",
    "get_dialect",
    "register_dialect",
]
