"""
Table DDL derived from an entity mapper.

Builds ``CREATE TABLE`` / ``DROP TABLE`` statements from a
:class:`~strata.core.mapping.EntityMapper` and the source's dialect, so an
entity's table can be created for demos and tests without a migration tool.
A generated identity becomes the dialect's auto-increment primary key;
required fields become ``NOT NULL``.

Examples:
    >>> create_table(source, ACCOUNT_MAPPER)
    >>> table_exists(source, "account")
    True
    >>> create_table_sql(SQLiteDialect(), ACCOUNT_MAPPER)
    'CREATE TABLE IF NOT EXISTS "account" ("id" INTEGER PRIMARY KEY AUTOINCREMENT, ...)'

Tags:
    schema, ddl, table, strata
"""

from __future__ import annotations

from typing import Any

from strata.core.dialect import Dialect
from strata.core.logging import get_logger
from strata.core.mapping import EntityMapper
from strata.core.protocols import ConnectionSource

logger = get_logger(__name__)


def create_table_sql(dialect: Dialect, mapper: EntityMapper[Any], *, if_not_exists: bool = True) -> str:
    columns = []
    for f in mapper.fields:
        if f.identity and f.generated:
            columns.append(f"{dialect.quote(f.column)} {dialect.auto_increment()}")
            continue
        column = f"{dialect.quote(f.column)} {dialect.column_type(f.type)}"
        if f.identity:
            column += " PRIMARY KEY"
        elif f.required:
            column += " NOT NULL"
        columns.append(column)
    guard = "IF NOT EXISTS " if if_not_exists else ""
    return f"CREATE TABLE {guard}{dialect.quote(mapper.table)} ({', '.join(columns)})"


def drop_table_sql(dialect: Dialect, table: str, *, if_exists: bool = True) -> str:
    guard = "IF EXISTS " if if_exists else ""
    return f"DROP TABLE {guard}{dialect.quote(table)}"


def create_table(source: ConnectionSource, mapper: EntityMapper[Any], *, if_not_exists: bool = True) -> None:
    """Create the mapper's table. Safe to call repeatedly by default."""
    sql = create_table_sql(source.dialect, mapper, if_not_exists=if_not_exists)
    _run(source, sql)
    logger.info("table_created", table=mapper.table)


def drop_table(source: ConnectionSource, mapper: EntityMapper[Any], *, if_exists: bool = True) -> None:
    _run(source, drop_table_sql(source.dialect, mapper.table, if_exists=if_exists))
    logger.info("table_dropped", table=mapper.table)


def table_exists(source: ConnectionSource, table: str) -> bool:
    conn = source.get_connection()
    try:
        cursor = conn.execute(source.dialect.table_exists_query(), (table,))
        try:
            return cursor.fetchone() is not None
        finally:
            cursor.close()
    finally:
        source.release_connection(conn)


def _run(source: ConnectionSource, sql: str) -> None:
    conn = source.get_connection()
    try:
        conn.execute(sql).close()
    finally:
        source.release_connection(conn)


__all__ = [
    "create_table",
    "create_table_sql",
    "drop_table",
    "drop_table_sql",
    "table_exists",
]
