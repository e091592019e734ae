"""
Dao: typed repository over one entity kind.

A :class:`Dao` pairs an :class:`~strata.core.mapping.EntityMapper` with a
:class:`~strata.core.protocols.ConnectionSource` and exposes the lifecycle
(create/update/delete), point and bulk reads, prepared-query execution and
lazy iteration. It holds no per-call state: every call borrows a connection
from the source and gives it back before returning (lazy iteration gives it
back when the iterator closes).

Architecture:
    ::

        caller ── Account ──► Dao.create ──mapper.insert_row──► INSERT ──► id
                                  │                                       │
                                  └────────── mapper.set_id ◄─────────────┘

        Which connection a call uses:

        dao.bind(tx) ........................ tx.connection (explicit)
        unbound, tx active on this thread ... tx.connection (joins the scope)
        otherwise ........................... source.get_connection() per call

Examples:
    >>> accounts = Dao(source, ACCOUNT_MAPPER)
    >>> jim = Account("Jim", "secret")
    >>> accounts.create(jim)
    1
    >>> accounts.query_for_id(jim.id) == jim
    True
    >>> qb = accounts.query_builder()
    >>> qb.where().like("name", "J%")
    >>> [a.name for a in accounts.query(qb.prepare())]
    ['Jim']

Guardrails:
    ❌ DON'T: ``create()`` an entity that already has an id
    ✅ DO: ``update()`` it, or ``create_if_not_exists()``

    ❌ DON'T: Leave a partially consumed ``iterate()`` open
    ✅ DO: ``with dao.iterate() as it:`` or ``it.close()``

Tags:
    dao, repository, crud, entity, strata
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from functools import partial
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from strata.core.dialect import Dialect
from strata.core.errors import (
    AlreadyManagedError,
    ErrorContext,
    NotManagedError,
    QueryError,
    StorageError,
    TransactionStateError,
)
from strata.core.iteration import CloseableIterator, row_to_mapping
from strata.core.logging import get_logger
from strata.core.mapping import EntityMapper
from strata.core.protocols import Connection, ConnectionSource, Cursor
from strata.core.query import PreparedQuery, QueryBuilder
from strata.core.settings import get_settings
from strata.core.transaction import current_transaction

if TYPE_CHECKING:
    from strata.core.transaction import Transaction

logger = get_logger(__name__)

E = TypeVar("E")


class Dao(Generic[E]):
    """
    Repository for entities of one type.

    Parameters:
        source: Where connections come from; borrowed, never owned
        mapper: Entity ↔ row mapping for the entity type
        transaction: Run every call in this transaction (see :meth:`bind`)
        fetch_size: Rows per batch for :meth:`iterate`; defaults to the
                    ``fetch_size`` setting
    """

    def __init__(
        self,
        source: ConnectionSource,
        mapper: EntityMapper[E],
        *,
        transaction: Transaction | None = None,
        fetch_size: int | None = None,
    ):
        settings = get_settings()
        self.source = source
        self.mapper = mapper
        self.transaction = transaction
        self.fetch_size = fetch_size or settings.fetch_size
        self._echo = settings.echo_sql

    @property
    def dialect(self) -> Dialect:
        return self.source.dialect

    def bind(self, transaction: Transaction) -> Dao[E]:
        """Copy of this Dao whose calls run on *transaction*'s connection.

        Calls on the bound copy raise :class:`TransactionStateError` once the
        transaction has committed or rolled back.
        """
        if transaction.source is not self.source:
            raise TransactionStateError(
                f"Transaction {transaction.tx_id} belongs to a different connection source"
            )
        return Dao(self.source, self.mapper, transaction=transaction, fetch_size=self.fetch_size)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def create(self, entity: E) -> int:
        """Insert a transient entity and assign its storage-generated id.

        Returns:
            1

        Raises:
            AlreadyManagedError: The entity already has an id.
        """
        if self.mapper.identity.generated and self.mapper.is_managed(entity):
            raise AlreadyManagedError(
                f"{self.mapper.entity_name} already has id {self.mapper.get_id(entity)!r}",
                context=self._context(),
            )
        return self._insert(entity, self.mapper.insert_row(entity))

    def update(self, entity: E) -> int:
        """Overwrite every mapped field of the row with the entity's id.

        Returns:
            Rows affected; 0 when the row no longer exists.

        Raises:
            NotManagedError: The entity has no id.
        """
        entity_id = self._require_id(entity, "update")
        d = self.dialect
        fields = [f for f in self.mapper.fields if not f.identity]
        if not fields:
            return 1 if self.id_exists(entity_id) else 0
        assignments = ", ".join(
            f"{d.quote(f.column)} = {d.placeholder(i)}" for i, f in enumerate(fields)
        )
        sql = (
            f"UPDATE {d.quote(self.mapper.table)} SET {assignments} "
            f"WHERE {self._id_predicate(len(fields))}"
        )
        params = [f.getter(entity) for f in fields] + [entity_id]
        return self._write(sql, params)

    def delete(self, entity: E) -> int:
        """Delete the entity's row. Returns rows affected (0 or 1)."""
        return self.delete_by_id(self._require_id(entity, "delete"))

    def delete_by_id(self, entity_id: Any) -> int:
        sql = f"DELETE FROM {self.dialect.quote(self.mapper.table)} WHERE {self._id_predicate(0)}"
        return self._write(sql, [entity_id])

    def refresh(self, entity: E) -> int:
        """Reload every field from storage. Returns rows found (0 or 1)."""
        stored = self.query_for_id(self._require_id(entity, "refresh"))
        if stored is None:
            return 0
        self.mapper.copy_into(stored, entity)
        return 1

    def create_if_not_exists(self, entity: E) -> E:
        """Return the stored entity with this id, creating it when missing."""
        if not self.mapper.is_managed(entity):
            self.create(entity)
            return entity
        stored = self.query_for_id(self.mapper.get_id(entity))
        if stored is not None:
            return stored
        self._insert(entity, self.mapper.to_row(entity))
        return entity

    # =========================================================================
    # READS
    # =========================================================================

    def query_for_id(self, entity_id: Any) -> E | None:
        """Point lookup; ``None`` when no row has this id."""
        sql = f"{self._select()} WHERE {self._id_predicate(0)}"
        with self._connection() as conn:
            cursor = self._execute(conn, sql, [entity_id])
            try:
                row = cursor.fetchone()
            finally:
                cursor.close()
        return None if row is None else self.mapper.from_row(row_to_mapping(cursor, row))

    def id_exists(self, entity_id: Any) -> bool:
        d = self.dialect
        sql = f"SELECT 1 FROM {d.quote(self.mapper.table)} WHERE {self._id_predicate(0)}"
        with self._connection() as conn:
            cursor = self._execute(conn, sql, [entity_id])
            try:
                return cursor.fetchone() is not None
            finally:
                cursor.close()

    def query_for_all(self) -> list[E]:
        """Every stored entity, in the store's natural order."""
        return self.query(self.query_builder().prepare())

    def query_for_eq(self, field: str, value: Any) -> list[E]:
        qb = self.query_builder()
        qb.where().eq(field, value)
        return self.query(qb.prepare())

    def query(self, prepared: PreparedQuery[E]) -> list[E]:
        """Execute a prepared query and return every matching entity.

        Raises:
            QueryError: *prepared* was built for another entity type.
            UnboundArgumentError: A deferred argument has no value.
        """
        return self._fetch(prepared, lambda cursor: cursor.fetchall())

    def query_for_first(self, prepared: PreparedQuery[E]) -> E | None:
        """First row of a prepared query, or ``None``."""
        found = self._fetch(prepared, _first_row)
        return found[0] if found else None

    def count_of(self, prepared: PreparedQuery[E] | None = None) -> int:
        """Rows matching *prepared*'s predicate (all rows when omitted).

        ORDER BY, LIMIT and OFFSET do not affect the count.
        """
        prepared = self._check(prepared or self.query_builder().prepare())
        params = prepared.bind()
        with self._connection() as conn:
            cursor = self._execute(conn, prepared.count_statement, params)
            try:
                row = cursor.fetchone()
            finally:
                cursor.close()
        return int(next(iter(row_to_mapping(cursor, row).values())))

    def iterate(self, prepared: PreparedQuery[E] | None = None) -> CloseableIterator[E]:
        """Lazily map rows to entities over an open cursor.

        Each call opens a new cursor. The cursor, and the connection it was
        borrowed on, are released when the iterator is exhausted, fails, is
        closed, or is garbage collected.
        """
        prepared = self._check(prepared or self.query_builder().prepare())
        params = prepared.bind()
        tx = self._active_transaction()
        release: Callable[[], None] | None = None
        if tx is not None:
            conn = tx.connection
        else:
            conn = self.source.get_connection()
            release = partial(self.source.release_connection, conn)
        try:
            cursor = self._execute(conn, prepared.statement, params)
        except BaseException:
            if release is not None:
                release()
            raise
        return CloseableIterator(cursor, self.mapper, fetch_size=self.fetch_size, on_close=release)

    def __iter__(self) -> Iterator[E]:
        return self.iterate()

    def query_builder(self) -> QueryBuilder[E]:
        return QueryBuilder(self.mapper, self.dialect, dao=self)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _active_transaction(self) -> Transaction | None:
        if self.transaction is not None:
            self.transaction.ensure_active()
            return self.transaction
        return current_transaction(self.source)

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        tx = self._active_transaction()
        if tx is not None:
            yield tx.connection
            return
        conn = self.source.get_connection()
        try:
            yield conn
        finally:
            self.source.release_connection(conn)

    def _execute(self, conn: Connection, sql: str, params: Sequence[Any]) -> Cursor:
        log = logger.info if self._echo else logger.debug
        log("sql", entity=self.mapper.entity_name, statement=sql, params=len(params))
        try:
            return conn.execute(sql, params)
        except StorageError as e:
            e.with_context(entity=self.mapper.entity_name, table=self.mapper.table)
            raise

    def _write(self, sql: str, params: Sequence[Any]) -> int:
        with self._connection() as conn:
            cursor = self._execute(conn, sql, params)
            try:
                return max(cursor.rowcount, 0)
            finally:
                cursor.close()

    def _insert(self, entity: E, row: dict[str, Any]) -> int:
        identity = self.mapper.identity
        d = self.dialect
        returning = identity.column if identity.generated and d.returns_generated_keys else None
        sql = d.insert(self.mapper.table, list(row), returning=returning)
        with self._connection() as conn:
            cursor = self._execute(conn, sql, list(row.values()))
            try:
                if returning is not None:
                    new_id = row_to_mapping(cursor, cursor.fetchone())[returning]
                else:
                    new_id = cursor.lastrowid
            finally:
                cursor.close()
        if identity.generated and identity.column not in row:
            self.mapper.set_id(entity, new_id)
        logger.debug("entity_created", entity=self.mapper.entity_name, id=self.mapper.get_id(entity))
        return 1

    def _fetch(
        self,
        prepared: PreparedQuery[E],
        read: Callable[[Cursor], list[Any]],
    ) -> list[E]:
        prepared = self._check(prepared)
        params = prepared.bind()
        with self._connection() as conn:
            cursor = self._execute(conn, prepared.statement, params)
            try:
                rows = read(cursor)
            finally:
                cursor.close()
        return [self.mapper.from_row(row_to_mapping(cursor, row)) for row in rows]

    def _check(self, prepared: PreparedQuery[Any]) -> PreparedQuery[E]:
        if prepared.mapper is not self.mapper:
            raise QueryError(
                f"Query for {prepared.mapper.entity_name} cannot run on Dao[{self.mapper.entity_name}]",
                context=self._context(statement=prepared.statement),
            )
        return prepared

    def _require_id(self, entity: E, operation: str) -> Any:
        if not self.mapper.is_managed(entity):
            raise NotManagedError(
                f"Cannot {operation} {self.mapper.entity_name} without an id",
                context=self._context(),
            )
        return self.mapper.get_id(entity)

    def _select(self) -> str:
        d = self.dialect
        columns = ", ".join(d.quote(c) for c in self.mapper.columns)
        return f"SELECT {columns} FROM {d.quote(self.mapper.table)}"

    def _id_predicate(self, index: int) -> str:
        return f"{self.dialect.quote(self.mapper.identity.column)} = {self.dialect.placeholder(index)}"

    def _context(self, **kwargs: Any) -> ErrorContext:
        return ErrorContext(entity=self.mapper.entity_name, table=self.mapper.table, **kwargs)

    def __repr__(self) -> str:
        bound = f", tx={self.transaction.tx_id}" if self.transaction is not None else ""
        return f"Dao({self.mapper.entity_name}, {self.source!r}{bound})"


def _first_row(cursor: Cursor) -> list[Any]:
    row = cursor.fetchone()
    return [] if row is None else [row]


__all__ = [
    "Dao",
]
