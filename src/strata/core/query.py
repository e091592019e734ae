"""
Query builder: predicate trees, deferred arguments and prepared queries.

A :class:`QueryBuilder` is bound to one entity mapper. ``where()`` opens a
predicate tree whose clauses name *fields*, not columns; each name is checked
against the mapper's queryable set the moment the clause is added, so a typo
fails with :class:`~strata.core.errors.UnknownFieldError` at build time.

``prepare()`` freezes the tree into a :class:`PreparedQuery`: SQL text plus an
ordered tuple of argument holders. A holder is either a literal (value fixed
at build time) or a :class:`DeferredArgument` that the prepared query refers
to but does not own. Setting a new value on the deferred argument changes what
the next execution binds, without rebuilding or re-validating the tree.

Architecture:
    ::

        QueryBuilder ──where()──► Where ──clauses──► Clause tree
             │                                            │
             └──────────────prepare()─────────────────────┘
                                │
                                ▼
        PreparedQuery(statement, arguments=(Literal('x'), DeferredArgument ●))
                                                              │ refers to
        caller ──set_value("foo")──────────────────────────► ●
        dao.query(prepared) → bind() reads ● at call time

Examples:
    Literal predicate:

    >>> qb = account_dao.query_builder()
    >>> qb.where().like("name", "Jim%")
    >>> account_dao.query(qb.prepare())

    One prepared query, many executions:

    >>> name = DeferredArgument("name")
    >>> qb.where().eq("name", name)
    >>> by_name = qb.prepare()
    >>> for value in ("foo", "bar", "baz"):
    ...     name.set_value(value)
    ...     account_dao.query(by_name)

    Composition, infix and n-ary:

    >>> w = qb.where()
    >>> w.eq("name", "foo").or_().like("name", "ba%")
    >>> w = qb.where()
    >>> w.and_(w.like("name", "ba%"), w.is_not_null("password"))

Guardrails:
    ❌ DON'T: Pass ``None`` to ``eq``/``ne``
    ✅ DO: Use ``is_null``/``is_not_null``

    ❌ DON'T: Feed an infix join into an n-ary ``and_()``/``or_()``
    ✅ DO: Nest n-ary calls, ``w.or_(w.and_(a, b), c)``

    ❌ DON'T: Execute before every deferred argument has a value
    ✅ DO: ``set_value`` first; preparation itself does not need values

Tags:
    query-builder, prepared-statement, deferred-argument, sql, strata
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from strata.core.dialect import Dialect
from strata.core.errors import (
    ErrorContext,
    IncompleteQueryError,
    QueryError,
    UnboundArgumentError,
)
from strata.core.mapping import EntityMapper, FieldMapping

if TYPE_CHECKING:
    from strata.core.dao import Dao
    from strata.core.iteration import CloseableIterator

E = TypeVar("E")

_UNSET = object()


# =============================================================================
# ARGUMENTS
# =============================================================================


class DeferredArgument:
    """Placeholder whose value is supplied after the query is prepared.

    One instance can be shared by several clauses and several prepared
    queries; all of them read its current value when they execute.
    A value of ``None`` is rejected when the query is bound; compare
    against NULL with ``is_null()`` instead.
    """

    def __init__(self, name: str | None = None, value: Any = _UNSET):
        self.name = name
        self._value = value

    @property
    def is_set(self) -> bool:
        return self._value is not _UNSET

    @property
    def value(self) -> Any:
        if self._value is _UNSET:
            label = f" {self.name!r}" if self.name else ""
            raise UnboundArgumentError(f"Deferred argument{label} has no value set")
        return self._value

    def set_value(self, value: Any) -> None:
        self._value = value

    def clear(self) -> None:
        self._value = _UNSET

    def resolve(self) -> Any:
        return self.value

    def __repr__(self) -> str:
        shown = repr(self._value) if self.is_set else "<unset>"
        return f"DeferredArgument(name={self.name!r}, value={shown})"


@dataclass(frozen=True)
class Literal:
    """Operand bound at build time."""

    value: Any

    def resolve(self) -> Any:
        return self.value


Argument = Literal | DeferredArgument


# =============================================================================
# CLAUSES
# =============================================================================


class _Args:
    """Collects argument holders while a clause tree renders to SQL."""

    def __init__(self, dialect: Dialect):
        self.dialect = dialect
        self.holders: list[Argument] = []

    def add(self, holder: Argument) -> str:
        placeholder = self.dialect.placeholder(len(self.holders))
        self.holders.append(holder)
        return placeholder


@dataclass(frozen=True)
class Comparison:
    column: str
    operator: str
    operand: Argument

    def render(self, args: _Args) -> str:
        return f"{args.dialect.quote(self.column)} {self.operator} {args.add(self.operand)}"


@dataclass(frozen=True)
class InClause:
    column: str
    operands: tuple[Argument, ...]

    def render(self, args: _Args) -> str:
        placeholders = ", ".join(args.add(o) for o in self.operands)
        return f"{args.dialect.quote(self.column)} IN ({placeholders})"


@dataclass(frozen=True)
class Between:
    column: str
    low: Argument
    high: Argument

    def render(self, args: _Args) -> str:
        low = args.add(self.low)
        high = args.add(self.high)
        return f"{args.dialect.quote(self.column)} BETWEEN {low} AND {high}"


@dataclass(frozen=True)
class NullCheck:
    column: str
    negated: bool = False

    def render(self, args: _Args) -> str:
        test = "IS NOT NULL" if self.negated else "IS NULL"
        return f"{args.dialect.quote(self.column)} {test}"


@dataclass(frozen=True)
class Junction:
    operator: str
    parts: tuple[Clause, ...]

    def render(self, args: _Args) -> str:
        return "(" + f" {self.operator} ".join(p.render(args) for p in self.parts) + ")"


@dataclass(frozen=True)
class Negation:
    clause: Clause

    def render(self, args: _Args) -> str:
        return f"(NOT {self.clause.render(args)})"


Clause = Comparison | InClause | Between | NullCheck | Junction | Negation


# =============================================================================
# WHERE
# =============================================================================


class Where(Generic[E]):
    """Predicate tree under construction for one :class:`QueryBuilder`.

    Every clause method returns the same ``Where`` so calls chain. Clauses are
    kept on a stack:

    - infix ``and_()`` / ``or_()`` (no arguments) joins the previous clause
      with the next one added;
    - n-ary ``and_(w.eq(..), w.like(..), ...)`` joins the last *N* clauses,
      where *N* is the number of arguments. None of them may come from an
      infix join, since the grouping the caller meant is ambiguous;
    - ``not_()`` negates the next clause added.

    When the tree is finished exactly one clause must remain on the stack.
    """

    def __init__(self, builder: QueryBuilder[E]):
        self._builder = builder
        self._mapper = builder.mapper
        self._stack: list[Clause] = []
        self._infix: list[bool] = []
        self._pending: str | None = None
        self._negate_next = False

    # -- Comparisons -------------------------------------------------------

    def eq(self, field: str, value: Any) -> Where[E]:
        return self._compare(field, "=", value)

    def ne(self, field: str, value: Any) -> Where[E]:
        return self._compare(field, "<>", value)

    def lt(self, field: str, value: Any) -> Where[E]:
        return self._compare(field, "<", value)

    def le(self, field: str, value: Any) -> Where[E]:
        return self._compare(field, "<=", value)

    def gt(self, field: str, value: Any) -> Where[E]:
        return self._compare(field, ">", value)

    def ge(self, field: str, value: Any) -> Where[E]:
        return self._compare(field, ">=", value)

    def like(self, field: str, pattern: Any) -> Where[E]:
        """SQL ``LIKE``; ``%`` and ``_`` in *pattern* are wildcards."""
        return self._compare(field, "LIKE", pattern)

    def in_(self, field: str, values: Iterable[Any]) -> Where[E]:
        mapping = self._mapper.field(field)
        operands = tuple(self._operand(mapping, v) for v in values)
        if not operands:
            raise IncompleteQueryError(
                f"in_() on {field!r} needs at least one value",
                context=ErrorContext(entity=self._mapper.entity_name, field=field),
            )
        return self._push(InClause(mapping.column, operands))

    def between(self, field: str, low: Any, high: Any) -> Where[E]:
        mapping = self._mapper.field(field)
        return self._push(
            Between(mapping.column, self._operand(mapping, low), self._operand(mapping, high))
        )

    def is_null(self, field: str) -> Where[E]:
        return self._push(NullCheck(self._mapper.column_for(field)))

    def is_not_null(self, field: str) -> Where[E]:
        return self._push(NullCheck(self._mapper.column_for(field), negated=True))

    # -- Composition -------------------------------------------------------

    def and_(self, *clauses: Where[E]) -> Where[E]:
        return self._combine("AND", clauses)

    def or_(self, *clauses: Where[E]) -> Where[E]:
        return self._combine("OR", clauses)

    def not_(self) -> Where[E]:
        self._negate_next = not self._negate_next
        return self

    # -- Completion --------------------------------------------------------

    def clause(self) -> Clause:
        """The finished tree, or :class:`IncompleteQueryError`."""
        if self._pending is not None:
            raise IncompleteQueryError(f"{self._pending} is missing its right-hand clause")
        if self._negate_next:
            raise IncompleteQueryError("NOT is missing its clause")
        if not self._stack:
            raise IncompleteQueryError("where() was called but no clause was added")
        if len(self._stack) > 1:
            raise IncompleteQueryError(
                f"{len(self._stack)} clauses are not joined; did you miss and_() or or_()?"
            )
        return self._stack[0]

    def prepare(self) -> PreparedQuery[E]:
        return self._builder.prepare()

    def query(self) -> list[E]:
        return self._builder.query()

    def query_for_first(self) -> E | None:
        return self._builder.query_for_first()

    def iterator(self) -> CloseableIterator[E]:
        return self._builder.iterator()

    def __repr__(self) -> str:
        return f"Where(entity={self._mapper.entity_name}, clauses={len(self._stack)})"

    # -- Internals ---------------------------------------------------------

    def _compare(self, field: str, operator: str, value: Any) -> Where[E]:
        mapping = self._mapper.field(field)
        return self._push(Comparison(mapping.column, operator, self._operand(mapping, value)))

    def _operand(self, mapping: FieldMapping, value: Any) -> Argument:
        if isinstance(value, DeferredArgument):
            return value
        if value is None:
            raise QueryError(
                f"NULL operand for {mapping.name!r}; use is_null()/is_not_null()",
                context=ErrorContext(entity=self._mapper.entity_name, field=mapping.name),
            )
        return Literal(value)

    def _push(self, clause: Clause) -> Where[E]:
        if self._negate_next:
            clause = Negation(clause)
            self._negate_next = False
        operator, self._pending = self._pending, None
        if operator is not None:
            left = self._stack.pop()
            self._infix.pop()
            clause = _join(operator, [left, clause])
        self._stack.append(clause)
        self._infix.append(operator is not None)
        return self

    def _combine(self, operator: str, clauses: tuple[Where[E], ...]) -> Where[E]:
        if self._pending is not None:
            raise IncompleteQueryError(f"{self._pending} followed directly by {operator}")
        if not clauses:
            if not self._stack:
                raise IncompleteQueryError(f"{operator} has no left-hand clause")
            self._pending = operator
            return self
        if any(c is not self for c in clauses):
            raise QueryError(f"{operator} arguments must be clauses of this where()")
        count = len(clauses)
        if count < 2:
            raise IncompleteQueryError(f"{operator} needs at least two clauses, got {count}")
        if len(self._stack) < count:
            raise IncompleteQueryError(
                f"{operator} of {count} clauses but only {len(self._stack)} exist"
            )
        if any(self._infix[-count:]):
            raise IncompleteQueryError(
                f"{operator} of {count} clauses would take a clause joined by infix and_()/or_(); "
                "group it with an n-ary call instead"
            )
        parts = self._stack[-count:]
        del self._stack[-count:]
        del self._infix[-count:]
        self._stack.append(_join(operator, parts))
        self._infix.append(False)
        return self


def _join(operator: str, parts: list[Clause]) -> Junction:
    flattened: list[Clause] = []
    for part in parts:
        if isinstance(part, Junction) and part.operator == operator:
            flattened.extend(part.parts)
        else:
            flattened.append(part)
    return Junction(operator, tuple(flattened))


# =============================================================================
# PREPARED QUERY
# =============================================================================


@dataclass(frozen=True)
class PreparedQuery(Generic[E]):
    """Immutable, validated SELECT for one entity type.

    Attributes:
        mapper: Mapper of the entity type the query returns
        statement: Full SELECT text with dialect placeholders
        count_statement: ``SELECT COUNT(*)`` over the same predicate
        arguments: Holders in placeholder order; deferred ones are shared
                   references, read at execution time
    """

    mapper: EntityMapper[E]
    statement: str
    count_statement: str
    arguments: tuple[Argument, ...] = ()

    @property
    def deferred_arguments(self) -> tuple[DeferredArgument, ...]:
        return tuple(a for a in self.arguments if isinstance(a, DeferredArgument))

    def bind(self) -> tuple[Any, ...]:
        """Current parameter values.

        Raises :class:`UnboundArgumentError` for a deferred argument with no
        value, and :class:`QueryError` for one set to ``None``.
        """
        try:
            values = tuple(a.resolve() for a in self.arguments)
        except UnboundArgumentError as e:
            e.with_context(entity=self.mapper.entity_name, statement=self.statement)
            raise
        for arg, value in zip(self.arguments, values):
            if value is None:
                label = f" {arg.name!r}" if getattr(arg, "name", None) else ""
                raise QueryError(
                    f"Deferred argument{label} is None; use is_null()/is_not_null()",
                    context=ErrorContext(entity=self.mapper.entity_name, statement=self.statement),
                )
        return values

    def __str__(self) -> str:
        return self.statement


# =============================================================================
# QUERY BUILDER
# =============================================================================


class QueryBuilder(Generic[E]):
    """Builds :class:`PreparedQuery` objects for one entity type.

    Parameters:
        mapper: Entity mapper that defines the queryable fields
        dialect: SQL dialect of the target backend
        dao: Owning Dao; needed only by the executing conveniences
             (:meth:`query`, :meth:`query_for_first`, :meth:`iterator`)
    """

    def __init__(self, mapper: EntityMapper[E], dialect: Dialect, dao: Dao[E] | None = None):
        self.mapper = mapper
        self.dialect = dialect
        self._dao = dao
        self._where: Where[E] | None = None
        self._order: list[tuple[str, bool]] = []
        self._limit: int | None = None
        self._offset: int | None = None

    def where(self) -> Where[E]:
        """Start a new predicate tree, replacing any previous one."""
        self._where = Where(self)
        return self._where

    def order_by(self, field: str, ascending: bool = True) -> QueryBuilder[E]:
        self._order.append((self.mapper.column_for(field), ascending))
        return self

    def limit(self, count: int | None) -> QueryBuilder[E]:
        self._limit = _non_negative("limit", count)
        return self

    def offset(self, count: int | None) -> QueryBuilder[E]:
        self._offset = _non_negative("offset", count)
        return self

    def reset(self) -> QueryBuilder[E]:
        self._where = None
        self._order = []
        self._limit = None
        self._offset = None
        return self

    def prepare(self) -> PreparedQuery[E]:
        """Freeze the current state into a :class:`PreparedQuery`.

        Deferred arguments need not have values yet.

        Raises:
            IncompleteQueryError: ``where()`` was opened but is not a single
                complete clause tree.
        """
        d = self.dialect
        args = _Args(d)
        table = d.quote(self.mapper.table)
        columns = ", ".join(d.quote(c) for c in self.mapper.columns)

        where_sql = ""
        if self._where is not None:
            try:
                where_sql = " WHERE " + self._where.clause().render(args)
            except IncompleteQueryError as e:
                e.with_context(entity=self.mapper.entity_name)
                raise

        order_sql = ""
        if self._order:
            order_sql = " ORDER BY " + ", ".join(
                f"{d.quote(column)} {'ASC' if asc else 'DESC'}" for column, asc in self._order
            )

        statement = f"SELECT {columns} FROM {table}{where_sql}{order_sql}"
        statement += d.limit_offset(self._limit, self._offset)
        return PreparedQuery(
            mapper=self.mapper,
            statement=statement,
            count_statement=f"SELECT COUNT(*) FROM {table}{where_sql}",
            arguments=tuple(args.holders),
        )

    # -- Execution through the owning Dao -----------------------------------

    def query(self) -> list[E]:
        return self._require_dao().query(self.prepare())

    def query_for_first(self) -> E | None:
        return self._require_dao().query_for_first(self.prepare())

    def iterator(self) -> CloseableIterator[E]:
        return self._require_dao().iterate(self.prepare())

    def count_of(self) -> int:
        return self._require_dao().count_of(self.prepare())

    def _require_dao(self) -> Dao[E]:
        if self._dao is None:
            raise QueryError("QueryBuilder is not bound to a Dao; pass the prepared query to one")
        return self._dao


def _non_negative(name: str, value: int | None) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise QueryError(f"{name} must be a non-negative integer, got {value!r}")
    return value


__all__ = [
    "DeferredArgument",
    "Literal",
    "Where",
    "PreparedQuery",
    "QueryBuilder",
]
