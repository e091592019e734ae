"""Tests for strata.core.query module (statement building, no execution)."""

import pytest

from strata.accounts import ACCOUNT_MAPPER
from strata.core.dialect import PostgreSQLDialect, SQLiteDialect
from strata.core.errors import (
    IncompleteQueryError,
    QueryError,
    UnboundArgumentError,
    UnknownFieldError,
)
from strata.core.query import DeferredArgument, Literal, QueryBuilder

SELECT = 'SELECT "id", "name", "password" FROM "account"'


@pytest.fixture
def qb() -> QueryBuilder:
    return QueryBuilder(ACCOUNT_MAPPER, SQLiteDialect())


class TestDeferredArgument:
    def test_unset_value_raises(self):
        arg = DeferredArgument("name")
        assert not arg.is_set
        with pytest.raises(UnboundArgumentError, match="name"):
            arg.value

    def test_set_and_clear(self):
        arg = DeferredArgument()
        arg.set_value("foo")
        assert arg.is_set
        assert arg.resolve() == "foo"
        arg.clear()
        assert not arg.is_set

    def test_none_is_a_value(self, qb):
        arg = DeferredArgument("password", value=None)
        assert arg.is_set
        assert arg.value is None
        qb.where().eq("password", arg)
        with pytest.raises(QueryError, match="is_null") as exc_info:
            qb.prepare().bind()
        assert exc_info.value.context.entity == "Account"


class TestPrepare:
    def test_no_where_selects_everything(self, qb):
        prepared = qb.prepare()
        assert prepared.statement == SELECT
        assert prepared.count_statement == 'SELECT COUNT(*) FROM "account"'
        assert prepared.arguments == ()

    def test_eq_binds_literal(self, qb):
        qb.where().eq("name", "foo")
        prepared = qb.prepare()
        assert prepared.statement == f'{SELECT} WHERE "name" = ?'
        assert prepared.arguments == (Literal("foo"),)
        assert prepared.bind() == ("foo",)

    def test_like(self, qb):
        qb.where().like("name", "ba%")
        assert qb.prepare().statement == f'{SELECT} WHERE "name" LIKE ?'

    def test_comparisons(self, qb):
        qb.where().gt("id", 1).and_().le("id", 10)
        prepared = qb.prepare()
        assert prepared.statement == f'{SELECT} WHERE ("id" > ? AND "id" <= ?)'
        assert prepared.bind() == (1, 10)

    def test_in_between_and_nulls(self, qb):
        w = qb.where()
        w.and_(w.in_("id", [1, 2, 3]), w.between("id", 0, 9), w.is_null("password"))
        prepared = qb.prepare()
        assert prepared.statement == (
            f'{SELECT} WHERE ("id" IN (?, ?, ?) AND "id" BETWEEN ? AND ? AND "password" IS NULL)'
        )
        assert prepared.bind() == (1, 2, 3, 0, 9)

    def test_not(self, qb):
        qb.where().not_().eq("name", "foo")
        assert qb.prepare().statement == f'{SELECT} WHERE (NOT "name" = ?)'

    def test_infix_or_then_and(self, qb):
        qb.where().eq("name", "foo").or_().eq("name", "bar").and_().is_not_null("password")
        assert qb.prepare().statement == (
            f'{SELECT} WHERE (("name" = ? OR "name" = ?) AND "password" IS NOT NULL)'
        )

    def test_same_operator_is_flattened(self, qb):
        qb.where().eq("name", "a").or_().eq("name", "b").or_().eq("name", "c")
        assert qb.prepare().statement == f'{SELECT} WHERE ("name" = ? OR "name" = ? OR "name" = ?)'

    def test_order_limit_offset(self, qb):
        qb.order_by("name").order_by("id", ascending=False).limit(10).offset(20)
        assert qb.prepare().statement == (
            f'{SELECT} ORDER BY "name" ASC, "id" DESC LIMIT 10 OFFSET 20'
        )

    def test_count_statement_ignores_paging(self, qb):
        qb.where().eq("name", "foo")
        qb.limit(1)
        assert qb.prepare().count_statement == 'SELECT COUNT(*) FROM "account" WHERE "name" = ?'

    def test_dialect_placeholders(self):
        qb = QueryBuilder(ACCOUNT_MAPPER, PostgreSQLDialect())
        qb.where().eq("name", "foo")
        assert qb.prepare().statement.endswith('WHERE "name" = %s')

    def test_where_starts_a_new_tree(self, qb):
        qb.where().like("name", "hello")
        qb.where().like("name", "Jim%")
        assert qb.prepare().bind() == ("Jim%",)

    def test_reset(self, qb):
        qb.where().eq("name", "foo")
        qb.limit(1).reset()
        assert qb.prepare().statement == SELECT


class TestDeferredArguments:
    def test_prepare_does_not_need_values(self, qb):
        arg = DeferredArgument("name")
        qb.where().eq("name", arg)
        prepared = qb.prepare()
        assert prepared.deferred_arguments == (arg,)

    def test_execution_reads_the_current_value(self, qb):
        arg = DeferredArgument("name")
        qb.where().eq("name", arg)
        prepared = qb.prepare()
        for value in ("foo", "bar", "baz"):
            arg.set_value(value)
            assert prepared.bind() == (value,)

    def test_one_argument_shared_by_two_clauses(self, qb):
        arg = DeferredArgument()
        qb.where().eq("name", arg).or_().eq("password", arg)
        prepared = qb.prepare()
        arg.set_value("x")
        assert prepared.bind() == ("x", "x")

    def test_unbound_argument_at_execution(self, qb):
        qb.where().eq("name", DeferredArgument("name"))
        prepared = qb.prepare()
        with pytest.raises(UnboundArgumentError) as exc_info:
            prepared.bind()
        assert exc_info.value.context.statement == prepared.statement

    def test_none_value_rejected_at_execution(self, qb):
        arg = DeferredArgument("name")
        qb.where().eq("name", arg)
        prepared = qb.prepare()
        arg.set_value("foo")
        assert prepared.bind() == ("foo",)
        arg.set_value(None)
        with pytest.raises(QueryError) as exc_info:
            prepared.bind()
        assert not isinstance(exc_info.value, UnboundArgumentError)
        assert exc_info.value.context.statement == prepared.statement


class TestBuildTimeValidation:
    def test_unknown_field_fails_when_clause_is_added(self, qb):
        with pytest.raises(UnknownFieldError):
            qb.where().eq("nmae", "foo")

    def test_unknown_order_by_field(self, qb):
        with pytest.raises(UnknownFieldError):
            qb.order_by("nmae")

    def test_none_operand_rejected(self, qb):
        with pytest.raises(QueryError, match="is_null"):
            qb.where().eq("password", None)

    def test_empty_where(self, qb):
        qb.where()
        with pytest.raises(IncompleteQueryError):
            qb.prepare()

    def test_dangling_operator(self, qb):
        qb.where().eq("name", "foo").and_()
        with pytest.raises(IncompleteQueryError, match="AND"):
            qb.prepare()

    def test_operator_without_left_clause(self, qb):
        with pytest.raises(IncompleteQueryError):
            qb.where().or_()

    def test_unjoined_clauses(self, qb):
        w = qb.where()
        w.eq("name", "foo")
        w.eq("name", "bar")
        with pytest.raises(IncompleteQueryError, match="not joined"):
            qb.prepare()

    def test_nary_needs_enough_clauses(self, qb):
        w = qb.where()
        with pytest.raises(IncompleteQueryError):
            w.and_(w, w.eq("name", "foo"))

    def test_nary_rejects_foreign_clauses(self, qb):
        other = QueryBuilder(ACCOUNT_MAPPER, SQLiteDialect()).where()
        w = qb.where()
        with pytest.raises(QueryError):
            w.and_(w.eq("name", "a"), other.eq("name", "b"))

    def test_nary_rejects_clause_taken_by_pending_infix(self, qb):
        w = qb.where()
        w.eq("name", "a").and_()
        with pytest.raises(IncompleteQueryError, match="infix"):
            w.or_(w.eq("name", "b"), w.eq("name", "c"))

    def test_nested_nary_groups_explicitly(self, qb):
        w = qb.where()
        w.or_(w.and_(w.eq("name", "a"), w.eq("name", "b")), w.eq("name", "c"))
        assert qb.prepare().statement == (
            f'{SELECT} WHERE (("name" = ? AND "name" = ?) OR "name" = ?)'
        )

    def test_infix_may_follow_nary(self, qb):
        w = qb.where()
        w.and_(w.eq("name", "a"), w.eq("name", "b")).or_().eq("name", "c")
        assert qb.prepare().statement == (
            f'{SELECT} WHERE (("name" = ? AND "name" = ?) OR "name" = ?)'
        )

    def test_empty_in(self, qb):
        with pytest.raises(IncompleteQueryError):
            qb.where().in_("id", [])

    def test_dangling_not(self, qb):
        qb.where().eq("name", "foo").and_().not_()
        with pytest.raises(IncompleteQueryError):
            qb.prepare()

    @pytest.mark.parametrize("value", [-1, 1.5, True, "10"])
    def test_bad_limit(self, qb, value):
        with pytest.raises(QueryError):
            qb.limit(value)

    def test_execution_needs_a_dao(self, qb):
        with pytest.raises(QueryError, match="not bound to a Dao"):
            qb.query()
