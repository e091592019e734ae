"""Tests for strata.demo module."""

import pytest

from strata.accounts import ACCOUNT_MAPPER
from strata.core.adapters.sqlalchemy import SQLAlchemyConnectionSource
from strata.core.dao import Dao
from strata.demo import DemoCheckError, _expect, read_write_bunch, run_demo


class TestRunDemo:
    def test_all_steps_pass(self, source):
        steps = run_demo(source)
        assert [s.name for s in steps] == [
            "read_write_data",
            "read_write_bunch",
            "use_deferred_arguments",
            "use_transactions",
        ]

    def test_starts_from_an_empty_table(self, source, dao, foo_bar_baz):
        run_demo(source)
        assert dao.count_of() == 100 + 3 + 1

    def test_over_sqlalchemy(self):
        with SQLAlchemyConnectionSource("sqlite://") as src:
            assert len(run_demo(src)) == 4


class TestSteps:
    def test_bunch_size(self, dao):
        assert read_write_bunch(dao, count=10).startswith("10 accounts")
        assert len(Dao(dao.source, ACCOUNT_MAPPER).query_for_all()) == 10

    def test_failed_check(self):
        with pytest.raises(DemoCheckError, match="nope"):
            _expect(False, "nope")
