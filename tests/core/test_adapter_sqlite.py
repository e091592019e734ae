"""Tests for strata.core.adapters.sqlite module."""

import sqlite3

import pytest

from strata.accounts import ACCOUNT_MAPPER, Account
from strata.core.adapters.sqlite import SqliteConnectionSource, translate_error
from strata.core.dao import Dao
from strata.core.errors import IntegrityError, StorageConnectionError, StorageError
from strata.core.schema import create_table


class TestTranslateError:
    def test_integrity(self):
        error = translate_error(sqlite3.IntegrityError("NOT NULL constraint failed"), "INSERT")
        assert isinstance(error, IntegrityError)
        assert error.context.statement == "INSERT"
        assert isinstance(error.cause, sqlite3.IntegrityError)

    def test_closed_connection(self):
        error = translate_error(sqlite3.ProgrammingError("Cannot operate on a closed database."))
        assert isinstance(error, StorageConnectionError)

    def test_anything_else(self):
        error = translate_error(sqlite3.OperationalError("no such table: nope"))
        assert type(error) is StorageError


class TestSqliteConnection:
    def test_bad_statement_is_translated(self, source):
        conn = source.get_connection()
        with pytest.raises(StorageError) as exc_info:
            conn.execute("SELECT * FROM nope")
        assert exc_info.value.context.statement == "SELECT * FROM nope"

    def test_autocommit_outside_transaction(self, source):
        conn = source.get_connection()
        conn.execute('INSERT INTO "account" ("name") VALUES (?)', ["Jim"]).close()
        assert not conn.in_transaction

    def test_begin_and_rollback(self, source):
        conn = source.get_connection()
        conn.begin()
        assert conn.in_transaction
        conn.execute('INSERT INTO "account" ("name") VALUES (?)', ["Jim"]).close()
        conn.rollback()
        assert not conn.in_transaction
        assert conn.execute('SELECT COUNT(*) FROM "account"').fetchone()[0] == 0

    def test_savepoint_rollback(self, source):
        conn = source.get_connection()
        conn.begin()
        conn.execute('INSERT INTO "account" ("name") VALUES (?)', ["kept"]).close()
        conn.savepoint("sp_1")
        conn.execute('INSERT INTO "account" ("name") VALUES (?)', ["dropped"]).close()
        conn.rollback_to_savepoint("sp_1")
        conn.commit()
        rows = conn.execute('SELECT "name" FROM "account"').fetchall()
        assert [r["name"] for r in rows] == ["kept"]

    def test_cursors_are_independent(self, source, dao):
        for name in ("a", "b"):
            dao.create(Account(name))
        conn = source.get_connection()
        first = conn.execute('SELECT "name" FROM "account" ORDER BY "name"')
        assert first.fetchone()["name"] == "a"
        conn.execute('SELECT 1').close()
        assert first.fetchone()["name"] == "b"
        first.close()


class TestSqliteConnectionSource:
    def test_connection_is_shared(self, source):
        assert source.get_connection() is source.get_connection()

    def test_closed_source(self):
        src = SqliteConnectionSource(":memory:")
        src.close()
        assert src.closed
        with pytest.raises(StorageConnectionError):
            src.get_connection()

    def test_close_twice(self):
        src = SqliteConnectionSource(":memory:")
        src.close()
        src.close()

    def test_context_manager(self):
        with SqliteConnectionSource(":memory:") as src:
            with src.connection() as conn:
                assert conn.execute("SELECT 1").fetchone()[0] == 1
        assert src.closed

    def test_file_database_persists(self, tmp_path):
        path = str(tmp_path / "account.db")
        with SqliteConnectionSource(path) as src:
            create_table(src, ACCOUNT_MAPPER)
            jim = Account("Jim")
            Dao(src, ACCOUNT_MAPPER).create(jim)
        with SqliteConnectionSource(path) as src:
            assert Dao(src, ACCOUNT_MAPPER).query_for_id(jim.id) == jim
