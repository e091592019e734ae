"""Tests for strata.core.iteration module."""

import sqlite3

import pytest

from strata.accounts import ACCOUNT_MAPPER, Account
from strata.core.errors import StorageError
from strata.core.iteration import CloseableIterator, row_to_mapping


class FakeCursor:
    description = [("id",), ("name",), ("password",)]

    def __init__(self, rows, fail_after=None):
        self._rows = list(rows)
        self._fail_after = fail_after
        self.fetches = 0
        self.closed = False

    def fetchmany(self, size):
        self.fetches += 1
        if self._fail_after is not None and self.fetches > self._fail_after:
            raise StorageError("connection reset")
        batch, self._rows = self._rows[:size], self._rows[size:]
        return batch

    def close(self):
        self.closed = True


class TestRowToMapping:
    def test_tuple_rows_use_description(self):
        assert row_to_mapping(FakeCursor([]), (1, "Jim", None)) == {
            "id": 1,
            "name": "Jim",
            "password": None,
        }

    def test_dict_rows_pass_through(self):
        row = {"id": 1}
        assert row_to_mapping(FakeCursor([]), row) is row

    def test_sqlite_row(self):
        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row
        row = conn.execute("SELECT 1 AS id, 'Jim' AS name").fetchone()
        assert row_to_mapping(None, row) == {"id": 1, "name": "Jim"}
        conn.close()


class TestCloseableIterator:
    def test_batches(self):
        cursor = FakeCursor([(i, str(i), None) for i in range(1, 6)])
        it = CloseableIterator(cursor, ACCOUNT_MAPPER, fetch_size=2)
        assert [a.id for a in it] == [1, 2, 3, 4, 5]
        assert cursor.fetches == 4
        assert cursor.closed

    def test_on_close_called_once(self):
        calls = []
        it = CloseableIterator(FakeCursor([]), ACCOUNT_MAPPER, on_close=lambda: calls.append(1))
        assert list(it) == []
        it.close()
        assert calls == [1]

    def test_not_restartable(self):
        it = CloseableIterator(FakeCursor([(1, "Jim", None)]), ACCOUNT_MAPPER)
        assert list(it) == [Account("Jim", id=1)]
        assert list(it) == []

    def test_storage_failure_closes(self):
        calls = []
        cursor = FakeCursor([(1, "a", None), (2, "b", None)], fail_after=1)
        it = CloseableIterator(cursor, ACCOUNT_MAPPER, fetch_size=1, on_close=lambda: calls.append(1))
        next(it)
        with pytest.raises(StorageError):
            next(it)
        assert it.closed
        assert cursor.closed
        assert calls == [1]

    def test_context_manager(self):
        cursor = FakeCursor([(1, "a", None), (2, "b", None)])
        with CloseableIterator(cursor, ACCOUNT_MAPPER) as it:
            assert next(it).name == "a"
        assert cursor.closed
        assert it.rows_read == 1

    def test_garbage_collected_iterator_releases(self):
        calls = []
        cursor = FakeCursor([(1, "a", None)])
        it = CloseableIterator(cursor, ACCOUNT_MAPPER, on_close=lambda: calls.append(1))
        del it
        assert calls == [1]
        assert cursor.closed
