"""
Shared pytest fixtures for strata tests.

This module provides:
- An in-memory SQLite connection source with the ``account`` table created
- A ``Dao[Account]`` and a ``TransactionManager`` over that source
- ``SpySource``, a connection source wrapper that counts borrowed
  connections and open cursors (iteration resource-safety tests)
- Settings isolation (no ``STRATA_*`` environment leaks between tests)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from typing import Any

import pytest
import structlog

from strata.accounts import ACCOUNT_MAPPER, Account
from strata.core.adapters.sqlite import SqliteConnectionSource
from strata.core.dao import Dao
from strata.core.schema import create_table
from strata.core.settings import get_settings
from strata.core.transaction import TransactionManager


# =============================================================================
# Settings isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop STRATA_* variables and the cached settings around every test."""
    for key in list(os.environ):
        if key.startswith("STRATA_"):
            monkeypatch.delenv(key)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    """Undo configure_logging(); it attaches a handler to the current stderr."""
    yield
    structlog.reset_defaults()
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)


# =============================================================================
# Spy source
# =============================================================================


class SpyCursor:
    def __init__(self, inner: Any):
        self._inner = inner
        self.closed = False

    def close(self) -> None:
        self.closed = True
        self._inner.close()

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)


class SpyConnection:
    def __init__(self, inner: Any, spy: SpySource):
        self._inner = inner
        self._spy = spy

    def execute(self, sql: str, params: Any = ()) -> SpyCursor:
        cursor = SpyCursor(self._inner.execute(sql, params))
        self._spy.cursors.append(cursor)
        return cursor

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)


class SpySource:
    """Wraps a connection source and records what is borrowed and opened."""

    def __init__(self, inner: SqliteConnectionSource):
        self.inner = inner
        self.borrowed = 0
        self.released = 0
        self.cursors: list[SpyCursor] = []

    @property
    def dialect(self) -> Any:
        return self.inner.dialect

    @property
    def outstanding(self) -> int:
        return self.borrowed - self.released

    @property
    def open_cursors(self) -> list[SpyCursor]:
        return [c for c in self.cursors if not c.closed]

    def get_connection(self) -> SpyConnection:
        self.borrowed += 1
        return SpyConnection(self.inner.get_connection(), self)

    def release_connection(self, conn: SpyConnection) -> None:
        self.released += 1
        self.inner.release_connection(conn._inner)

    def close(self) -> None:
        self.inner.close()


# =============================================================================
# Source / Dao fixtures
# =============================================================================


@pytest.fixture
def source() -> Iterator[SqliteConnectionSource]:
    """In-memory SQLite source with the account table."""
    src = SqliteConnectionSource(":memory:")
    create_table(src, ACCOUNT_MAPPER)
    yield src
    src.close()


@pytest.fixture
def dao(source: SqliteConnectionSource) -> Dao[Account]:
    return Dao(source, ACCOUNT_MAPPER)


@pytest.fixture
def tm(source: SqliteConnectionSource) -> TransactionManager:
    return TransactionManager(source)


@pytest.fixture
def spy(source: SqliteConnectionSource) -> SpySource:
    return SpySource(source)


@pytest.fixture
def spy_dao(spy: SpySource) -> Dao[Account]:
    return Dao(spy, ACCOUNT_MAPPER)


@pytest.fixture
def foo_bar_baz(dao: Dao[Account]) -> dict[str, Account]:
    """Three stored accounts named foo, bar and baz."""
    accounts = {name: Account(name) for name in ("foo", "bar", "baz")}
    for account in accounts.values():
        dao.create(account)
    return accounts
