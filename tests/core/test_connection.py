"""Tests for strata.core.connection module."""

import pytest

from strata.core.adapters.sqlalchemy import SQLAlchemyConnectionSource
from strata.core.adapters.sqlite import SqliteConnectionSource
from strata.core.connection import create_connection_source, parse_url, source_from_settings
from strata.core.errors import InvalidConfigError
from strata.core.settings import StrataSettings


class TestParseUrl:
    @pytest.mark.parametrize("url", [None, "", "memory", ":memory:", "sqlite://", "sqlite:///:memory:"])
    def test_memory(self, url):
        info = parse_url(url)
        assert info.is_sqlite
        assert not info.persistent
        assert info.path is None

    def test_sqlite_url(self):
        info = parse_url("sqlite:///data/app.db")
        assert info.is_sqlite
        assert info.persistent
        assert info.path == "data/app.db"

    def test_bare_path(self):
        info = parse_url("./account.db")
        assert info.is_sqlite
        assert info.path == "./account.db"

    def test_postgres_alias(self):
        info = parse_url("postgres://app@db/app")
        assert info.backend == "sqlalchemy"
        assert info.url == "postgresql://app@db/app"

    def test_postgres_alias_with_driver(self):
        assert parse_url("postgres+psycopg://db/app").url == "postgresql+psycopg://db/app"

    def test_driver_suffix(self):
        assert parse_url("mysql+pymysql://db/app").backend == "sqlalchemy"

    def test_unknown_scheme(self):
        with pytest.raises(InvalidConfigError) as exc_info:
            parse_url("redis://localhost:6379")
        assert exc_info.value.key == "database_url"


class TestCreateConnectionSource:
    def test_memory(self):
        with create_connection_source("memory") as src:
            assert isinstance(src, SqliteConnectionSource)

    def test_file_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "account.db"
        with create_connection_source(f"sqlite:///{path}") as src:
            src.get_connection()
        assert path.exists()

    def test_unknown_scheme(self):
        with pytest.raises(InvalidConfigError):
            create_connection_source("ftp://example.com/db")

    def test_missing_driver_is_a_config_error(self):
        with pytest.raises(InvalidConfigError):
            create_connection_source("mysql+nosuchdriver://db/app")

    def test_from_settings(self):
        with source_from_settings(StrataSettings(database_url="memory")) as src:
            assert isinstance(src, SqliteConnectionSource)

    def test_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("STRATA_DATABASE_URL", str(tmp_path / "env.db"))
        with source_from_settings() as src:
            assert isinstance(src, SqliteConnectionSource)
            assert src.path == str(tmp_path / "env.db")

    def test_sqlite_through_sqlalchemy(self):
        info = parse_url("sqlite+pysqlite://")
        assert info.backend == "sqlalchemy"
        with create_connection_source("sqlite+pysqlite://") as src:
            assert isinstance(src, SQLAlchemyConnectionSource)
            with src.connection() as conn:
                assert conn.execute("SELECT 1 AS one").fetchone() == {"one": 1}
