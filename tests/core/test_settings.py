"""Tests for strata.core.settings module."""

import pytest
from pydantic import ValidationError

from strata.core.settings import StrataSettings, get_settings


class TestStrataSettings:
    def test_defaults(self):
        settings = StrataSettings()
        assert settings.database_url == "sqlite:///:memory:"
        assert settings.log_level == "INFO"
        assert settings.json_logs is None
        assert settings.fetch_size == 100
        assert settings.echo_sql is False

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("STRATA_FETCH_SIZE", "5")
        monkeypatch.setenv("STRATA_LOG_LEVEL", "debug")
        monkeypatch.setenv("STRATA_ECHO_SQL", "true")
        settings = StrataSettings()
        assert settings.fetch_size == 5
        assert settings.log_level == "DEBUG"
        assert settings.echo_sql is True

    def test_unknown_level(self):
        with pytest.raises(ValidationError):
            StrataSettings(log_level="LOUD")

    def test_fetch_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            StrataSettings(fetch_size=0)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_dao_uses_fetch_size(self, monkeypatch, dao, source):
        from strata.accounts import ACCOUNT_MAPPER
        from strata.core.dao import Dao

        assert dao.fetch_size == 100
        monkeypatch.setenv("STRATA_FETCH_SIZE", "7")
        get_settings.cache_clear()
        assert Dao(source, ACCOUNT_MAPPER).fetch_size == 7
