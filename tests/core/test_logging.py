"""Tests for strata.core.logging module."""

import json

import structlog

from strata.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


class TestLogContext:
    def test_binds_and_restores(self):
        with LogContext(tx_id="abc"):
            assert structlog.contextvars.get_contextvars()["tx_id"] == "abc"
            with LogContext(tx_id="inner"):
                assert structlog.contextvars.get_contextvars()["tx_id"] == "inner"
            assert structlog.contextvars.get_contextvars()["tx_id"] == "abc"
        assert "tx_id" not in structlog.contextvars.get_contextvars()

    def test_bind_unbind_clear(self):
        clear_context()
        bind_context(command="demo", step="bulk")
        unbind_context("step")
        assert structlog.contextvars.get_contextvars() == {"command": "demo"}
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}


class TestConfigureLogging:
    def test_json_events(self, capsys):
        configure_logging(level="INFO", json_format=True, service="strata-test")
        with LogContext(tx_id="abc"):
            get_logger("strata.tests").info("table_created", table="account")
        event = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert event["event"] == "table_created"
        assert event["table"] == "account"
        assert event["tx_id"] == "abc"
        assert event["level"] == "info"
        assert event["service.name"] == "strata-test"
        assert "timestamp" in event

    def test_level_filters(self, capsys):
        configure_logging(level="ERROR", json_format=True)
        get_logger("strata.tests").warning("quiet")
        assert capsys.readouterr().err == ""

    def test_statement_values_are_not_logged(self, capsys, source):
        from strata.accounts import ACCOUNT_MAPPER, Account
        from strata.core.dao import Dao

        configure_logging(level="DEBUG", json_format=True)
        Dao(source, ACCOUNT_MAPPER).create(Account("Jim", "hunter2"))
        err = capsys.readouterr().err
        assert "sql" in err
        assert "hunter2" not in err
