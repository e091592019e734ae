"""Tests for strata.core.errors module."""

import sqlite3

from strata.core.errors import (
    AlreadyManagedError,
    ErrorCategory,
    ErrorContext,
    IncompleteQueryError,
    IntegrityError,
    InvalidConfigError,
    LifecycleError,
    MappingError,
    NotManagedError,
    QueryError,
    StorageConnectionError,
    StorageError,
    StrataError,
    TransactionFailedError,
    TransactionStateError,
    UnboundArgumentError,
    UnknownFieldError,
    is_retryable,
)


class TestErrorContext:
    """Test ErrorContext dataclass."""

    def test_empty_context_serializes_to_empty_dict(self):
        assert ErrorContext().to_dict() == {}

    def test_only_set_fields_are_serialized(self):
        ctx = ErrorContext(entity="Account", statement="SELECT 1", metadata={"attempt": 2})
        assert ctx.to_dict() == {"entity": "Account", "statement": "SELECT 1", "attempt": 2}

    def test_metadata_defaults_to_a_fresh_dict(self):
        a, b = ErrorContext(field="name"), ErrorContext()
        a.metadata["attempt"] = 1
        assert a.field == "name"
        assert b.metadata == {}


class TestStrataError:
    """Test the common base class."""

    def test_defaults(self):
        error = StrataError("boom")
        assert error.message == "boom"
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.cause is None

    def test_cause_is_chained(self):
        original = ValueError("bad")
        error = StrataError("wrapped", cause=original)
        assert error.cause is original
        assert error.__cause__ is original

    def test_with_context_sets_known_fields_and_metadata(self):
        error = QueryError("bad query").with_context(entity="Account", hint="check spelling")
        assert error.context.entity == "Account"
        assert error.context.metadata == {"hint": "check spelling"}

    def test_to_dict(self):
        error = StorageError("disk full", cause=OSError("ENOSPC"))
        data = error.to_dict()
        assert data["error_type"] == "StorageError"
        assert data["category"] == "STORAGE"
        assert data["cause"] == "ENOSPC"


class TestTaxonomy:
    """Each error kind lands in the right category."""

    def test_categories(self):
        assert MappingError("x").category == ErrorCategory.MAPPING
        assert AlreadyManagedError("x").category == ErrorCategory.LIFECYCLE
        assert NotManagedError("x").category == ErrorCategory.LIFECYCLE
        assert IncompleteQueryError("x").category == ErrorCategory.QUERY
        assert UnboundArgumentError("x").category == ErrorCategory.QUERY
        assert IntegrityError("x").category == ErrorCategory.STORAGE
        assert TransactionStateError("x").category == ErrorCategory.TRANSACTION

    def test_lifecycle_errors_share_a_base(self):
        assert issubclass(AlreadyManagedError, LifecycleError)
        assert issubclass(NotManagedError, LifecycleError)

    def test_unknown_field_error_records_field_and_entity(self):
        error = UnknownFieldError("nmae", "Account")
        assert isinstance(error, QueryError)
        assert error.field_name == "nmae"
        assert error.context.entity == "Account"
        assert error.context.field == "nmae"
        assert "nmae" in str(error)

    def test_transaction_failed_error_keeps_cause(self):
        cause = RuntimeError("abort")
        error = TransactionFailedError("rolled back", cause=cause, tx_id="abc123")
        assert error.cause is cause
        assert error.__cause__ is cause
        assert error.context.tx_id == "abc123"

    def test_invalid_config_error(self):
        error = InvalidConfigError("database_url", "ftp://x")
        assert error.key == "database_url"
        assert error.value == "ftp://x"
        assert error.category == ErrorCategory.CONFIG


class TestIsRetryable:
    def test_connection_errors_are_retryable(self):
        assert is_retryable(StorageConnectionError("lost"))

    def test_integrity_errors_are_not(self):
        assert not is_retryable(IntegrityError("unique", cause=sqlite3.IntegrityError("x")))

    def test_builtin_connection_error(self):
        assert is_retryable(ConnectionError())
        assert not is_retryable(ValueError())

    def test_override_per_instance(self):
        assert not is_retryable(StorageConnectionError("closed", retryable=False))
