"""
Structured error types for the strata data-access layer.

Every failure the DAL can surface is a :class:`StrataError`. Instead of
leaking driver exceptions (``sqlite3.OperationalError``,
``sqlalchemy.exc.DBAPIError``) or generic ``ValueError``s, each error carries:

- **Category:** Which layer failed (mapping, lifecycle, query, storage, ...)
- **Retryable:** Whether repeating the call could succeed
- **Context:** Entity, table, field and statement involved
- **Cause:** The chained underlying exception

Manifesto:
    - **Typed taxonomy:** Callers branch on the error class, never on messages
    - **Nothing swallowed:** Every error either completes a rollback and
      re-raises, or surfaces directly
    - **Absence is not an error:** A point-lookup miss or zero rows affected is
      a normal return value, never one of these classes

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────────┐
        │                          StrataError                              │
        │          (category, retryable, context, cause)                    │
        ├──────────────────────────────────────────────────────────────────┤
        │                                                                   │
        │  MappingError        LifecycleError        QueryError             │
        │  (MAPPING)           (LIFECYCLE)           (QUERY)                │
        │                          │                     │                  │
        │                    AlreadyManagedError   UnknownFieldError        │
        │                    NotManagedError       IncompleteQueryError     │
        │                                          UnboundArgumentError     │
        │                                                                   │
        │  StorageError        TransactionError      ConfigError            │
        │  (STORAGE)           (TRANSACTION)         (CONFIG)               │
        │       │                  │                     │                  │
        │  IntegrityError     TransactionFailedError InvalidConfigError     │
        │  StorageConnection- TransactionStateError                         │
        │  Error (retryable)                                                │
        └──────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = NotManagedError("Account has no id").with_context(entity="Account")
    >>> error.context.entity
    'Account'
    >>> error.retryable
    False

    >>> try:
    ...     raise sqlite3.IntegrityError("UNIQUE constraint failed")
    ... except sqlite3.IntegrityError as e:
    ...     raise IntegrityError("Insert rejected", cause=e)
    Traceback (most recent call last):
    ...
    IntegrityError: Insert rejected

Guardrails:
    ❌ DON'T: Raise driver exceptions out of the DAL
    ✅ DO: Translate them to StorageError subclasses with cause=

    ❌ DON'T: Return None to signal a failure
    ✅ DO: Return None only for absence; raise for failures

Tags:
    error-handling, exception-hierarchy, dal, transactions, strata
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Categories map one-to-one onto the DAL layers so that a log line or an
    alert can say *where* the failure originated without parsing messages.

    Attributes:
        MAPPING: Row/entity shape mismatch in the entity mapper
        LIFECYCLE: Dao misuse (create of a managed entity, update of a transient one)
        QUERY: Query builder misuse (unknown field, incomplete tree, unbound argument)
        STORAGE: Backend failure (connectivity, constraint violation)
        TRANSACTION: Unit of work failed or transaction handle misused
        CONFIG: Missing or invalid settings
        INTERNAL: Bugs, unexpected state
    """

    MAPPING = "MAPPING"
    LIFECYCLE = "LIFECYCLE"
    QUERY = "QUERY"
    STORAGE = "STORAGE"
    TRANSACTION = "TRANSACTION"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set end up in :meth:`to_dict`, so a context can be
    passed straight into a structlog event.

    Attributes:
        entity: Entity type name (e.g. ``"Account"``)
        table: Table the statement targeted
        field: Entity field involved
        statement: SQL text that failed (never the bound values)
        tx_id: Transaction identifier, when raised inside a unit of work
        metadata: Additional key-value pairs
    """

    entity: str | None = None
    table: str | None = None
    field: str | None = None
    statement: str | None = None
    tx_id: str | None = None

    metadata: dict[str, Any] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["entity", "table", "field", "statement", "tx_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StrataError(Exception):
    """
    Base exception for all strata errors.

    Subclasses set ``default_category`` and ``default_retryable`` so the
    common case needs only a message::

        raise NotManagedError("Cannot update Account without an id")

    Parameters:
        message: Human-readable description
        category: Overrides ``default_category``
        retryable: Overrides ``default_retryable``
        context: Structured metadata; an empty one is created when omitted
        cause: Underlying exception, also installed as ``__cause__``
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StrataError:
        """Add context fields (unknown keys go to ``metadata``) and return self."""
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# ENTITY MAPPER
# =============================================================================


class MappingError(StrataError):
    """Row and entity shapes disagree (missing required column, wrong type)."""

    default_category = ErrorCategory.MAPPING


# =============================================================================
# DAO LIFECYCLE
# =============================================================================


class LifecycleError(StrataError):
    """Dao called on an entity in the wrong lifecycle state."""

    default_category = ErrorCategory.LIFECYCLE


class AlreadyManagedError(LifecycleError):
    """``create`` called on an entity whose identity is already assigned."""


class NotManagedError(LifecycleError):
    """``update``/``delete``/``refresh`` called on a transient entity."""


# =============================================================================
# QUERY BUILDER
# =============================================================================


class QueryError(StrataError):
    """Malformed or misapplied query."""

    default_category = ErrorCategory.QUERY


class UnknownFieldError(QueryError):
    """Field name is not in the mapper's queryable set."""

    def __init__(self, field_name: str, entity: str, message: str | None = None):
        self.field_name = field_name
        super().__init__(
            message or f"Unknown field {field_name!r} for entity {entity}",
            context=ErrorContext(entity=entity, field=field_name),
        )


class IncompleteQueryError(QueryError):
    """Predicate tree cannot be turned into a statement."""


class UnboundArgumentError(QueryError):
    """A deferred argument was executed before ``set_value`` was called."""


# =============================================================================
# STORAGE
# =============================================================================


class StorageError(StrataError):
    """Backend failure surfaced by the connection source.

    Never retried by strata itself; the retryable flag is advisory for the
    caller's own retry policy.
    """

    default_category = ErrorCategory.STORAGE


class StorageConnectionError(StorageError):
    """Connection closed, lost or unreachable."""

    default_retryable = True


class IntegrityError(StorageError):
    """Constraint violation reported by the backend."""


# =============================================================================
# TRANSACTIONS
# =============================================================================


class TransactionError(StrataError):
    default_category = ErrorCategory.TRANSACTION


class TransactionFailedError(TransactionError):
    """
    A unit of work failed and its transaction was rolled back.

    The original failure is kept in :attr:`cause` so callers can tell a
    business-logic abort (any exception raised by the unit, or an ``Err``
    it returned) from a storage failure (a :class:`StorageError` cause).
    """

    def __init__(self, message: str, *, cause: BaseException, tx_id: str | None = None):
        super().__init__(message, cause=cause, context=ErrorContext(tx_id=tx_id))


class TransactionStateError(TransactionError):
    """Operation attempted on a transaction that is not active."""


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigError(StrataError):
    default_category = ErrorCategory.CONFIG


class InvalidConfigError(ConfigError):
    """Configuration value is present but unusable."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, StrataError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StrataError",
    # Mapper
    "MappingError",
    # Lifecycle
    "LifecycleError",
    "AlreadyManagedError",
    "NotManagedError",
    # Query
    "QueryError",
    "UnknownFieldError",
    "IncompleteQueryError",
    "UnboundArgumentError",
    # Storage
    "StorageError",
    "StorageConnectionError",
    "IntegrityError",
    # Transactions
    "TransactionError",
    "TransactionFailedError",
    "TransactionStateError",
    # Config
    "ConfigError",
    "InvalidConfigError",
    # Utilities
    "is_retryable",
]
