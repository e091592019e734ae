"""
strata.core - transactional data-access layer.

Building blocks, leaf first:

- :mod:`~strata.core.mapping` - entity ↔ row mapping tables
- :mod:`~strata.core.query` - predicate trees, deferred arguments, prepared queries
- :mod:`~strata.core.dao` - typed repository per entity kind
- :mod:`~strata.core.transaction` - atomic units of work, savepoint nesting
- :mod:`~strata.core.adapters` - SQLite and SQLAlchemy connection sources

Example:
    >>> from strata.core import Dao, TransactionManager, create_connection_source
    >>> source = create_connection_source("memory")
    >>> create_table(source, ACCOUNT_MAPPER)
    >>> accounts = Dao(source, ACCOUNT_MAPPER)
    >>> TransactionManager(source).run_in_transaction(
    ...     lambda tx: accounts.bind(tx).create(Account("Jim"))
    ... )
    1
"""

from strata.core.adapters import (
    BaseConnectionSource,
    SQLAlchemyConnectionSource,
    SqliteConnectionSource,
)
from strata.core.connection import create_connection_source, parse_url
from strata.core.dao import Dao
from strata.core.dialect import Dialect, get_dialect
from strata.core.errors import (
    AlreadyManagedError,
    IncompleteQueryError,
    MappingError,
    NotManagedError,
    QueryError,
    StorageError,
    StrataError,
    TransactionFailedError,
    TransactionStateError,
    UnboundArgumentError,
    UnknownFieldError,
)
from strata.core.iteration import CloseableIterator
from strata.core.mapping import EntityMapper, FieldMapping
from strata.core.query import DeferredArgument, PreparedQuery, QueryBuilder, Where
from strata.core.result import Err, Ok, Result
from strata.core.schema import create_table, drop_table, table_exists
from strata.core.transaction import Transaction, TransactionManager, TransactionState

__all__ = [
    # sources
    "BaseConnectionSource",
    "SQLAlchemyConnectionSource",
    "SqliteConnectionSource",
    "create_connection_source",
    "parse_url",
    "Dialect",
    "get_dialect",
    # mapping / dao / query
    "EntityMapper",
    "FieldMapping",
    "Dao",
    "CloseableIterator",
    "QueryBuilder",
    "Where",
    "PreparedQuery",
    "DeferredArgument",
    # transactions
    "Transaction",
    "TransactionManager",
    "TransactionState",
    "Ok",
    "Err",
    "Result",
    # schema
    "create_table",
    "drop_table",
    "table_exists",
    # errors
    "StrataError",
    "MappingError",
    "AlreadyManagedError",
    "NotManagedError",
    "QueryError",
    "UnknownFieldError",
    "IncompleteQueryError",
    "UnboundArgumentError",
    "StorageError",
    "TransactionFailedError",
    "TransactionStateError",
]
