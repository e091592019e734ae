"""
Transactions: atomic units of work over one connection.

:class:`TransactionManager` runs a caller-supplied unit of work inside a
begin/commit/rollback envelope. The unit receives the :class:`Transaction`
handle and reports its outcome either by returning (a plain value or an
``Ok``) or by failing (raising, or returning an ``Err``). Success commits;
failure rolls back every statement issued in the scope and raises
:class:`~strata.core.errors.TransactionFailedError` carrying the original
cause.

Manifesto:
    A transaction is a scope, not a connection setting. Everything a unit of
    work does runs on the connection the scope borrowed, and the scope ends
    in exactly one of two terminal states. Nothing is committed "by
    accident" and nothing is rolled back silently.

Architecture:
    ::

        TransactionManager(source)
              │ run_in_transaction(unit)
              ▼
        ┌───────────────── Transaction (tx_id) ─────────────────┐
        │  IDLE ──begin──► ACTIVE ──commit──► COMMITTED          │
        │                    │                                   │
        │                    └──rollback──► ROLLED_BACK          │
        │                                                       │
        │  unit(tx) ── dao.bind(tx) / unbound dao on this thread │
        │       │                                               │
        │       └── tx.run_in_transaction(inner) ─► SAVEPOINT    │
        └───────────────────────────────────────────────────────┘

    Nesting policy: an inner scope opened while an outer one is active (on
    the same source and thread) is a SAVEPOINT. Inner success releases it;
    inner failure rolls back to it and raises ``TransactionFailedError`` into
    the outer unit, which may catch it and carry on.

Examples:
    Abort by raising:

    >>> tm = TransactionManager(source)
    >>> def move(tx):
    ...     accounts = dao.bind(tx)
    ...     accounts.delete(a)
    ...     raise RuntimeError("changed my mind")
    >>> tm.run_in_transaction(move)          # raises TransactionFailedError
    >>> dao.query_for_id(a.id) == a          # delete was undone
    True

    Abort by returning a result:

    >>> tm.try_in_transaction(lambda tx: Err(ValueError("no")))
    Err(TransactionFailedError(...))

    Context-manager form:

    >>> with tm.transaction() as tx:
    ...     dao.bind(tx).create(Account("Jim"))

Guardrails:
    ❌ DON'T: Keep using a Dao bound to a finished transaction
    ✅ DO: Bind a fresh Dao per transaction (``tx.bind(dao)``)

    ❌ DON'T: Swallow ``TransactionFailedError`` from a nested scope unless
       the outer unit really can continue without the inner effects
    ✅ DO: Let it propagate to roll back the whole unit

Tags:
    transaction, unit-of-work, savepoint, rollback, strata
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from strata.core.errors import (
    StorageError,
    TransactionFailedError,
    TransactionStateError,
)
from strata.core.logging import LogContext, get_logger
from strata.core.protocols import Connection, ConnectionSource
from strata.core.result import Err, Ok, Result

if TYPE_CHECKING:
    from strata.core.dao import Dao

logger = get_logger(__name__)

T = TypeVar("T")
E = TypeVar("E")

UnitOfWork = Callable[["Transaction"], Any]


class TransactionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in (TransactionState.COMMITTED, TransactionState.ROLLED_BACK)


# =============================================================================
# ACTIVE-TRANSACTION TRACKING
# =============================================================================

_local = threading.local()


def _active() -> list[Transaction]:
    stack = getattr(_local, "stack", None)
    if stack is None:
        stack = _local.stack = []
    return stack


def current_transaction(source: ConnectionSource) -> Transaction | None:
    """Innermost active transaction on *source* opened by this thread."""
    for tx in reversed(_active()):
        if tx.source is source and tx.is_active:
            return tx
    return None


# =============================================================================
# TRANSACTION HANDLE
# =============================================================================


class Transaction:
    """Handle for one transaction scope.

    Created by :class:`TransactionManager`; callers only read its state, bind
    Daos to it and open nested scopes through it.

    Attributes:
        tx_id: Short unique id, bound into log context for the scope
        source: Connection source the transaction runs against
        connection: Connection every statement in the scope uses
        parent: Enclosing transaction for a savepoint scope, else ``None``
    """

    def __init__(
        self,
        manager: TransactionManager,
        connection: Connection,
        parent: Transaction | None = None,
    ):
        self.tx_id = uuid.uuid4().hex[:12]
        self.manager = manager
        self.source = manager.source
        self.connection = connection
        self.parent = parent
        self.state = TransactionState.IDLE

    @property
    def is_active(self) -> bool:
        return self.state is TransactionState.ACTIVE

    @property
    def is_nested(self) -> bool:
        return self.parent is not None

    @property
    def savepoint_name(self) -> str:
        return f"sp_{self.tx_id}"

    def ensure_active(self) -> None:
        """Raise :class:`TransactionStateError` unless the scope is active."""
        if not self.is_active:
            raise TransactionStateError(
                f"Transaction {self.tx_id} is {self.state.value}; no further operations allowed"
            ).with_context(tx_id=self.tx_id)

    def bind(self, dao: Dao[E]) -> Dao[E]:
        """Return a copy of *dao* whose calls run in this transaction."""
        return dao.bind(self)

    def run_in_transaction(self, unit: UnitOfWork) -> Any:
        """Run *unit* in a savepoint nested inside this transaction."""
        self.ensure_active()
        return self.manager._run(unit, parent=self)

    # -- Boundary control (manager only) ------------------------------------

    def _begin(self) -> None:
        if self.state is not TransactionState.IDLE:
            raise TransactionStateError(f"Transaction {self.tx_id} already {self.state.value}")
        if self.parent is None:
            self.connection.begin()
        else:
            self.connection.savepoint(self.savepoint_name)
        self.state = TransactionState.ACTIVE

    def _commit(self) -> None:
        self.ensure_active()
        if self.parent is None:
            self.connection.commit()
        else:
            self.connection.release_savepoint(self.savepoint_name)
        self.state = TransactionState.COMMITTED

    def _rollback(self) -> None:
        self.ensure_active()
        try:
            if self.parent is None:
                self.connection.rollback()
            else:
                self.connection.rollback_to_savepoint(self.savepoint_name)
        finally:
            self.state = TransactionState.ROLLED_BACK

    def __repr__(self) -> str:
        kind = "nested" if self.is_nested else "top"
        return f"Transaction({self.tx_id}, {kind}, {self.state.value})"


# =============================================================================
# TRANSACTION MANAGER
# =============================================================================


class TransactionManager:
    """
    Runs units of work atomically against one connection source.

    A top-level scope borrows one connection from the source for its whole
    duration and gives it back when the scope ends. Unbound Daos over the
    same source, called from the thread that opened the scope, join it;
    ``dao.bind(tx)`` makes the participation explicit.

    Parameters:
        source: Connection source whose connections carry the transactions
    """

    def __init__(self, source: ConnectionSource):
        self.source = source

    def current(self) -> Transaction | None:
        """Innermost transaction this thread has open on :attr:`source`."""
        return current_transaction(self.source)

    def run_in_transaction(self, unit: UnitOfWork) -> Any:
        """Run *unit* atomically and return its result.

        The unit is called with the :class:`Transaction` handle. When a
        transaction is already active on this thread and source, the unit
        runs in a savepoint inside it.

        Returns:
            The unit's return value; an ``Ok`` is unwrapped.

        Raises:
            TransactionFailedError: The unit raised or returned ``Err``, or
                the commit failed; everything was rolled back.
            StorageError: The rollback itself failed.
        """
        return self._run(unit, parent=self.current())

    def try_in_transaction(self, unit: UnitOfWork) -> Result[Any]:
        """Like :meth:`run_in_transaction` but returns ``Ok``/``Err``.

        Only :class:`TransactionFailedError` becomes an ``Err``; a failed
        rollback still raises.
        """
        try:
            return Ok(self.run_in_transaction(unit))
        except TransactionFailedError as e:
            return Err(e)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Context-manager form: commit on normal exit, roll back on error."""
        with self._scope(self.current()) as tx:
            yield tx

    # -- Internals ---------------------------------------------------------

    def _run(self, unit: UnitOfWork, parent: Transaction | None) -> Any:
        with self._scope(parent) as tx:
            outcome = unit(tx)
            if isinstance(outcome, Err):
                raise outcome.error
        return outcome.value if isinstance(outcome, Ok) else outcome

    @contextmanager
    def _scope(self, parent: Transaction | None) -> Iterator[Transaction]:
        if parent is None:
            conn = self.source.get_connection()
        else:
            parent.ensure_active()
            conn = parent.connection
        try:
            tx = Transaction(self, conn, parent)
            with LogContext(tx_id=tx.tx_id):
                tx._begin()
                logger.debug("transaction_begin", nested=tx.is_nested)
                stack = _active()
                stack.append(tx)
                try:
                    yield tx
                except Exception as e:
                    self._rollback(tx, e)
                    raise TransactionFailedError(
                        f"Transaction {tx.tx_id} rolled back: {type(e).__name__}: {e}",
                        cause=e,
                        tx_id=tx.tx_id,
                    ) from e
                except BaseException as e:
                    self._rollback(tx, e)
                    raise
                else:
                    self._commit(tx)
                finally:
                    stack.remove(tx)
        finally:
            if parent is None:
                self.source.release_connection(conn)

    def _commit(self, tx: Transaction) -> None:
        try:
            tx._commit()
        except StorageError as e:
            self._rollback(tx, e)
            raise TransactionFailedError(
                f"Transaction {tx.tx_id} failed to commit: {e}",
                cause=e,
                tx_id=tx.tx_id,
            ) from e
        logger.debug("transaction_committed", nested=tx.is_nested)

    def _rollback(self, tx: Transaction, failure: BaseException) -> None:
        try:
            tx._rollback()
        except StorageError as e:
            logger.error("transaction_rollback_failed", error=str(e), failure=repr(failure))
            e.with_context(tx_id=tx.tx_id, original_failure=repr(failure))
            raise
        logger.warning(
            "transaction_rolled_back",
            nested=tx.is_nested,
            error_type=type(failure).__name__,
            error=str(failure),
        )

    def __repr__(self) -> str:
        return f"TransactionManager({self.source!r})"


__all__ = [
    "Transaction",
    "TransactionManager",
    "TransactionState",
    "UnitOfWork",
    "current_transaction",
]
