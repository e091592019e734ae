"""
End-to-end walkthrough of the DAL against the ``account`` table.

Each step exercises one part of the protocol and checks its own results,
raising :class:`DemoCheckError` on the first mismatch:

1. ``read_write_data``      - create, update, query_for_all, iteration,
   ``like`` queries, delete
2. ``read_write_bunch``     - 100 creates, then query_for_all and lazy
   iteration both see exactly those accounts
3. ``use_deferred_arguments`` - one prepared query run three times with a
   re-bound deferred argument
4. ``use_transactions``     - a delete inside a unit of work that then fails
   is rolled back

``run_demo`` drops and recreates the table first, so the counts hold on a
database file that has been used before.

Usage::

    from strata.core import create_connection_source
    from strata.demo import run_demo

    with create_connection_source("sqlite:///account.db") as source:
        for step in run_demo(source):
            print(step.name, step.detail)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from strata.accounts import ACCOUNT_MAPPER, NAME_FIELD, Account
from strata.core.dao import Dao
from strata.core.errors import ErrorCategory, StrataError, TransactionFailedError
from strata.core.logging import get_logger
from strata.core.protocols import ConnectionSource
from strata.core.query import DeferredArgument
from strata.core.schema import create_table, drop_table
from strata.core.transaction import Transaction, TransactionManager

logger = get_logger(__name__)


class DemoCheckError(StrataError):
    """A demo step observed something other than what it expected."""

    default_category = ErrorCategory.INTERNAL


@dataclass(frozen=True)
class StepResult:
    name: str
    detail: str


def _expect(condition: bool, message: str) -> None:
    if not condition:
        raise DemoCheckError(message)


def _verify(dao: Dao[Account], expected: Account) -> None:
    stored = dao.query_for_id(expected.id)
    _expect(stored is not None, f"Should have found id {expected.id} in the database")
    _expect(stored == expected, f"Stored account {stored} differs from {expected}")


# =============================================================================
# STEPS
# =============================================================================


def read_write_data(dao: Dao[Account]) -> str:
    name = "Jim Coakley"
    account = Account(name)

    dao.create(account)
    _verify(dao, account)

    account.password = "_secret"
    dao.update(account)
    _verify(dao, account)

    accounts = dao.query_for_all()
    _expect(accounts == [account], "Should have found exactly our account")

    looped = list(dao)
    _expect(looped == [account], "Should have iterated exactly our account")

    qb = dao.query_builder()
    qb.where().like(NAME_FIELD, "hello")
    _expect(dao.query(qb.prepare()) == [], "name LIKE 'hello' should match nothing")

    qb.where().like(NAME_FIELD, name[:3] + "%")
    _expect(dao.query(qb.prepare()) == [account], f"name LIKE '{name[:3]}%' should match")

    dao.delete(account)
    _expect(dao.query_for_id(account.id) is None, "Deleted account should be gone")
    return f"account {account.id} created, updated, queried and deleted"


def read_write_bunch(dao: Dao[Account], count: int = 100) -> str:
    created: dict[str, Account] = {}
    for i in range(1, count + 1):
        account = Account(str(i))
        _expect(dao.create(account) == 1, f"create of {account.name} should return 1")
        created[account.name] = account

    every = dao.query_for_all()
    _expect(len(every) == len(created), f"query_for_all found {len(every)}, expected {len(created)}")
    for account in every:
        _expect(created.get(account.name) == account, f"Unexpected account {account}")

    seen = 0
    with dao.iterate() as accounts:
        for account in accounts:
            _expect(created.get(account.name) == account, f"Unexpected account {account}")
            seen += 1
    _expect(seen == len(created), f"Iteration found {seen}, expected {len(created)}")
    return f"{count} accounts consistent across query_for_all and iterate"


def use_deferred_arguments(dao: Dao[Account]) -> str:
    names = ("foo", "bar", "baz")
    for name in names:
        _expect(dao.create(Account(name)) == 1, f"create of {name} should return 1")

    qb = dao.query_builder()
    name_arg = DeferredArgument(NAME_FIELD)
    qb.where().like(NAME_FIELD, name_arg)
    prepared = qb.prepare()

    for name in names:
        name_arg.set_value(name)
        results = dao.query(prepared)
        _expect(len(results) == 1, f"Should have found 1 account named {name}")
        _expect(results[0].name == name, f"Found {results[0].name}, expected {name}")
    return f"one prepared query executed {len(names)} times"


def use_transactions(dao: Dao[Account], manager: TransactionManager) -> str:
    account = Account("trans1")
    _expect(dao.create(account) == 1, "create should return 1")

    def delete_then_fail(tx: Transaction) -> None:
        accounts = dao.bind(tx)
        _expect(accounts.delete(account) == 1, "delete inside the transaction should hit 1 row")
        _expect(accounts.query_for_id(account.id) is None, "delete should be visible inside")
        raise RuntimeError("We throw to roll back!!")

    try:
        manager.run_in_transaction(delete_then_fail)
    except TransactionFailedError as e:
        _expect(isinstance(e.cause, RuntimeError), f"Unexpected cause {e.cause!r}")
    else:
        raise DemoCheckError("The unit of work should have failed")

    _verify(dao, account)
    return f"delete of account {account.id} rolled back"


# =============================================================================
# ENTRY POINT
# =============================================================================


def run_demo(source: ConnectionSource) -> list[StepResult]:
    """Run every step against *source*; stops at the first failed check."""
    drop_table(source, ACCOUNT_MAPPER)
    create_table(source, ACCOUNT_MAPPER)

    dao = Dao(source, ACCOUNT_MAPPER)
    manager = TransactionManager(source)
    steps: list[tuple[str, Callable[[], str]]] = [
        ("read_write_data", lambda: read_write_data(dao)),
        ("read_write_bunch", lambda: read_write_bunch(dao)),
        ("use_deferred_arguments", lambda: use_deferred_arguments(dao)),
        ("use_transactions", lambda: use_transactions(dao, manager)),
    ]

    results = []
    for name, step in steps:
        detail = step()
        logger.info("demo_step_passed", step=name, detail=detail)
        results.append(StepResult(name, detail))
    return results


__all__ = [
    "DemoCheckError",
    "StepResult",
    "read_write_bunch",
    "read_write_data",
    "use_deferred_arguments",
    "use_transactions",
    "run_demo",
]
