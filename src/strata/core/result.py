"""
Result type for explicit success/failure handling.

A unit of work handed to :class:`~strata.core.transaction.TransactionManager`
may report its outcome as a value instead of unwinding the stack: it returns
``Ok(value)`` to commit or ``Err(error)`` to roll back. The manager inspects
the result, so rollback does not depend on an exception escaping the unit.

Manifesto:
    - **Explicit outcome:** The return type says whether the unit succeeded
    - **No hidden control flow:** Rollback is triggered by a value, not by a
      ``raise`` somewhere deep in a call chain
    - **Bridgeable:** :func:`try_result` converts exception-raising code

Architecture:
    ::

        Result[T] = Ok[T] | Err[T]

        ┌──────────────┐                ┌──────────────┐
        │    Ok[T]     │                │    Err[T]    │
        │  value: T    │                │  error: Exc  │
        ├──────────────┤                ├──────────────┤
        │ is_ok  True  │                │ is_ok False  │
        │ unwrap value │                │ unwrap raise │
        │ map  f(v)    │                │ map  no-op   │
        └──────────────┘                └──────────────┘

Examples:
    >>> Ok(3).map(lambda x: x + 1).unwrap()
    4
    >>> Err(ValueError("nope")).unwrap_or(0)
    0
    >>> try_result(lambda: int("x")).is_err()
    True

Tags:
    result-pattern, error-handling, unit-of-work, strata
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from strata.core.errors import StrataError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def unwrap_err(self) -> Exception:
        raise ValueError(f"Called unwrap_err on {self!r}")

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """Transform the value if Ok."""
        return Ok(f(self.value))

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        """Chain to another Result-returning function."""
        return f(self.value)

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        return self

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed result containing the exception that describes the failure."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the error. Use only when you're sure it's Ok."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def unwrap_err(self) -> Exception:
        return self.error

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """No-op for Err."""
        return Err(self.error)

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        """No-op for Err."""
        return Err(self.error)

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        """Transform the error."""
        return Err(f(self.error))

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.error, StrataError):
            return {"ok": False, "error": self.error.to_dict()}
        return {
            "ok": False,
            "error": {"error_type": type(self.error).__name__, "message": str(self.error)},
        }

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def is_result(value: Any) -> bool:
    """True if *value* is an :class:`Ok` or :class:`Err`."""
    return isinstance(value, (Ok, Err))


def try_result(f: Callable[[], T]) -> Result[T]:
    """Call *f* and wrap its return value in ``Ok`` or its exception in ``Err``."""
    try:
        return Ok(f())
    except Exception as e:
        return Err(e)


__all__ = [
    "Ok",
    "Err",
    "Result",
    "is_result",
    "try_result",
]
