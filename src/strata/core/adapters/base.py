from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from strata.core.dialect import Dialect
from strata.core.errors import StorageConnectionError
from strata.core.protocols import Connection


class BaseConnectionSource(ABC):
    """
    Abstract base class for connection sources.

    Provides the shared lifecycle (closed flag, context-manager support,
    scoped borrowing) and leaves connection acquisition to subclasses.
    """

    def __init__(self, dialect: Dialect):
        self._dialect = dialect
        self._closed = False

    @property
    def dialect(self) -> Dialect:
        """SQL dialect for this source's database type."""
        return self._dialect

    @property
    def closed(self) -> bool:
        return self._closed

    def get_connection(self) -> Connection:
        """Get a connection; fails once the source is closed."""
        if self._closed:
            raise StorageConnectionError(f"{type(self).__name__} is closed", retryable=False)
        return self._acquire()

    @abstractmethod
    def _acquire(self) -> Connection:
        ...

    @abstractmethod
    def release_connection(self, conn: Connection) -> None:
        """Give back a connection obtained from :meth:`get_connection`."""
        ...

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._shutdown()

    @abstractmethod
    def _shutdown(self) -> None:
        ...

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """Borrow a connection for the duration of a ``with`` block."""
        conn = self.get_connection()
        try:
            yield conn
        finally:
            self.release_connection(conn)

    def __enter__(self) -> BaseConnectionSource:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = [
    "BaseConnectionSource",
]
