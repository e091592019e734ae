"""Lazy, cursor-backed iteration over query results.

:class:`CloseableIterator` wraps a live :class:`~strata.core.protocols.Cursor`
and maps rows to entities one at a time, fetching ``fetch_size`` rows per
round-trip. It is finite and not restartable: once exhausted or closed it
stays closed, and a fresh ``dao.iterate()`` opens a new cursor.

The cursor (and the connection it was borrowed on) is released on every exit
path:

- exhaustion (``StopIteration``)
- a mapping or storage failure mid-iteration
- ``close()`` / leaving a ``with`` block early
- the iterator being garbage collected while still open

Usage::

    with account_dao.iterate() as accounts:
        for account in accounts:
            if account.name == "stop":
                break          # cursor released on __exit__
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Mapping
from typing import Any, Generic, TypeVar

from strata.core.logging import get_logger
from strata.core.mapping import EntityMapper
from strata.core.protocols import Cursor

logger = get_logger(__name__)

E = TypeVar("E")


def row_to_mapping(cursor: Cursor, row: Any) -> Mapping[str, Any]:
    """Normalise a driver row to ``{column: value}``.

    ``sqlite3.Row`` and mapping rows pass through ``dict()``; plain tuples
    are zipped with ``cursor.description``.
    """
    if isinstance(row, Mapping):
        return row
    if hasattr(row, "keys"):
        return {key: row[key] for key in row.keys()}
    columns = [desc[0] for desc in cursor.description or ()]
    return dict(zip(columns, row, strict=True))


class CloseableIterator(Generic[E]):
    """Iterator of entities backed by an open cursor.

    Parameters:
        cursor: Open cursor positioned before the first row
        mapper: Converts each row to an entity
        fetch_size: Rows fetched per ``fetchmany`` call
        on_close: Called exactly once after the cursor is closed (the Dao
                  uses it to release its borrowed connection)
    """

    def __init__(
        self,
        cursor: Cursor,
        mapper: EntityMapper[E],
        *,
        fetch_size: int = 100,
        on_close: Callable[[], None] | None = None,
    ):
        self._cursor = cursor
        self._mapper = mapper
        self._fetch_size = fetch_size
        self._on_close = on_close
        self._buffer: deque[Any] = deque()
        self._closed = False
        self.rows_read = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> CloseableIterator[E]:
        return self

    def __next__(self) -> E:
        if self._closed:
            raise StopIteration
        try:
            if not self._buffer:
                self._buffer.extend(self._cursor.fetchmany(self._fetch_size))
                if not self._buffer:
                    self.close()
                    raise StopIteration
            entity = self._mapper.from_row(row_to_mapping(self._cursor, self._buffer.popleft()))
        except StopIteration:
            raise
        except Exception:
            self.close()
            raise
        self.rows_read += 1
        return entity

    def close(self) -> None:
        """Release the cursor. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        try:
            self._cursor.close()
        finally:
            logger.debug("cursor_closed", entity=self._mapper.entity_name, rows_read=self.rows_read)
            if self._on_close is not None:
                self._on_close()

    def __enter__(self) -> CloseableIterator[E]:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __del__(self) -> None:
        if not getattr(self, "_closed", True):
            self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"CloseableIterator({self._mapper.entity_name}, {state}, rows_read={self.rows_read})"


__all__ = [
    "CloseableIterator",
    "row_to_mapping",
]
