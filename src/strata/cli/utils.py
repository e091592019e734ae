"""
CLI utility helpers: output formatting and connection-source management.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, NoReturn

import typer
from rich.console import Console

from strata.core.adapters.base import BaseConnectionSource
from strata.core.connection import create_connection_source
from strata.core.errors import StrataError
from strata.core.settings import get_settings

console = Console()
err_console = Console(stderr=True)


# ── Connection helper ────────────────────────────────────────────────────


@contextmanager
def open_source(database: str | None = None) -> Iterator[BaseConnectionSource]:
    """Connection source for *database*, or the configured ``database_url``.

    Any :class:`StrataError` raised inside the block is reported and turned
    into exit code 1.
    """
    settings = get_settings()
    try:
        source = create_connection_source(database or settings.database_url, echo=settings.echo_sql)
    except StrataError as e:
        fail(e)
    try:
        with source:
            yield source
    except StrataError as e:
        fail(e)


# ── Output helpers ───────────────────────────────────────────────────────


def fail(error: StrataError) -> NoReturn:
    """Print *error* to stderr and exit with code 1."""
    err_console.print(f"[bold red]Error[/bold red] ({type(error).__name__}): {error.message}")
    raise typer.Exit(code=1)


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))
