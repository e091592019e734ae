"""
Root Typer application for the strata CLI.
"""

from __future__ import annotations

import typer
from rich.table import Table
from typer import Typer

from strata.cli.db import app as db_app
from strata.cli.utils import console, open_source, print_json
from strata.core.logging import configure_logging
from strata.core.settings import get_settings
from strata.demo import run_demo

app = Typer(
    name="strata",
    help="strata - transactional data-access layer.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from strata import __version__

        try:
            v = pkg_version("strata-dal")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"strata {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override STRATA_LOG_LEVEL"),
) -> None:
    """strata CLI - run the walkthrough and manage the account table."""
    settings = get_settings()
    level = (log_level or settings.log_level).upper()
    if level not in _LEVELS:
        raise typer.BadParameter(f"unknown log level {level!r}", param_hint="--log-level")
    configure_logging(level=level, json_format=settings.json_logs)


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def demo(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL or path"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Run the end-to-end walkthrough (recreates the account table)."""
    with open_source(database) as source:
        steps = run_demo(source)

    if json_out:
        print_json([{"step": s.name, "detail": s.detail} for s in steps])
        return

    table = Table(title="strata demo")
    table.add_column("Step", style="cyan")
    table.add_column("Result")
    for step in steps:
        table.add_row(step.name, step.detail)
    console.print(table)
    console.print("[green]It seems to have worked[/green]")


app.add_typer(db_app, name="db", help="Account table management.")
