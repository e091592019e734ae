"""
CLI: ``strata db`` - account table management.
"""

from __future__ import annotations

import typer

from strata.accounts import ACCOUNT_MAPPER, NAME_FIELD
from strata.cli.utils import console, err_console, open_source, print_json
from strata.core.dao import Dao
from strata.core.schema import create_table, table_exists

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL or path"),
) -> None:
    """Create the account table if it does not exist."""
    with open_source(database) as source:
        existed = table_exists(source, ACCOUNT_MAPPER.table)
        create_table(source, ACCOUNT_MAPPER)
    state = "already exists" if existed else "created"
    console.print(f"Table [bold]{ACCOUNT_MAPPER.table}[/bold] {state}")


@app.command()
def count(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL or path"),
    like: str | None = typer.Option(None, "--like", help="Only count names matching this LIKE pattern"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Count stored accounts."""
    with open_source(database) as source:
        if not table_exists(source, ACCOUNT_MAPPER.table):
            err_console.print(f"Table {ACCOUNT_MAPPER.table} does not exist; run [bold]strata db init[/bold]")
            raise typer.Exit(code=1)
        dao = Dao(source, ACCOUNT_MAPPER)
        qb = dao.query_builder()
        if like is not None:
            qb.where().like(NAME_FIELD, like)
        total = qb.count_of()

    if json_out:
        print_json({"table": ACCOUNT_MAPPER.table, "like": like, "count": total})
    else:
        console.print(f"{total} account(s)")
