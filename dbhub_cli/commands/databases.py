"""Database content commands for the DBHub CLI."""

from pathlib import Path
from typing import Optional
from urllib.parse import quote

import typer

from ..client import APIError, get_client
from ..output import format_bytes, print_error, print_json, print_record_set, print_success
from ..main import state

app = typer.Typer(help="Read and download databases")


def _path(route: str, owner: str, db_name: str) -> str:
    return f"/x/{route}/{quote(owner, safe='')}/{quote(db_name, safe='')}"


def _fail(error: Exception) -> None:
    """Report an API or configuration error and exit non-zero."""
    if isinstance(error, APIError):
        print_error(f"{error.message} (HTTP {error.status_code})")
    else:
        print_error(str(error))
    raise typer.Exit(1)


def _show_record_set(result: dict, owner: str, db_name: str) -> None:
    if state.json_output:
        print_json(result)
        return

    if not result:
        typer.echo("No rows returned")
        return

    print_record_set(result, title=f"{owner}/{db_name}: {result.get('table', '')}")
    typer.echo(f"\nShowing {result.get('row_count', 0)} of {result.get('total_rows', 0):,} row(s)")
    tables = result.get("tables") or []
    if len(tables) > 1:
        typer.echo(f"Tables: {', '.join(tables)}")


@app.command("table")
def table_view(
    owner: str = typer.Argument(..., help="Database owner"),
    db_name: str = typer.Argument(..., help="Database name"),
    table: str = typer.Option("", "--table", "-t", help="Table name (default: first table)"),
    version: Optional[int] = typer.Option(None, "--version", help="Explicit version"),
) -> None:
    """Show the first rows of a table.

    The number of rows is your max-rows preference on the server (10 for
    anonymous requests).
    """
    try:
        with get_client(verbose=state.verbose) as client:
            result = client.get_json(
                _path("table", owner, db_name),
                params={"table": table, "version": version},
            )
    except (APIError, ValueError) as e:
        _fail(e)

    _show_record_set(result, owner, db_name)


@app.command("vis")
def vis_data(
    owner: str = typer.Argument(..., help="Database owner"),
    db_name: str = typer.Argument(..., help="Database name"),
    x: str = typer.Option("", "--x", help="X axis column (give with --y)"),
    y: str = typer.Option("", "--y", help="Y axis column (give with --x)"),
    table: str = typer.Option("", "--table", "-t", help="Table name (default: first table)"),
    where_col: str = typer.Option("", "--where-col", help="Filter column"),
    where_op: str = typer.Option("", "--where-op", help="Filter operator (=, !=, <, <=, >, >=, LIKE)"),
    where_val: str = typer.Option("", "--where-val", help="Filter value"),
    version: Optional[int] = typer.Option(None, "--version", help="Explicit version"),
) -> None:
    """Fetch visualisation data: an optional two-column projection and filter.

    Without --x/--y every column is returned.

    Example:
        dbhub db vis alice sales.sqlite --table orders --x id --y total \\
            --where-col id --where-op ">" --where-val 100
    """
    try:
        with get_client(verbose=state.verbose) as client:
            result = client.get_json(
                _path("visdata", owner, db_name),
                params={
                    "table": table,
                    "xcol": x,
                    "ycol": y,
                    "wherecol": where_col,
                    "wheretype": where_op,
                    "whereval": where_val,
                    "version": version,
                },
            )
    except (APIError, ValueError) as e:
        _fail(e)

    _show_record_set(result, owner, db_name)


@app.command("export-csv")
def export_csv(
    owner: str = typer.Argument(..., help="Database owner"),
    db_name: str = typer.Argument(..., help="Database name"),
    table: str = typer.Option(..., "--table", "-t", help="Table to export"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: <table>.csv)"),
    version: Optional[int] = typer.Option(None, "--version", help="Explicit version"),
) -> None:
    """Export every row of a table to a CSV file (no header row)."""
    output = output or Path(f"{table}.csv")
    if output.exists() and output.is_dir():
        print_error(f"Output path is a directory: {output}")
        raise typer.Exit(1)

    try:
        with get_client(verbose=state.verbose) as client:
            body = client.get_bytes(
                _path("downloadcsv", owner, db_name),
                params={"table": table, "version": version},
            )
    except (APIError, ValueError) as e:
        _fail(e)

    output.write_bytes(body)

    if state.json_output:
        print_json({"table": table, "output_file": str(output), "size_bytes": len(body)})
        return

    print_success(f"Exported {table} to {output} ({format_bytes(len(body))})")


@app.command("download")
def download_database(
    owner: str = typer.Argument(..., help="Database owner"),
    db_name: str = typer.Argument(..., help="Database name"),
    version: Optional[int] = typer.Option(None, "--version", help="Explicit version"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: database name)"),
) -> None:
    """Download the SQLite database file."""
    output = output or Path(db_name)
    if output.exists() and output.is_dir():
        print_error(f"Output path is a directory: {output}")
        raise typer.Exit(1)

    try:
        with get_client(verbose=state.verbose) as client:
            size = client.download_file(
                _path("download", owner, db_name),
                output,
                params={"version": version},
                show_progress=not state.json_output,
            )
    except (APIError, ValueError) as e:
        _fail(e)

    if state.json_output:
        print_json({"path": str(output), "size_bytes": size})
        return

    print_success(
        f"Database downloaded successfully to: {output}\n"
        f"Size: {format_bytes(size)}"
    )
