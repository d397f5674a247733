"""Main CLI entry point for the DBHub CLI."""

from typing import Optional

import typer

from . import __version__


app = typer.Typer(
    name="dbhub",
    help="CLI tool for the DBHub Content API",
    no_args_is_help=True,
)

# Global state
class GlobalState:
    json_output: bool = False
    verbose: bool = False

state = GlobalState()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        print(f"dbhub version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    json_output: bool = typer.Option(
        False, "--json", "-j",
        help="Output as JSON instead of tables"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug information"
    ),
    version: Optional[bool] = typer.Option(
        None, "--version", "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    ),
) -> None:
    """DBHub CLI - read tables and download databases from a DBHub server."""
    state.json_output = json_output
    state.verbose = verbose


# Import and register command groups
from .commands import config_cmd, databases

app.add_typer(config_cmd.app, name="config")
app.add_typer(databases.app, name="db")


if __name__ == "__main__":
    app()
