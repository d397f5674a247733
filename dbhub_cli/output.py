"""Output formatting for CLI."""

from typing import Any
import json

from rich.console import Console
from rich.table import Table
from rich.text import Text
from rich import box


console = Console()
error_console = Console(stderr=True)

# Cell type tags as served by the API
_TYPE_STYLES = {
    "integer": "cyan",
    "float": "cyan",
    "binary": "magenta",
    "null": "dim",
}


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    print(json.dumps(data, indent=2, default=str))


def print_record_set(record_set: dict[str, Any], title: str | None = None) -> None:
    """Print an API record set as a table, styling cells by type."""
    records = record_set.get("records") or []
    if not records:
        console.print("[dim]No data[/dim]")
        return

    table = Table(title=title, box=box.ROUNDED)
    for name in record_set.get("col_names") or [cell["name"] for cell in records[0]]:
        table.add_column(Text(str(name)))

    for row in records:
        cells = []
        for cell in row:
            style = _TYPE_STYLES.get(cell.get("type", ""))
            value = str(cell.get("value", ""))
            cells.append(Text(value, style=style or ""))
        table.add_row(*cells)

    console.print(table)


def print_dict(
    data: dict[str, Any],
    title: str | None = None,
) -> None:
    """Print a single dict as a key-value table."""
    table = Table(title=title, box=box.ROUNDED, show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    for key, value in data.items():
        if value is None:
            value_str = ""
        elif isinstance(value, bool):
            value_str = "Yes" if value else "No"
        elif isinstance(value, (list, dict)):
            value_str = json.dumps(value)
        else:
            value_str = str(value)
        table.add_row(key, value_str)

    console.print(table)


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]{message}[/green]")


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]Error: {message}[/red]")


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(size) < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} PB"
