from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

NULL_MARKUP = "[dim]NULL[/dim]"


def _format_value(value: Any) -> str:
    if value is None:
        return NULL_MARKUP
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"\\x{bytes(value).hex()}"
    return str(value)


def build_rows_table(
    rows: List[Dict[str, Any]],
    columns: Optional[Sequence[str]] = None,
    title: Optional[str] = None,
    caption: Optional[str] = None,
) -> Table:
    """
    Build a rich table for query rows.

    Columns come from `columns` when given (e.g. a stream's field
    descriptors), otherwise from the keys of the first row.
    """
    if columns is None:
        columns = list(rows[0].keys()) if rows else []

    table = Table(title=title, box=box.ROUNDED, caption=caption)
    for name in columns:
        table.add_column(name, style="cyan", overflow="fold")

    for row in rows:
        table.add_row(*(_format_value(row.get(name)) for name in columns))
    return table


def print_rows(
    rows: List[Dict[str, Any]],
    columns: Optional[Sequence[str]] = None,
    title: Optional[str] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Render query rows as a rich table.
    """
    console = console or Console()

    if not rows and not columns:
        console.print("[yellow]No rows returned.[/yellow]")
        return

    caption = f"{len(rows):,} row{'s' if len(rows) != 1 else ''}"
    console.print(build_rows_table(rows, columns=columns, title=title, caption=caption))


__all__ = ["build_rows_table", "print_rows"]
