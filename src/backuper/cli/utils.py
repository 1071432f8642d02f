"""
CLI utility helpers - consoles, error output and table formatting.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from backuper.core.errors import BackuperError

console = Console()
err_console = Console(stderr=True)


# ── Error output ─────────────────────────────────────────────────────────


def fail(error: BackuperError | str, code: int = 1) -> typer.Exit:
    """Print an error to stderr and return the ``Exit`` to raise."""
    if isinstance(error, BackuperError):
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    return typer.Exit(code=code)


# ── Output helpers ───────────────────────────────────────────────────────


def print_table(columns: Sequence[str], rows: Iterable[Sequence[Any]], *, title: str = "") -> None:
    """Render rows as a Rich table."""
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for column in columns:
        table.add_column(column, overflow="fold")
    for row in rows:
        table.add_row(*(escape(str(value)) for value in row))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for key, value in data.items():
        console.print(f"  [cyan]{key}[/cyan]: {escape(str(value))}")


__all__ = ["console", "err_console", "fail", "print_dict", "print_table"]
