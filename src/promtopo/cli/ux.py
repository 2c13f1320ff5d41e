"""
Terminal output for the promtopo commands.

Status lines and entity tables go to stdout through one rich console.
NO_COLOR and FORCE_COLOR are honoured. Messages are escaped, so exporter
errors containing brackets print verbatim.
"""

from __future__ import annotations

import os
from typing import Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

STATUS_THEME = Theme(
    {
        "status.ok": "green",
        "status.warn": "yellow",
        "status.fail": "bold red",
        "title": "bold cyan",
    }
)

console = Console(
    theme=STATUS_THEME,
    force_terminal=os.environ.get("FORCE_COLOR") is not None,
    no_color=os.environ.get("NO_COLOR") is not None,
)


def _status(style: str, marker: str, message: str) -> None:
    console.print(f"[{style}]{marker}[/{style}] {escape(message)}", highlight=False)


def success(message: str) -> None:
    _status("status.ok", "✓", message)


def warning(message: str) -> None:
    _status("status.warn", "!", message)


def error(message: str) -> None:
    _status("status.fail", "✗", message)


def header(title: str) -> None:
    console.print()
    console.rule(f"[title]{escape(title)}[/title]")


def print_table(title: str, columns: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
    """Print rows under the given column names."""
    table = Table(title=title, title_style="title", header_style="bold")
    for column in columns:
        table.add_column(column, overflow="fold")
    for row in rows:
        table.add_row(*(escape(cell) for cell in row))
    console.print(table)
