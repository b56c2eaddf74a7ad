"""End-of-run summary of shrunk and skipped files."""

from __future__ import annotations

from io import StringIO
from typing import Callable

from rich.console import Console
from rich.table import Table
from rich.text import Text

from vidshrink.ledger import Ledger, RunSummary

_UNITS = ("B", "KB", "MB", "GB")


def format_size(size_bytes: int) -> str:
    """Scale a byte count to B/KB/MB/GB, e.g. 1536 -> "1.50KB"."""
    size = float(size_bytes)
    unit = _UNITS[0]
    for next_unit in _UNITS[1:]:
        if size <= 1024:
            break
        size /= 1024
        unit = next_unit
    return f"{size:.2f}{unit}"


def format_report(summary: RunSummary) -> str:
    """Render the run summary as plain text tables."""
    console = Console(file=StringIO(), force_terminal=False, width=120)

    if summary.added:
        table = Table(title="Compressed", show_header=True, header_style="bold")
        table.add_column("File", style="cyan", overflow="fold")
        table.add_column("Before", justify="right")
        table.add_column("After", justify="right")
        for path, record in summary.added.items():
            table.add_row(Text(path), format_size(record.size_before), format_size(record.size_after))
        console.print(table)

    if summary.skipped:
        table = Table(title="Skipped", show_header=True, header_style="bold")
        table.add_column("File", style="cyan", overflow="fold")
        table.add_column("Reason", overflow="fold")
        for entry in summary.skipped:
            table.add_row(Text(entry.path), Text(str(entry.failure)))
        console.print(table)

    before, after = summary.totals()
    if summary.added:
        console.print(f"Total compression: {format_size(before)} -> {format_size(after)}")
    elif not summary.skipped:
        console.print("Nothing to do.")

    output = console.file
    assert isinstance(output, StringIO)
    return output.getvalue()


def drain_and_report(ledger: Ledger, echo: Callable[[str], object] = print) -> RunSummary:
    """Print everything the ledger collected this run and clear it."""
    summary = ledger.drain()
    echo(format_report(summary).rstrip("\n"))
    return summary
