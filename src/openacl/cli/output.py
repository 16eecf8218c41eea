"""Structured output formatting for CLI commands."""

from __future__ import annotations

import csv
import io
import json
from itertools import groupby
from typing import Any

import click

# Widest a table cell may get before it is truncated
MAX_COLUMN_WIDTH = 60


class OutputFormatter:
    """Format command output as table, JSON, or CSV.

    Usage::

        fmt = OutputFormatter(output_format, quiet)
        fmt.print_table(rows, columns=["folder", "account", "rights"])
        fmt.print_message("3 issues")
    """

    def __init__(self, output_format: str = "table", quiet: bool = False) -> None:
        self.format = output_format
        self.quiet = quiet

    def print_table(
        self,
        data: list[dict[str, Any]],
        columns: list[str] | None = None,
        group_by: str | None = None,
    ) -> None:
        """Print *data* as a formatted table, JSON array, or CSV.

        With *group_by*, the table format prints one block per distinct
        value of that column (rows must already be sorted by it). JSON and
        CSV output stay flat.
        """
        if columns is None:
            columns = list(data[0].keys()) if data else []

        if self.format == "json":
            click.echo(json.dumps([{c: row.get(c) for c in columns} for row in data], indent=2, default=str))
            return

        if self.format == "csv":
            buf = io.StringIO()
            writer = csv.DictWriter(buf, fieldnames=columns, extrasaction="ignore")
            writer.writeheader()
            writer.writerows(data)
            click.echo(buf.getvalue().rstrip())
            return

        if not columns:
            return

        if group_by is None:
            self._echo_table(data, columns)
            return

        shown = [c for c in columns if c != group_by]
        for value, rows in groupby(data, key=lambda row: row.get(group_by)):
            click.echo(click.style(str(value), bold=True))
            self._echo_table(list(rows), shown, indent="  ")
            click.echo()

    def _echo_table(self, data: list[dict[str, Any]], columns: list[str], indent: str = "") -> None:
        headers = {c: c.replace("_", " ").title() for c in columns}
        widths: dict[str, int] = {c: len(headers[c]) for c in columns}
        for row in data:
            for c in columns:
                widths[c] = max(widths[c], len(_cell(row.get(c))))
        widths = {c: min(w, MAX_COLUMN_WIDTH) for c, w in widths.items()}

        header = "  ".join(headers[c].ljust(widths[c]) for c in columns)
        click.echo(indent + header)
        click.echo(indent + "-" * len(header))

        for row in data:
            parts: list[str] = []
            for c in columns:
                val = _cell(row.get(c))
                if len(val) > widths[c]:
                    val = val[: widths[c] - 3] + "..."
                parts.append(val.ljust(widths[c]))
            click.echo(indent + "  ".join(parts).rstrip())

    def print_single(self, data: dict[str, Any]) -> None:
        """Print a single key-value record."""
        if self.format == "json":
            click.echo(json.dumps(data, indent=2, default=str))
        else:
            for key, value in data.items():
                click.echo(f"  {key}: {value}")

    def print_error(self, message: str) -> None:
        """Print an error message to stderr."""
        click.echo(f"Error: {message}", err=True)

    def print_message(self, message: str) -> None:
        """Print an informational message to stderr (suppressed in quiet mode)."""
        if not self.quiet:
            click.echo(message, err=True)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "yes" if value else ""
    return str(value)
