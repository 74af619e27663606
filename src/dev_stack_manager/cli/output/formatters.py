"""Output formatters for table, JSON and YAML rendering."""

from __future__ import annotations

import json
from collections.abc import Sequence
from enum import StrEnum
from typing import Any

import yaml
from rich.console import Console

from dev_stack_manager.cli.output.table import Table


class OutputFormat(StrEnum):
    """Supported output formats for CLI commands."""

    TABLE = "table"
    JSON = "json"
    YAML = "yaml"


def _cell(value: Any) -> str:
    if value is None or value == "":
        return "-"
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value)


def render_records(
    console: Console,
    records: Sequence[dict[str, Any]],
    columns: list[tuple[str, str]],
    output: OutputFormat = OutputFormat.TABLE,
    title: str = "",
) -> None:
    """Print a list of flat records.

    Args:
        console: Rich console for output.
        records: Rows as dictionaries.
        columns: ``(key, header)`` pairs selecting what a table shows.
            JSON and YAML always include every key.
        output: Output format.
        title: Table title.
    """
    if output == OutputFormat.JSON:
        console.print_json(json.dumps(list(records), default=str))
        return
    if output == OutputFormat.YAML:
        console.print(yaml.safe_dump(list(records), sort_keys=False), end="")
        return

    table = Table(title=title or None, show_header=True)
    for key, header in columns:
        table.add_column(header, style="cyan" if key == "name" else None)
    for record in records:
        table.add_row(*(_cell(record.get(key)) for key, _ in columns))
    console.print(table)


def render_document(
    console: Console, data: dict[str, Any], output: OutputFormat = OutputFormat.TABLE
) -> None:
    """Print a nested document as JSON or YAML; tables fall back to key/value rows."""
    if output == OutputFormat.JSON:
        console.print_json(json.dumps(data, default=str))
        return
    if output == OutputFormat.YAML:
        console.print(yaml.safe_dump(data, sort_keys=False), end="")
        return

    table = Table(show_header=True)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    for key, value in data.items():
        table.add_row(key, _cell(value))
    console.print(table)
