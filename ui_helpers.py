import os
import json
from typing import Any, Dict, List, Sequence, Tuple
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

# (column header, key in the row dict)
Columns = Sequence[Tuple[str, str]]


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


def print_rows(rows: List[Dict[str, Any]], columns: Columns, title: str, empty_message: str) -> None:
    """Print a list of records in the current output mode.
    - plain: one ' | '-separated line per row, or ``empty_message``
    - json: the rows restricted to ``columns`` as a JSON array
    - rich: Rich table
    """
    mode = get_output_mode()

    if not rows:
        # Same message in every mode so scripts can rely on it.
        print(empty_message)
        return

    if mode == "json":
        payload = [{key: row.get(key) for _, key in columns} for row in rows]
        print(json.dumps(payload, ensure_ascii=False, default=str))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for header, _ in columns:
            table.add_column(header)
        for row in rows:
            table.add_row(*(_cell(row.get(key)) for _, key in columns))
        _console.print(table)
    else:
        for row in rows:
            print(" | ".join(_cell(row.get(key)) for _, key in columns))


def print_metrics(metrics: Dict[str, Any], labels: Columns, title: str) -> None:
    """Print a flat mapping of figures (dashboard numbers, statistics)."""
    mode = get_output_mode()

    if not metrics:
        print("No statistics available.")
        return

    if mode == "json":
        print(json.dumps({key: metrics.get(key) for _, key in labels}, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {_cell(metrics.get(key))}" for label, key in labels)
        _console.print(Panel.fit(content, title=title, border_style="blue"))
    else:
        for label, key in labels:
            print(f"{label}: {_cell(metrics.get(key))}")
