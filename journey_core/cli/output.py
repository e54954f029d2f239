"""Output formatting for the journey CLI."""

import json
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

console = Console()


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    json_str = json.dumps(data, indent=2, default=str)
    console.print(Syntax(json_str, "json", theme="monokai", line_numbers=False))


def print_yaml(data: Any) -> None:
    """Print data as formatted YAML."""
    yaml_str = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    console.print(Syntax(yaml_str, "yaml", theme="monokai", line_numbers=False))


def print_data(data: Any, format_type: str) -> None:
    if format_type == "json":
        print_json(data)
    else:
        print_yaml(data)


def _cell(value: Any, width: int = 50) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "✓" if value else "✗"
    if isinstance(value, (list, dict)):
        text = json.dumps(value, default=str)
    else:
        text = str(value)
    if len(text) > width:
        text = text[: width - 3] + "..."
    return text


def print_table(
    rows: List[Dict[str, Any]],
    columns: List[str],
    title: Optional[str] = None,
) -> None:
    """Print rows as a table with the given columns."""
    if not rows:
        console.print("[dim]No data to display[/dim]")
        return

    table = Table(title=title, show_header=True, header_style="bold cyan")
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*[_cell(row.get(column)) for column in columns])

    console.print(table)


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    console.print(f"[yellow]![/yellow] {message}")
