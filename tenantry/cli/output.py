"""Rich console helpers shared by the tenantry commands."""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from rich.console import Console
from rich.json import JSON
from rich.table import Table

console = Console()
err_console = Console(stderr=True)


def print_mapping(title: str, values: Mapping[str, Any]) -> None:
    """Render ``values`` as a two-column setting/value table."""
    table = Table(title=title)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in values.items():
        table.add_row(key, _display(value))
    console.print(table)


def _display(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value) or "-"
    if value in ("", None):
        return "-"
    return str(value)


def print_json(data: Any) -> None:
    console.print(JSON(json.dumps(data, default=str)))


def print_error(message: str, hint: Optional[str] = None) -> None:
    """Report a failed command on stderr, with an optional remedy."""
    err_console.print(f"[bold red]Error:[/bold red] {message}")
    if hint:
        err_console.print(f"[yellow]Hint:[/yellow] {hint}")


def print_success(message: str) -> None:
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")
