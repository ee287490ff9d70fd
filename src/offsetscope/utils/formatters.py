"""Rich output formatters for CLI display."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Sequence

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from offsetscope.finders.result import FinderResult

console = Console()
err_console = Console(stderr=True)


def confidence_style(confidence: float) -> str:
    if confidence >= 0.85:
        return "green"
    if confidence >= 0.65:
        return "yellow"
    return "red"


def print_table(
    rows: Sequence[dict[str, Any]],
    title: str | None = None,
    columns: Sequence[str] | None = None,
) -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No results.[/dim]")
        return

    cols = columns or list(rows[0].keys())
    table = Table(title=title)
    for col in cols:
        table.add_column(col, overflow="fold")

    for row in rows:
        table.add_row(*(str(row.get(c, "")) for c in cols))

    console.print(table)


def print_results(
    results: Sequence[FinderResult],
    title: str | None = None,
    base_address: int | None = None,
) -> None:
    """Resolved targets with colour-coded confidence, sorted by address."""
    if not results:
        console.print("[dim]No offsets resolved.[/dim]")
        return

    table = Table(title=title)
    table.add_column("Target", style="bold")
    table.add_column("Address", style="cyan")
    if base_address is not None:
        table.add_column("Offset", style="cyan")
    table.add_column("Confidence", justify="right")
    table.add_column("Method")
    table.add_column("Category", style="dim")

    for result in sorted(results, key=lambda r: int(r.address)):
        style = confidence_style(result.confidence)
        row = [result.name, str(result.address)]
        if base_address is not None:
            row.append(f"{int(result.address) - base_address:#x}")
        row += [f"[{style}]{result.confidence:.2f}[/{style}]", result.method.value, result.category]
        table.add_row(*row)

    console.print(table)


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str, indent=2))


def print_success(msg: str) -> None:
    console.print(f"[bold green]{msg}[/bold green]")


def print_error(msg: str) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {msg}")


def print_warning(msg: str) -> None:
    err_console.print(f"[bold yellow]Warning:[/bold yellow] {msg}")
