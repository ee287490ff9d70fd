"""offsetscope show — locate a function start and disassemble it."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from offsetscope.cli.app import parse_address, parse_location


def show_cmd(
    binary: Path = typer.Argument(..., help="Path to the ELF or raw image"),
    address: str = typer.Argument(
        ..., callback=parse_location, help="Address inside a function, or a symbol name"
    ),
    base: Optional[str] = typer.Option(
        None, "--base", "-b", callback=parse_address, help="Load address for raw images"
    ),
    count: int = typer.Option(16, "--count", "-n", min=1, help="Instructions to list"),
    no_locate: bool = typer.Option(False, "--no-locate", help="Disassemble from ADDRESS as given"),
) -> None:
    """Print the enclosing function's entry and a short listing."""
    from rich.table import Table

    from offsetscope.arm64.boundary import find_function_start
    from offsetscope.arm64.listing import disassemble
    from offsetscope.cli.app import get_context, resolve_location
    from offsetscope.errors import ImageLoadError
    from offsetscope.utils.formatters import console, print_error

    ctx = get_context()
    cfg = ctx.ensure_config()

    try:
        image = ctx.ensure_image(binary, base)
    except ImageLoadError as exc:
        print_error(str(exc))
        raise typer.Exit(1) from exc

    address = resolve_location(image.symbols, address)
    memory = image.memory
    if not memory.contains(address):
        print_error(f"{address:#x} is not mapped")
        raise typer.Exit(1)

    start = address if no_locate else find_function_start(
        memory, address, max_steps=cfg.scanning.max_backtrack_steps
    )
    name = image.symbols.name_at(start)
    console.print(
        f"[bold]Function:[/bold] {start:#x}"
        + (f" ({name})" if name else "")
        + (f"  [dim]+{address - start:#x} to {address:#x}[/dim]" if address != start else "")
    )

    table = Table(show_header=True)
    table.add_column("Address", style="cyan")
    table.add_column("Bytes", style="dim")
    table.add_column("Instruction")
    table.add_column("Features", style="magenta")
    for line in disassemble(memory, start, count=count):
        marker = "[bold yellow]>[/bold yellow] " if int(line.address) == address else ""
        table.add_row(
            f"{marker}{line.address}",
            line.raw.hex(" "),
            f"{line.mnemonic} {line.op_str}".rstrip(),
            ", ".join(sorted(line.features)),
        )
    console.print(table)
