"""offsetscope xrefs — references to and from an address."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from offsetscope.cli.app import parse_address, parse_location


def xrefs_cmd(
    binary: Path = typer.Argument(..., help="Path to the ELF or raw image"),
    address: str = typer.Argument(
        ..., callback=parse_location, help="Address or symbol name to inspect"
    ),
    base: Optional[str] = typer.Option(
        None, "--base", "-b", callback=parse_address, help="Load address for raw images"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the edges as JSON"),
) -> None:
    """List cross-references touching ADDRESS."""
    from offsetscope.arm64.boundary import FunctionBoundaryLocator
    from offsetscope.cli.app import get_context, resolve_location
    from offsetscope.errors import ImageLoadError, XRefAnalysisFailedError
    from offsetscope.memory.address import Address
    from offsetscope.utils.formatters import console, print_error, print_json, print_table
    from offsetscope.xref.builder import build_xref_index

    ctx = get_context()
    cfg = ctx.ensure_config()

    try:
        image = ctx.ensure_image(binary, base)
    except ImageLoadError as exc:
        print_error(str(exc))
        raise typer.Exit(1) from exc

    address = resolve_location(image.symbols, address)

    try:
        index = build_xref_index(image.memory, symbols=image.symbols)
    except XRefAnalysisFailedError as exc:
        print_error(str(exc))
        raise typer.Exit(1) from exc

    target = Address(address)
    locate = FunctionBoundaryLocator(image.memory, max_steps=cfg.scanning.max_backtrack_steps)
    if as_json:
        print_json(
            {
                "address": str(target),
                "to": [e.to_dict() for e in index.get_references_to(target)],
                "from": [e.to_dict() for e in index.get_references_from(target)],
            }
        )
        return

    console.print(
        f"[bold]Index:[/bold] {index.node_count} node(s), {index.edge_count} edge(s) "
        f"{index.count_by_kind()}"
    )

    def describe(addr: Address) -> str:
        node = index.get_node(addr)
        if node is not None and node.name:
            return node.name
        return image.symbols.name_at(addr) or ""

    incoming = [
        {"From": str(e.from_addr), "Function": str(locate(e.from_addr)), "Kind": e.kind.value,
         "Name": describe(locate(e.from_addr))}
        for e in index.get_references_to(target)
    ]
    print_table(incoming, title=f"References to {target}")

    outgoing = [
        {"To": str(e.to_addr), "Kind": e.kind.value, "Name": describe(e.to_addr)}
        for e in index.get_references_from(target)
    ]
    print_table(outgoing, title=f"References from {target}")
