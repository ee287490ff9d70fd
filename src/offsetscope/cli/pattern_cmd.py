"""offsetscope pattern — scan executable regions for a byte pattern."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from offsetscope.cli.app import parse_address


def pattern_cmd(
    binary: Path = typer.Argument(..., help="Path to the ELF or raw image"),
    pattern: str = typer.Argument(..., help='Hex pattern, e.g. "F9 ?? ?? ?? 39 ?? ?? ?? 94"'),
    base: Optional[str] = typer.Option(
        None, "--base", "-b", callback=parse_address, help="Load address for raw images"
    ),
    all_matches: bool = typer.Option(False, "--all", "-a", help="Report every match, not just the first"),
    limit: int = typer.Option(100, "--limit", "-n", min=1, help="Maximum matches with --all"),
) -> None:
    """Find a wildcard byte pattern and the function enclosing each match."""
    from offsetscope.arm64.boundary import FunctionBoundaryLocator
    from offsetscope.cli.app import get_context
    from offsetscope.errors import ImageLoadError, InvalidPatternError, PatternScanFailedError
    from offsetscope.pattern.matcher import PatternMatcher
    from offsetscope.pattern.pattern import Pattern
    from offsetscope.utils.formatters import print_error, print_success, print_table

    ctx = get_context()
    cfg = ctx.ensure_config()

    try:
        compiled = Pattern.from_hex(pattern)
    except InvalidPatternError as exc:
        print_error(str(exc))
        raise typer.Exit(2) from exc

    try:
        image = ctx.ensure_image(binary, base)
    except ImageLoadError as exc:
        print_error(str(exc))
        raise typer.Exit(1) from exc

    memory = image.memory
    matcher = PatternMatcher(memory, chunk_size=cfg.scanning.chunk_size)
    locate = FunctionBoundaryLocator(memory, max_steps=cfg.scanning.max_backtrack_steps)
    try:
        hits = matcher.find_in_regions(
            compiled, memory.executable_regions(), first_only=not all_matches, limit=limit
        )
    except PatternScanFailedError as exc:
        print_error(str(exc))
        raise typer.Exit(1) from exc

    if not hits:
        print_error(f"No match for {compiled.to_hex()}")
        raise typer.Exit(1)

    rows = []
    for hit in hits:
        start = locate(hit)
        rows.append(
            {
                "Match": str(hit),
                "Function": str(start),
                "Symbol": image.symbols.name_at(start) or "",
                "Delta": f"+{hit - start:#x}",
            }
        )
    print_table(rows, title=f"Pattern {compiled.to_hex()}")
    print_success(f"{len(hits)} match(es)")
