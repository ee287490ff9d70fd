"""offsetscope targets — list the resolution catalog."""

from __future__ import annotations

from typing import Optional

import typer


def targets_cmd(
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Only targets in this category"),
    details: bool = typer.Option(False, "--details", "-d", help="Show patterns and xref strings"),
) -> None:
    """List built-in and configured targets."""
    from offsetscope.cli.app import get_context
    from offsetscope.utils.formatters import print_table

    cfg = get_context().ensure_config()
    specs = [t for t in cfg.target_specs() if category is None or t.category == category]

    rows = []
    for spec in specs:
        row = {
            "Name": spec.name,
            "Category": spec.category,
            "Patterns": len(spec.patterns),
            "XRef strings": len(spec.xref_strings),
            "Heuristic": "yes" if spec.heuristic is not None else "no",
            "Signature": spec.signature or "",
        }
        if details:
            row["Aliases"] = ", ".join(spec.aliases)
            row["Pattern text"] = "\n".join(spec.patterns)
            row["Strings"] = "\n".join(spec.xref_strings)
        rows.append(row)

    print_table(rows, title=f"{len(rows)} target(s)")
