"""offsetscope scan — resolve the target catalog in one image."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from offsetscope.cli.app import parse_address


def scan_cmd(
    binary: Path = typer.Argument(..., help="Path to the ELF or raw image"),
    base: Optional[str] = typer.Option(
        None, "--base", "-b", callback=parse_address, help="Load address for raw images"
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write offsets JSON to file"),
    threshold: Optional[float] = typer.Option(
        None, "--threshold", "-t", min=0.0, max=1.0, help="Minimum confidence to report"
    ),
    no_symbols: bool = typer.Option(False, "--no-symbols", help="Skip symbol lookup"),
    no_xrefs: bool = typer.Option(False, "--no-xrefs", help="Skip cross-reference analysis"),
    no_heuristics: bool = typer.Option(False, "--no-heuristics", help="Skip heuristic scanning"),
    target: Optional[list[str]] = typer.Option(
        None, "--target", "-T", help="Resolve only this target (repeatable)"
    ),
    threads: Optional[int] = typer.Option(None, "--threads", "-j", min=1, help="Worker threads"),
) -> None:
    """Resolve every catalog target and print the offsets found."""
    from offsetscope.cli.app import get_context
    from offsetscope.errors import ImageLoadError, PatternScanFailedError
    from offsetscope.finders.catalog import select_targets
    from offsetscope.orchestrator.discovery import DiscoveryOrchestrator
    from offsetscope.utils.formatters import (
        console,
        print_error,
        print_results,
        print_success,
        print_warning,
    )
    from offsetscope.utils.logging import image_context
    from offsetscope.utils.progress import progress_context

    ctx = get_context()
    cfg = ctx.ensure_config()

    updates: dict[str, object] = {}
    if no_symbols:
        updates["enable_symbols"] = False
    if no_xrefs:
        updates["enable_xrefs"] = False
    if no_heuristics:
        updates["enable_heuristics"] = False
    if threads is not None:
        updates["threads"] = threads
    scanning = cfg.scanning.model_copy(update=updates)
    report_threshold = scanning.confidence_threshold if threshold is None else threshold

    try:
        image = ctx.ensure_image(binary, base)
    except ImageLoadError as exc:
        print_error(str(exc))
        raise typer.Exit(1) from exc

    try:
        targets = select_targets(cfg.target_specs(), target or None)
    except KeyError as exc:
        print_error(f"Unknown target: {exc.args[0]}")
        raise typer.Exit(1) from exc

    base_address = int(image.memory.get_base_address())
    console.print(
        f"[bold]Scanning:[/bold] {binary} | arch={image.architecture} | "
        f"base={base_address:#x} | symbols={len(image.symbols)} | targets={len(targets)}"
    )

    orchestrator = DiscoveryOrchestrator.from_image(image, scanning)
    try:
        with image_context(image.name, image.sha256), progress_context(
            "Resolving targets", total=len(targets)
        ) as advance:
            report = orchestrator.resolve_targets(targets, progress=advance)
    except PatternScanFailedError as exc:
        print_error(f"Image is unreadable: {exc}")
        raise typer.Exit(1) from exc

    reportable = report.reportable(report_threshold)
    print_results(reportable, title=f"Offsets (confidence >= {report_threshold:.2f})", base_address=base_address)

    below = len(report.results) - len(reportable)
    if below:
        print_warning(f"{below} result(s) below the confidence threshold were not reported")
    if report.dropped:
        print_warning(f"Dropped by cross-validation: {', '.join(r.name for r in report.dropped)}")
    if report.not_found:
        print_warning(f"Not found: {', '.join(report.not_found)}")

    if output is not None:
        payload = report.to_dict(report_threshold, include_metadata=cfg.output.include_metadata)
        if cfg.output.include_metadata:
            payload["image"] = {
                "name": image.name,
                "sha256": image.sha256,
                "architecture": image.architecture,
                "base": f"{base_address:#x}",
            }
        output.write_text(json.dumps(payload, indent=2 if cfg.output.pretty else None) + "\n")
        print_success(f"Wrote {len(reportable)} offset(s) to {output}")
