"""OffsetScope Quickstart — resolve the built-in catalog in one image."""

import sys
from pathlib import Path

from offsetscope import OffsetScopeContext
from offsetscope.arm64.listing import disassemble
from offsetscope.config.loader import load_config
from offsetscope.finders.catalog import select_targets
from offsetscope.utils.logging import setup_logging


def main():
    setup_logging(level="INFO")

    # 1. Load configuration
    ctx = OffsetScopeContext()
    ctx.config = load_config()

    # 2. Load an image (ELF, or raw with a base address)
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("libroblox.so")
    base = int(sys.argv[2], 0) if len(sys.argv) > 2 else None
    image = ctx.ensure_image(path, base)
    print(f"Loaded {image.name}: {image.architecture}, {len(image.symbols)} symbols")

    # 3. Resolve a few Lua API entry points
    targets = select_targets(ctx.config.target_specs(), ["lua_gettop", "lua_pcall", "LuauLoad"])
    report = ctx.orchestrator(image).resolve_targets(targets)
    for result in report.results:
        print(f"  {result.name:<12} {result.address}  {result.method.value} ({result.confidence:.2f})")
    if report.not_found:
        print(f"  not found: {', '.join(report.not_found)}")

    # 4. Disassemble the first hit
    if report.results:
        for line in disassemble(image.memory, report.results[0].address, count=8):
            print(f"    {line}")

    ctx.close()


if __name__ == "__main__":
    main()
