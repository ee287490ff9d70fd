"""Root Typer application with subcommand registration."""

from __future__ import annotations

from typing import Optional

import typer

from offsetscope import OffsetScopeContext, __version__

app = typer.Typer(
    name="offsetscope",
    help="OffsetScope — resolve function offsets in stripped ARM64 images",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Shared state across commands
_ctx = OffsetScopeContext()


def get_context() -> OffsetScopeContext:
    return _ctx


def parse_address(value: Optional[str]) -> Optional[int]:
    """Typer callback turning ``0x…`` / decimal text into an int."""
    if value is None:
        return None
    from offsetscope.memory.address import Address

    try:
        return int(Address.parse(value))
    except ValueError:
        raise typer.BadParameter(f"not an address: {value!r}") from None


def parse_location(value: str) -> int | str:
    """Typer callback: an address as an int, anything else kept as a symbol name."""
    from offsetscope.memory.address import Address

    try:
        return int(Address.parse(value))
    except ValueError:
        return value


def resolve_location(symbols, location: int | str) -> int:
    """Turn a :func:`parse_location` value into an address, exiting on unknown names."""
    if isinstance(location, int):
        return location
    from offsetscope.errors import SymbolResolutionFailedError
    from offsetscope.utils.formatters import print_error

    try:
        return int(symbols.require(location))
    except SymbolResolutionFailedError as exc:
        print_error(str(exc))
        raise typer.Exit(1) from exc


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"offsetscope {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Optional[str] = typer.Option(None, "--config", "-C", help="Path to offsetscope.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines"),
    version: Optional[bool] = typer.Option(
        None, "--version", "-V", callback=_version_callback, is_eager=True
    ),
) -> None:
    """OffsetScope — resolve function offsets in stripped ARM64 images."""
    from pydantic import ValidationError

    from offsetscope.config.loader import load_config
    from offsetscope.errors import ConfigError
    from offsetscope.utils.formatters import print_error
    from offsetscope.utils.logging import setup_logging

    setup_logging(level="DEBUG" if verbose else "WARNING", json_output=json_logs)
    _ctx.config_path = config
    try:
        _ctx.config = load_config(config)
    except (ConfigError, ValidationError) as exc:
        print_error(str(exc))
        raise typer.Exit(1) from exc


# -- Subcommand registration --
from offsetscope.cli.scan import scan_cmd  # noqa: E402
from offsetscope.cli.pattern_cmd import pattern_cmd  # noqa: E402
from offsetscope.cli.xrefs import xrefs_cmd  # noqa: E402
from offsetscope.cli.show import show_cmd  # noqa: E402
from offsetscope.cli.targets import targets_cmd  # noqa: E402

app.command(name="scan")(scan_cmd)
app.command(name="pattern")(pattern_cmd)
app.command(name="xrefs")(xrefs_cmd)
app.command(name="show")(show_cmd)
app.command(name="targets")(targets_cmd)
