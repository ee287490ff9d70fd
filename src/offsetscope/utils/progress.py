"""Rich progress bar utilities."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Generator

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from offsetscope.utils.formatters import err_console


def create_progress(transient: bool = True) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=err_console,
        transient=transient,
    )


@contextmanager
def progress_context(description: str, total: int) -> Generator[Callable[..., None], None, None]:
    """Yield a thread-safe ``advance(*_)`` callback for a single tracked task.

    The callback ignores its arguments so it can be passed straight to
    :meth:`DiscoveryOrchestrator.resolve_targets` as a progress hook.
    """
    progress = create_progress()
    with progress:
        task_id = progress.add_task(description, total=total)

        def advance(*_: object) -> None:
            progress.advance(task_id)

        yield advance
