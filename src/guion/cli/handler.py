"""Shared error handling, JSON output and progress display for CLI commands."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
)

from guion.config import get_logger
from guion.exceptions import CancellationError, GuionError
from guion.progress import OperationProgress, ProgressUpdate

logger = get_logger(__name__)

T = TypeVar("T")

EXIT_INTERRUPTED = 130
# Seconds between checks for Ctrl-C while an operation runs
WAIT_INTERVAL = 0.1


class CLIHandler:
    """Unified handler for CLI commands."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def handle_error(
        self, error: Exception, json_output: bool = False, exit_code: int = 1
    ) -> None:
        """Report an error and exit.

        Guion errors print their formatted message with hint and details.
        Cancellation exits with the conventional interrupt status.
        """
        if isinstance(error, CancellationError):
            exit_code = EXIT_INTERRUPTED
        message = error.format_error() if isinstance(error, GuionError) else str(error)
        logger.debug("Command failed", error=str(error), error_type=type(error).__name__)

        if json_output:
            payload: dict[str, Any] = {
                "success": False,
                "error": error.message if isinstance(error, GuionError) else str(error),
                "error_type": type(error).__name__,
                "exit_code": exit_code,
            }
            if isinstance(error, GuionError):
                payload["hint"] = error.hint
                payload["details"] = error.details
            self.print_json(payload)
        else:
            self.console.print(f"[red]{message}[/red]", highlight=False)

        raise typer.Exit(exit_code)

    @staticmethod
    def print_json(data: Any) -> None:
        # Plain print keeps ANSI codes out of machine-readable output
        print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


class RichProgressHandler:
    """Render ProgressUpdate snapshots on a rich progress task."""

    def __init__(self, progress: Progress, task_id: TaskID) -> None:
        self.progress = progress
        self.task_id = task_id

    def __call__(self, update: ProgressUpdate) -> None:
        self.progress.update(
            self.task_id,
            total=update.total_units,
            completed=update.completed_units,
            description=update.description or "Working",
        )


@contextmanager
def progress_display(
    console: Console, enabled: bool, update_interval: float
) -> Iterator[OperationProgress]:
    """Yield an OperationProgress, drawn as a rich bar when enabled."""
    if not enabled:
        yield OperationProgress(update_interval=update_interval)
        return
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as bar:
        task_id = bar.add_task("Starting", total=None)
        yield OperationProgress(
            update_interval=update_interval,
            handler=RichProgressHandler(bar, task_id),
        )


def run_cancellable(operation: Callable[[], T], progress: OperationProgress) -> T:
    """Run ``operation`` on a worker thread, turning Ctrl-C into cancellation.

    The operation keeps running until it reaches its next cancellation
    check, which lets every stage clean up partial output before the
    CancellationError surfaces here.
    """
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="guion-cli") as executor:
        future = executor.submit(operation)
        while True:
            try:
                return future.result(timeout=WAIT_INTERVAL)
            except TimeoutError:
                continue
            except KeyboardInterrupt:
                logger.info("Interrupted, cancelling operation")
                progress.cancel("Cancelling")
