"""Thread-safe, throttled progress reporting with cooperative cancellation."""

from __future__ import annotations

import threading
import time

from guion.config import get_logger
from guion.exceptions import CancellationError, ProgressError
from guion.progress.update import ProgressHandler, ProgressUpdate

logger = get_logger(__name__)

DEFAULT_UPDATE_INTERVAL = 0.1


class OperationProgress:
    """Progress controller shared by every stage of an operation.

    All mutations happen under one re-entrant lock, so one instance can be
    driven by many worker threads at once. Handler calls are coalesced to at
    most one per ``update_interval``; forced updates, ``complete()``,
    ``cancel()`` and the first time a total becomes known always reach the
    handler. The handler runs while the lock is held, which keeps delivered
    updates in the order their state was recorded. A handler may call
    ``cancel()`` from inside its callback.

    Cancellation is cooperative: ``cancel()`` only raises a flag, and long
    running stages poll it through ``check_cancelled()`` at batch boundaries.

    With ``handler=None`` the instance only keeps counters.
    """

    def __init__(
        self,
        total_units: int | None = None,
        update_interval: float = DEFAULT_UPDATE_INTERVAL,
        handler: ProgressHandler | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            total_units: Total units of work, or None when not yet known.
            update_interval: Minimum seconds between two handler calls.
            handler: Callable receiving ProgressUpdate snapshots.

        Raises:
            ProgressError: If total_units or update_interval is negative.
        """
        if total_units is not None and total_units < 0:
            raise ProgressError(
                "Total unit count cannot be negative",
                details={"total_units": total_units},
            )
        if update_interval < 0:
            raise ProgressError(
                "Update interval cannot be negative",
                details={"update_interval": update_interval},
            )
        self._lock = threading.RLock()
        self._cancelled = threading.Event()
        self._total_units = total_units
        self._completed_units = 0
        self._update_interval = update_interval
        self._handler = handler
        self._last_update_time: float | None = None
        self._last_description = ""
        self.handler_error: BaseException | None = None

    @property
    def total_unit_count(self) -> int | None:
        with self._lock:
            return self._total_units

    @property
    def completed_unit_count(self) -> int:
        with self._lock:
            return self._completed_units

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def is_determinate(self) -> bool:
        with self._lock:
            return self._total_units is not None

    @property
    def update_interval(self) -> float:
        return self._update_interval

    @property
    def fraction_completed(self) -> float | None:
        """Completed share of the total, or None when indeterminate or empty."""
        with self._lock:
            return self._fraction()

    def update(
        self,
        completed_units: int,
        description: str = "",
        additional_info: str | None = None,
        force: bool = False,
    ) -> None:
        """Record an absolute unit count and notify the handler if due.

        Args:
            completed_units: Units completed so far.
            description: Description of the current step.
            additional_info: Optional detail line.
            force: Bypass throttling.

        Raises:
            ProgressError: If completed_units is negative.
        """
        if completed_units < 0:
            raise ProgressError(
                "Completed unit count cannot be negative",
                details={"completed_units": completed_units},
            )
        with self._lock:
            self._completed_units = completed_units
            self._last_description = description
            self._emit(description, additional_info, force)

    def increment(
        self,
        by: int = 1,
        description: str | None = None,
        additional_info: str | None = None,
        force: bool = False,
    ) -> None:
        """Add ``by`` units to the completed count and notify if due."""
        with self._lock:
            self._completed_units += by
            if description is not None:
                self._last_description = description
            self._emit(self._last_description, additional_info, force)

    def set_total_unit_count(self, total_units: int | None) -> None:
        """Change the total unit count.

        Moving from an unknown total to a known one flushes an update so
        observers can switch from an indeterminate to a determinate display.

        Raises:
            ProgressError: If total_units is negative.
        """
        if total_units is not None and total_units < 0:
            raise ProgressError(
                "Total unit count cannot be negative",
                details={"total_units": total_units},
            )
        with self._lock:
            became_determinate = self._total_units is None and total_units is not None
            self._total_units = total_units
            if became_determinate:
                self._emit(self._last_description, None, force=True)

    def complete(self, description: str | None = None) -> None:
        """Mark the operation finished and always notify the handler.

        A determinate operation jumps to its total. An indeterminate one keeps
        its completed count, since there is no total to jump to.
        """
        with self._lock:
            if self._total_units is not None:
                self._completed_units = self._total_units
            final_description = (
                description if description is not None else self._last_description
            )
            self._last_description = final_description
            self._emit(final_description, None, force=True)

    def cancel(self, description: str = "Cancelled") -> None:
        """Request cancellation. Running stages stop at their next check."""
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            logger.debug("Operation cancelled", completed=self._completed_units)
            self._emit(description, None, force=True)

    def check_cancelled(self, stage: str | None = None) -> None:
        """Raise CancellationError if cancellation was requested.

        Args:
            stage: Optional name of the stage doing the check, for the error
                details.

        Raises:
            CancellationError: If ``cancel()`` has been called.
        """
        if self._cancelled.is_set():
            details = {"stage": stage} if stage else None
            raise CancellationError(details=details)

    def _fraction(self) -> float | None:
        if not self._total_units:
            return None
        return min(max(self._completed_units / self._total_units, 0.0), 1.0)

    def _snapshot(self, description: str, additional_info: str | None) -> ProgressUpdate:
        if self._total_units is not None:
            return ProgressUpdate(
                completed_units=self._completed_units,
                total_units=self._total_units,
                fraction_completed=self._fraction(),
                description=description,
                additional_info=additional_info,
            )
        return ProgressUpdate.indeterminate(
            self._completed_units, description, additional_info
        )

    def _emit(self, description: str, additional_info: str | None, force: bool) -> None:
        # Caller holds self._lock
        handler = self._handler
        if handler is None:
            return

        now = time.monotonic()
        if not force and self._last_update_time is not None:
            if now - self._last_update_time < self._update_interval:
                return
        self._last_update_time = now

        try:
            handler(self._snapshot(description, additional_info))
        except Exception as e:
            # The tracked operation carries on without further reporting
            self._handler = None
            self.handler_error = e
            logger.warning(
                "Progress handler failed, further updates disabled",
                error=str(e),
                error_type=type(e).__name__,
            )

    def __repr__(self) -> str:
        return (
            f"OperationProgress(completed={self.completed_unit_count}, "
            f"total={self.total_unit_count}, cancelled={self.is_cancelled})"
        )


class LinkedProgress(OperationProgress):
    """Progress handle for one part of a larger operation.

    Cancellation is shared with the parent in both directions. When
    ``forward`` is given, every update of this handle is passed to it so the
    caller can fold the part's progress into the parent's own units.
    """

    def __init__(
        self,
        parent: OperationProgress,
        forward: ProgressHandler | None = None,
    ) -> None:
        super().__init__(update_interval=0.0, handler=forward)
        self.parent = parent

    @property
    def is_cancelled(self) -> bool:
        return self.parent.is_cancelled or super().is_cancelled

    def cancel(self, description: str = "Cancelled") -> None:
        self.parent.cancel(description)
        super().cancel(description)

    def check_cancelled(self, stage: str | None = None) -> None:
        self.parent.check_cancelled(stage)
        super().check_cancelled(stage)


def check_cancelled(progress: OperationProgress | None, stage: str | None = None) -> None:
    """Poll an optional progress handle for cancellation."""
    if progress is not None:
        progress.check_cancelled(stage)
