"""Immutable progress snapshots delivered to progress handlers."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """A point-in-time snapshot of an operation's progress.

    Instances are frozen so they can be handed across threads without
    copying.

    Attributes:
        fraction_completed: Completed share in [0, 1], or None when the total
            is unknown.
        completed_units: Units of work done so far.
        total_units: Total units of work, or None when indeterminate.
        description: Human readable description of the current step.
        additional_info: Optional detail line, e.g. the file being read.
        timestamp: Wall clock time (seconds since the epoch) of the snapshot.
    """

    completed_units: int
    description: str
    total_units: int | None = None
    fraction_completed: float | None = None
    additional_info: str | None = None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if self.fraction_completed is not None and not (
            0.0 <= self.fraction_completed <= 1.0
        ):
            raise ValueError(
                f"fraction_completed must be within [0, 1], got {self.fraction_completed}"
            )

    @classmethod
    def determinate(
        cls,
        completed_units: int,
        total_units: int,
        description: str,
        additional_info: str | None = None,
    ) -> ProgressUpdate:
        """Build an update whose fraction is derived from a known total."""
        fraction = None
        if total_units > 0:
            fraction = min(max(completed_units / total_units, 0.0), 1.0)
        return cls(
            completed_units=completed_units,
            total_units=total_units,
            fraction_completed=fraction,
            description=description,
            additional_info=additional_info,
        )

    @classmethod
    def indeterminate(
        cls,
        completed_units: int,
        description: str,
        additional_info: str | None = None,
    ) -> ProgressUpdate:
        """Build an update for an operation with no known total."""
        return cls(
            completed_units=completed_units,
            description=description,
            additional_info=additional_info,
        )

    @property
    def is_determinate(self) -> bool:
        return self.total_units is not None

    @property
    def percent(self) -> float | None:
        """Fraction as a percentage, or None."""
        if self.fraction_completed is None:
            return None
        return self.fraction_completed * 100.0


ProgressHandler = Callable[[ProgressUpdate], None]
