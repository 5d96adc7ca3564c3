"""Progress reporting and cooperative cancellation."""

from guion.progress.operation import (
    DEFAULT_UPDATE_INTERVAL,
    LinkedProgress,
    OperationProgress,
    check_cancelled,
)
from guion.progress.update import ProgressHandler, ProgressUpdate

__all__ = [
    "DEFAULT_UPDATE_INTERVAL",
    "LinkedProgress",
    "OperationProgress",
    "ProgressHandler",
    "ProgressUpdate",
    "check_cancelled",
]
