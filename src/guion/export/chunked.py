"""Chunked file writing that never leaves a partial file behind."""

from __future__ import annotations

import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from guion.config import get_logger
from guion.exceptions import CancellationError, ExportError
from guion.progress import OperationProgress, check_cancelled

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024


def remove_path(path: Path) -> None:
    """Delete a file or directory tree if it exists."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


@contextmanager
def cleanup_on_failure(path: Path) -> Iterator[Path]:
    """Remove ``path`` when the managed block raises, then re-raise.

    Covers cancellation as well as I/O errors, so no partially written
    destination survives a failed write.
    """
    try:
        yield path
    except BaseException as e:
        try:
            remove_path(path)
        except OSError as cleanup_error:
            logger.error(
                "Failed to remove partial output",
                path=str(path),
                error=str(cleanup_error),
            )
            raise
        logger.info(
            "Removed partial output",
            path=str(path),
            reason="cancelled" if isinstance(e, CancellationError) else type(e).__name__,
        )
        raise


def write_bytes_chunked(
    path: Path | str,
    data: bytes,
    progress: OperationProgress | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    description: str | None = None,
) -> int:
    """Write ``data`` to ``path`` in fixed-size chunks.

    Progress advances by the size of every chunk written, and cancellation
    is polled before each chunk. The caller owns the progress total; when
    the handle has none yet it is set to ``len(data)``.

    Args:
        path: Destination file.
        data: Bytes to write.
        progress: Optional progress handle.
        chunk_size: Bytes per write.
        description: Progress description; defaults to the file name.

    Returns:
        Number of bytes written.

    Raises:
        CancellationError: If cancelled mid-write; the file is removed.
        ExportError: If the file cannot be written; the file is removed.
    """
    destination = Path(path)
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    label = description or f"Writing {destination.name}"
    if progress is not None and progress.total_unit_count is None:
        progress.set_total_unit_count(len(data))

    check_cancelled(progress, "export")
    view = memoryview(data)
    written = 0
    with cleanup_on_failure(destination):
        try:
            with destination.open("wb") as f:
                for offset in range(0, len(view), chunk_size):
                    check_cancelled(progress, "export")
                    chunk = view[offset : offset + chunk_size]
                    f.write(chunk)
                    written += len(chunk)
                    if progress is not None:
                        progress.increment(len(chunk), label)
        except OSError as e:
            raise ExportError(
                message=f"Failed to write {destination.name}",
                details={"path": str(destination), "error": str(e)},
            ) from e
    return written
