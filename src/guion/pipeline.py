"""Staged screenplay operations.

A single screenplay runs through parse, order, convert (store) and export.
Each stage gets its own progress handle whose fraction is folded into a
slice of the caller's handle, so the caller sees one monotonic operation.
Many screenplays are imported concurrently by :class:`BulkImporter`.
"""

from __future__ import annotations

import threading
import time
import traceback
from collections import defaultdict
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, TypedDict

from guion.config import GuionSettings, get_logger, get_settings
from guion.exceptions import (
    CancellationError,
    ExportError,
    GuionError,
    GuionFileNotFoundError,
    ParseError,
    ResourceError,
    StorageError,
    UnsupportedFormatError,
)
from guion.export import TextBundleWriter
from guion.models import ParsedScreenplay
from guion.ordering import assign_ordering
from guion.parser import BundleResolver
from guion.progress import (
    LinkedProgress,
    OperationProgress,
    ProgressUpdate,
    check_cancelled,
)
from guion.storage import ElementStore

logger = get_logger(__name__)

STAGE_UNITS = 1000
EXPORT_FORMATS = ("textbundle", "highland")


class PipelineStage(str, Enum):
    """Stages of a single screenplay operation, in execution order."""

    PARSE = "parse"
    ORDER = "order"
    CONVERT = "convert"
    EXPORT = "export"


@dataclass
class PipelineResult:
    """Outcome of :meth:`ScreenplayPipeline.run`."""

    screenplay: ParsedScreenplay
    stages: list[PipelineStage] = field(default_factory=list)
    script_id: int | None = None
    export_path: Path | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.screenplay.filename,
            "elements": len(self.screenplay.elements),
            "stages": [stage.value for stage in self.stages],
            "script_id": self.script_id,
            "export_path": str(self.export_path) if self.export_path else None,
            "duration_seconds": self.duration_seconds,
        }


class _StageForwarder:
    """Map one stage's fraction onto its slice of the parent's units."""

    def __init__(self, parent: OperationProgress, index: int) -> None:
        self.parent = parent
        self.index = index

    def __call__(self, update: ProgressUpdate) -> None:
        fraction = update.fraction_completed
        if fraction is None:
            return
        units = int((self.index + fraction) * STAGE_UNITS)
        # Stages may re-total themselves; the parent never moves backwards
        units = max(units, self.parent.completed_unit_count)
        self.parent.update(units, update.description, update.additional_info)


class ScreenplayPipeline:
    """Run parse, order, convert and export as one cancellable operation."""

    def __init__(self, settings: GuionSettings | None = None) -> None:
        self.settings = settings or get_settings()
        self.resolver = BundleResolver(self.settings)
        self.exporter = TextBundleWriter(self.settings)

    def run(
        self,
        source: Path | str,
        store: ElementStore | None = None,
        export_to: Path | str | None = None,
        export_format: str = "textbundle",
        progress: OperationProgress | None = None,
        overwrite: bool = False,
    ) -> PipelineResult:
        """Process one screenplay.

        Args:
            source: Screenplay file or bundle to read.
            store: Optional element store; enables the convert stage.
            export_to: Optional destination; enables the export stage.
            export_format: ``textbundle`` or ``highland``.
            progress: Optional progress handle for the whole run. Its total
                is set to a fixed number of units per stage.
            overwrite: Replace an existing export destination.

        Returns:
            The parsed screenplay plus what the later stages produced.

        Raises:
            CancellationError: If cancelled. Partial exports are removed and
                a cancelled store write is rolled back.
            GuionError: Any stage failure.
        """
        if export_format not in EXPORT_FORMATS:
            raise ExportError(
                message=f"Unknown export format: {export_format}",
                hint=f"Use one of: {', '.join(EXPORT_FORMATS)}",
                details={"format": export_format},
            )

        stages = [PipelineStage.PARSE, PipelineStage.ORDER]
        if store is not None:
            stages.append(PipelineStage.CONVERT)
        if export_to is not None:
            stages.append(PipelineStage.EXPORT)

        if progress is not None:
            progress.set_total_unit_count(len(stages) * STAGE_UNITS)
            progress.update(0, "Starting pipeline")

        started = time.time()

        def begin(stage: PipelineStage) -> OperationProgress | None:
            check_cancelled(progress, stage.value)
            logger.debug("Pipeline stage started", stage=stage.value, source=str(source))
            return self._stage_progress(progress, stages.index(stage))

        def finish(stage: PipelineStage) -> None:
            result.stages.append(stage)
            if progress is not None:
                units = (stages.index(stage) + 1) * STAGE_UNITS
                progress.update(
                    max(units, progress.completed_unit_count),
                    f"{stage.value.capitalize()} stage complete",
                )

        screenplay = self.resolver.load(source, progress=begin(PipelineStage.PARSE))
        result = PipelineResult(screenplay=screenplay)
        finish(PipelineStage.PARSE)

        assign_ordering(
            screenplay.elements,
            chapter_level=self.settings.chapter_heading_level,
            base=self.settings.order_index_base,
            progress=begin(PipelineStage.ORDER),
        )
        finish(PipelineStage.ORDER)

        if store is not None:
            result.script_id = store.save(
                screenplay, progress=begin(PipelineStage.CONVERT)
            )
            finish(PipelineStage.CONVERT)

        if export_to is not None:
            result.export_path = self._export(
                screenplay,
                Path(export_to),
                export_format,
                begin(PipelineStage.EXPORT),
                overwrite,
            )
            finish(PipelineStage.EXPORT)

        result.duration_seconds = time.time() - started
        if progress is not None:
            progress.complete("Pipeline complete")
        logger.info(
            "Pipeline finished",
            source=str(source),
            stages=[stage.value for stage in result.stages],
            elements=len(result.screenplay.elements),
            duration=round(result.duration_seconds, 3),
        )
        return result

    def _export(
        self,
        screenplay: ParsedScreenplay,
        destination: Path,
        export_format: str,
        progress: OperationProgress | None,
        overwrite: bool,
    ) -> Path:
        if export_format == "highland":
            return self.exporter.write_highland(
                screenplay, destination, progress=progress, overwrite=overwrite
            )
        return self.exporter.write_textbundle(
            screenplay, destination, progress=progress, overwrite=overwrite
        )

    @staticmethod
    def _stage_progress(
        progress: OperationProgress | None, index: int
    ) -> OperationProgress | None:
        if progress is None:
            return None
        return LinkedProgress(progress, _StageForwarder(progress, index))


class ErrorCategory(str, Enum):
    """Categories of errors that can occur during import."""

    PARSING = "parsing"
    RESOURCE = "resource"
    UNSUPPORTED = "unsupported"
    STORAGE = "storage"
    FILESYSTEM = "filesystem"
    UNKNOWN = "unknown"


class ImportErrorInfo(TypedDict):
    """Structured error information."""

    category: ErrorCategory
    message: str
    details: dict[str, Any]
    stack_trace: str | None
    suggestions: list[str]


_SUGGESTIONS: dict[ErrorCategory, list[str]] = {
    ErrorCategory.PARSING: [
        "Check that the file is valid Fountain or Final Draft XML",
        "Ensure the file encoding is UTF-8",
    ],
    ErrorCategory.RESOURCE: [
        "Check that the archive holds exactly one .textbundle or .textpack",
        "Re-save the file from Highland",
    ],
    ErrorCategory.UNSUPPORTED: [
        "Supported: .fountain, .spmd, .txt, .fdx, .highland, .textbundle, .textpack",
    ],
    ErrorCategory.STORAGE: [
        "Ensure sufficient disk space",
        "Verify database permissions",
    ],
    ErrorCategory.FILESYSTEM: ["Check that the path exists and is readable"],
}


def categorize_error(error: BaseException) -> ErrorCategory:
    """Map an exception raised while importing a file to its category."""
    if isinstance(error, ParseError):
        return ErrorCategory.PARSING
    if isinstance(error, ResourceError):
        return ErrorCategory.RESOURCE
    if isinstance(error, UnsupportedFormatError):
        return ErrorCategory.UNSUPPORTED
    if isinstance(error, StorageError):
        return ErrorCategory.STORAGE
    if isinstance(error, GuionFileNotFoundError | OSError):
        return ErrorCategory.FILESYSTEM
    return ErrorCategory.UNKNOWN


class BulkImportResult:
    """Results from a bulk import operation.

    Workers record into one instance concurrently, so every mutation takes
    the instance lock.
    """

    def __init__(self) -> None:
        self.total_files = 0
        self.successful_imports = 0
        self.failed_imports = 0
        self.skipped_files = 0
        self.errors: dict[str, ImportErrorInfo] = {}
        self.imported_scripts: dict[str, int] = {}
        self.skipped: list[str] = []
        self.start_time = time.time()
        self.end_time: float | None = None
        self._lock = threading.Lock()

    def add_success(self, file_path: str, script_id: int) -> None:
        """Record a successful import."""
        with self._lock:
            self.successful_imports += 1
            self.imported_scripts[file_path] = script_id

    def add_failure(
        self,
        file_path: str,
        error: Exception | str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        suggestions: list[str] | None = None,
    ) -> None:
        """Record a failed import with its category and suggestions."""
        error_info = ImportErrorInfo(
            category=category,
            message=error.message if isinstance(error, GuionError) else str(error),
            details={"file_path": file_path, "timestamp": datetime.now().isoformat()},
            stack_trace=(
                "".join(traceback.format_exception(error))
                if isinstance(error, Exception)
                else None
            ),
            suggestions=[*(suggestions or []), *_SUGGESTIONS.get(category, [])],
        )
        with self._lock:
            self.failed_imports += 1
            self.errors[file_path] = error_info

    def add_skipped(self, file_path: str) -> None:
        """Record a file that was never imported."""
        with self._lock:
            self.skipped_files += 1
            self.skipped.append(file_path)

    def to_dict(self) -> dict[str, Any]:
        """Convert results to dictionary."""
        self.end_time = time.time()
        duration = self.end_time - self.start_time

        return {
            "total_files": self.total_files,
            "successful_imports": self.successful_imports,
            "failed_imports": self.failed_imports,
            "skipped_files": self.skipped_files,
            "errors": self.errors,
            "imported_scripts": self.imported_scripts,
            "duration_seconds": duration,
            "files_per_second": self.total_files / duration if duration > 0 else 0,
        }

    def get_error_summary(self) -> dict[ErrorCategory, list[str]]:
        """Get summary of errors by category."""
        summary: dict[ErrorCategory, list[str]] = defaultdict(list)
        for file_path, error in self.errors.items():
            summary[error["category"]].append(file_path)
        return dict(summary)


class BulkImporter:
    """Import many screenplays concurrently into one element store."""

    def __init__(self, settings: GuionSettings | None = None) -> None:
        self.settings = settings or get_settings()
        self.resolver = BundleResolver(self.settings)

    def import_files(
        self,
        file_paths: Iterable[Path | str],
        store: ElementStore,
        progress: OperationProgress | None = None,
        max_workers: int | None = None,
    ) -> BulkImportResult:
        """Parse and store every file on a worker pool.

        One unit of progress is one file. A file that fails is recorded and
        the others carry on. After cancellation, files not yet started are
        recorded as skipped and a file mid-import is rolled back.

        Args:
            file_paths: Screenplay files or bundles.
            store: Destination store.
            progress: Optional progress handle shared by all workers.
            max_workers: Worker threads; defaults to the configured value.

        Returns:
            Per-file outcomes.
        """
        paths = [Path(p) for p in file_paths]
        result = BulkImportResult()
        result.total_files = len(paths)
        workers = max_workers or self.settings.max_workers

        if progress is not None:
            progress.set_total_unit_count(len(paths))
            progress.update(0, f"Importing {len(paths)} files")

        logger.info("Starting bulk import", files=len(paths), workers=workers)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self._import_one, path, store, progress, result)
                for path in paths
            ]
            for future in futures:
                future.result()

        if progress is not None and not progress.is_cancelled:
            progress.complete(
                f"Import complete - {result.successful_imports} of "
                f"{result.total_files} files"
            )
        logger.info(
            "Bulk import finished",
            successful=result.successful_imports,
            failed=result.failed_imports,
            skipped=result.skipped_files,
        )
        return result

    def _import_one(
        self,
        path: Path,
        store: ElementStore,
        progress: OperationProgress | None,
        result: BulkImportResult,
    ) -> None:
        key = str(path)
        if progress is not None and progress.is_cancelled:
            result.add_skipped(key)
            return

        # Per-file handle: shares cancellation, keeps the file count intact
        file_progress = LinkedProgress(progress) if progress is not None else None
        try:
            screenplay = self.resolver.load(path, progress=file_progress)
            script_id = store.save(screenplay, progress=file_progress)
        except CancellationError:
            result.add_skipped(key)
            logger.debug("Import cancelled", file=key)
            return
        except Exception as e:
            category = categorize_error(e)
            result.add_failure(key, e, category)
            logger.warning(
                "Failed to import file",
                file=key,
                category=category.value,
                error=str(e),
            )
        else:
            result.add_success(key, script_id)
            logger.debug("Imported file", file=key, script_id=script_id)

        if progress is not None:
            progress.increment(1, f"Imported {path.name}")
