"""TextBundle and Highland export.

Bundle layout::

    <name>.textbundle/
        info.json
        screenplay.fountain
        Resources/
            characters.json
            locations.json
            elements.json
            titlepage.json

A Highland file is the same bundle zipped under a ``<name>.textbundle/``
directory. All files are streamed to disk in chunks beside the destination
and moved into place when complete; a cancelled or failed export removes
everything it wrote and leaves any previous export untouched.
"""

from __future__ import annotations

import io
import json
import zipfile
from pathlib import Path
from typing import Any

from guion.config import GuionSettings, get_logger, get_settings
from guion.exceptions import ExportError
from guion.export.chunked import cleanup_on_failure, remove_path, write_bytes_chunked
from guion.export.fountain_writer import FountainWriter
from guion.models import ParsedScreenplay
from guion.progress import OperationProgress, check_cancelled

logger = get_logger(__name__)

INFO_FILE = "info.json"
SCREENPLAY_FILE = "screenplay.fountain"
RESOURCES_DIR = "Resources"
RESOURCE_FILES = ("characters.json", "locations.json", "elements.json", "titlepage.json")
BUNDLE_VERSION = 2
STAGING_SUFFIX = ".partial"
BACKUP_SUFFIX = ".previous"


def dump_json(data: Any) -> bytes:
    """Pretty, key-sorted UTF-8 JSON."""
    return (json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n").encode(
        "utf-8"
    )


class TextBundleWriter:
    """Write screenplays as TextBundle directories or Highland archives."""

    def __init__(self, settings: GuionSettings | None = None) -> None:
        self.settings = settings or get_settings()
        self.writer = FountainWriter()

    def build_files(self, screenplay: ParsedScreenplay) -> dict[str, bytes]:
        """Serialise every bundle file, keyed by its path inside the bundle."""
        characters = [
            {"name": name, **info}
            for name, info in screenplay.extract_characters().items()
        ]
        resources = {
            "characters.json": {"characters": characters},
            "locations.json": {"locations": screenplay.extract_locations()},
            "elements.json": {
                "elements": [element.to_dict() for element in screenplay.elements]
            },
            "titlepage.json": {
                "title_page": [entry.to_dict() for entry in screenplay.title_page]
            },
        }
        info = {
            "version": BUNDLE_VERSION,
            "filename": screenplay.filename,
            "suppressSceneNumbers": screenplay.suppress_scene_numbers,
            "resources": list(RESOURCE_FILES),
        }

        files = {
            INFO_FILE: dump_json(info),
            SCREENPLAY_FILE: self.writer.document(screenplay).encode("utf-8"),
        }
        for name in RESOURCE_FILES:
            files[f"{RESOURCES_DIR}/{name}"] = dump_json(resources[name])
        return files

    def write_textbundle(
        self,
        screenplay: ParsedScreenplay,
        destination: Path | str,
        progress: OperationProgress | None = None,
        overwrite: bool = False,
    ) -> Path:
        """Write a TextBundle directory.

        The bundle is written to a hidden sibling first and moved into place
        once complete, so a failed overwrite keeps the previous export.

        Args:
            screenplay: Screenplay to export.
            destination: Bundle directory to create.
            progress: Optional progress handle, keyed on bytes written.
            overwrite: Replace an existing destination.

        Returns:
            The bundle directory.

        Raises:
            ExportError: If the destination exists or cannot be written.
            CancellationError: If cancelled; the partial bundle is removed.
        """
        bundle = Path(destination)
        staging = self._prepare_destination(bundle, overwrite)
        check_cancelled(progress, "export")
        files = self.build_files(screenplay)

        if progress is not None:
            progress.set_total_unit_count(sum(len(data) for data in files.values()))
            progress.update(0, "Exporting TextBundle")

        with cleanup_on_failure(staging):
            staging.mkdir()
            for relative, data in files.items():
                target = staging / relative
                target.parent.mkdir(parents=True, exist_ok=True)
                write_bytes_chunked(
                    target,
                    data,
                    progress=progress,
                    chunk_size=self.settings.export_chunk_size,
                    description=f"Writing {relative}",
                )
            check_cancelled(progress, "export")
            commit_staged(staging, bundle)

        if progress is not None:
            progress.complete("Export complete")
        logger.info("Exported TextBundle", path=str(bundle), files=len(files))
        return bundle

    def write_highland(
        self,
        screenplay: ParsedScreenplay,
        destination: Path | str,
        progress: OperationProgress | None = None,
        overwrite: bool = False,
    ) -> Path:
        """Write a zipped Highland file.

        Raises:
            ExportError: If the destination exists or cannot be written.
            CancellationError: If cancelled; the partial file is removed.
        """
        target = Path(destination)
        staging = self._prepare_destination(target, overwrite)
        check_cancelled(progress, "export")
        archive_bytes = self.build_highland_archive(screenplay, target.stem)
        check_cancelled(progress, "export")

        if progress is not None:
            progress.set_total_unit_count(len(archive_bytes))
            progress.update(0, "Exporting Highland file")

        with cleanup_on_failure(staging):
            write_bytes_chunked(
                staging,
                archive_bytes,
                progress=progress,
                chunk_size=self.settings.export_chunk_size,
                description=f"Writing {target.name}",
            )
            check_cancelled(progress, "export")
            commit_staged(staging, target)

        if progress is not None:
            progress.complete("Export complete")
        logger.info("Exported Highland file", path=str(target), size=len(archive_bytes))
        return target

    def build_highland_archive(self, screenplay: ParsedScreenplay, name: str) -> bytes:
        """Zip the bundle files in memory under ``<name>.textbundle/``."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for relative, data in self.build_files(screenplay).items():
                archive.writestr(f"{name}.textbundle/{relative}", data)
        return buffer.getvalue()

    @staticmethod
    def _prepare_destination(destination: Path, overwrite: bool) -> Path:
        """Validate the destination and return a clean staging path beside it."""
        if destination.exists() and not overwrite:
            raise ExportError(
                message=f"Export destination already exists: {destination}",
                hint="Choose another path or pass overwrite=True",
                details={"path": str(destination)},
            )
        if not destination.parent.exists():
            raise ExportError(
                message=f"Export directory does not exist: {destination.parent}",
                details={"path": str(destination)},
            )
        staging = staging_path(destination)
        remove_path(staging)
        return staging


def staging_path(destination: Path) -> Path:
    """Hidden sibling that an export is written to before it is committed."""
    return destination.with_name(f".{destination.name}{STAGING_SUFFIX}")


def commit_staged(staging: Path, destination: Path) -> None:
    """Move a finished export into place, replacing any previous one.

    A file replacing a file is swapped with a single rename. Anything else
    moves the old destination aside first and restores it when the final
    rename fails.

    Raises:
        ExportError: If the export cannot be moved into place.
    """
    try:
        if staging.is_file() and destination.is_file():
            staging.replace(destination)
            return
        if not destination.exists():
            staging.rename(destination)
            return
        backup = destination.with_name(f".{destination.name}{BACKUP_SUFFIX}")
        remove_path(backup)
        destination.rename(backup)
        try:
            staging.rename(destination)
        except OSError:
            backup.rename(destination)
            raise
        remove_path(backup)
    except OSError as e:
        raise ExportError(
            message=f"Failed to move export into place: {destination.name}",
            details={"path": str(destination), "error": str(e)},
        ) from e
