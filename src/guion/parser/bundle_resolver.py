"""Highland and TextBundle container resolution.

A ``.highland`` file is either a ZIP holding one TextBundle directory
(Highland 2) or the plain Fountain text itself (Highland 1). The two are
told apart by the ZIP local file header signature, never by extension.
"""

from __future__ import annotations

import json
import zipfile
import zlib
from collections.abc import Iterable
from pathlib import Path, PurePosixPath
from typing import Any

from guion.config import GuionSettings, get_logger, get_settings
from guion.exceptions import (
    ExtractionFailedError,
    GuionFileNotFoundError,
    NoTextBundleFoundError,
    ParseError,
    UnsupportedFormatError,
)
from guion.models import ParsedScreenplay
from guion.parser.fdx_parser import FDXParser
from guion.parser.fountain_parser import FountainParser, read_text_file
from guion.progress import OperationProgress

logger = get_logger(__name__)

ZIP_SIGNATURE = b"PK\x03\x04"
BUNDLE_EXTENSIONS = (".textbundle", ".textpack")
INFO_FILE = "info.json"
CONTENT_PREFERENCE = ("text.fountain", "*.fountain", "text.md", "*.md")

FOUNTAIN_SUFFIXES = {".fountain", ".spmd", ".txt"}
FDX_SUFFIXES = {".fdx"}
HIGHLAND_SUFFIXES = {".highland"}


def is_zip_file(path: Path) -> bool:
    """True when the file starts with a ZIP local file header."""
    with path.open("rb") as f:
        return f.read(len(ZIP_SIGNATURE)) == ZIP_SIGNATURE


def find_content_file(names: Iterable[str]) -> str | None:
    """Pick the screenplay content file among a bundle's file names.

    Preference: ``text.fountain``, any ``.fountain``, ``text.md``, any
    ``.md``. Ties within one rule resolve alphabetically.
    """
    candidates = sorted(names)
    lowered = {name.lower(): name for name in candidates}
    for rule in CONTENT_PREFERENCE:
        if rule.startswith("*"):
            suffix = rule[1:]
            for name in candidates:
                if name.lower().endswith(suffix):
                    return name
        elif rule in lowered:
            return lowered[rule]
    return None


def _decode(data: bytes, source: str) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(
            message=f"Bundle content is not valid UTF-8: {source}",
            hint="Re-save the screenplay with UTF-8 encoding",
            details={"source": source, "position": e.start},
        ) from e


def _read_info(raw: bytes, source: str) -> dict[str, Any]:
    try:
        info = json.loads(raw.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable bundle info.json", source=source, error=str(e))
        return {}
    return info if isinstance(info, dict) else {}


class BundleResolver:
    """Open Highland files and TextBundle directories as screenplays."""

    def __init__(self, settings: GuionSettings | None = None) -> None:
        self.settings = settings or get_settings()
        self.fountain = FountainParser(self.settings)
        self.fdx = FDXParser(self.settings)

    def read_highland(
        self, file_path: Path | str, progress: OperationProgress | None = None
    ) -> ParsedScreenplay:
        """Parse a Highland file, zipped (Highland 2) or plain (Highland 1).

        Raises:
            GuionFileNotFoundError: If the file does not exist.
            NoTextBundleFoundError: If the archive holds no qualifying bundle.
            ExtractionFailedError: If the archive cannot be read.
            ParseError: If the content is not valid UTF-8.
        """
        path = _existing(file_path)
        try:
            zipped = is_zip_file(path)
        except OSError as e:
            raise ExtractionFailedError(
                message=f"Failed to read {path.name}",
                details={"file": str(path), "error": str(e)},
            ) from e

        if not zipped:
            logger.debug("Reading plain Highland file", file=str(path))
            return self.fountain.parse_file(path, progress=progress)
        return self._read_zipped_bundle(path, progress)

    def read_textbundle(
        self, bundle_path: Path | str, progress: OperationProgress | None = None
    ) -> ParsedScreenplay:
        """Parse a TextBundle directory.

        Raises:
            GuionFileNotFoundError: If the directory does not exist.
            NoTextBundleFoundError: If info.json or a content file is missing.
            ParseError: If the content is not valid UTF-8.
        """
        path = _existing(bundle_path)
        if not path.is_dir():
            raise NoTextBundleFoundError(
                message=f"Not a TextBundle directory: {path.name}",
                details={"path": str(path)},
            )
        names = [child.name for child in path.iterdir() if child.is_file()]
        content_name = find_content_file(names)
        if INFO_FILE not in names or content_name is None:
            raise NoTextBundleFoundError(
                message=f"TextBundle has no screenplay content: {path.name}",
                hint="A TextBundle needs info.json and a .fountain or .md file",
                details={"path": str(path), "files": sorted(names)},
            )
        try:
            info_raw = (path / INFO_FILE).read_bytes()
        except OSError as e:
            raise ExtractionFailedError(
                message=f"Failed to read {INFO_FILE} in {path.name}",
                details={"path": str(path), "error": str(e)},
            ) from e
        info = _read_info(info_raw, str(path))
        text = read_text_file(path / content_name)
        return self._parse_content(text, info, path.name, progress)

    def _read_zipped_bundle(
        self, path: Path, progress: OperationProgress | None
    ) -> ParsedScreenplay:
        try:
            with zipfile.ZipFile(path) as archive:
                bundle_dir, content_name = self._locate_bundle(archive, path)
                info_raw = archive.read(f"{bundle_dir}/{INFO_FILE}")
                content = archive.read(f"{bundle_dir}/{content_name}")
        # zlib.error: corrupt deflate stream. NotImplementedError: unsupported
        # compression. RuntimeError: encrypted member.
        except (
            zipfile.BadZipFile,
            zipfile.LargeZipFile,
            zlib.error,
            KeyError,
            OSError,
            NotImplementedError,
            RuntimeError,
        ) as e:
            raise ExtractionFailedError(
                message=f"Failed to extract {path.name}",
                hint="The archive is corrupt or unreadable",
                details={"file": str(path), "error": str(e)},
            ) from e

        logger.debug(
            "Extracted bundle from archive",
            file=str(path),
            bundle=bundle_dir,
            content=content_name,
        )
        info = _read_info(info_raw, str(path))
        text = _decode(content, f"{path.name}:{bundle_dir}/{content_name}")
        return self._parse_content(text, info, path.name, progress)

    @staticmethod
    def _locate_bundle(archive: zipfile.ZipFile, path: Path) -> tuple[str, str]:
        """Find the single bundle directory and its content file name."""
        files_by_dir: dict[str, set[str]] = {}
        for name in archive.namelist():
            if name.endswith("/"):
                continue
            member = PurePosixPath(name)
            parent = str(member.parent)
            if parent.lower().endswith(BUNDLE_EXTENSIONS):
                files_by_dir.setdefault(parent, set()).add(member.name)

        qualifying = {
            bundle: content
            for bundle, names in files_by_dir.items()
            if INFO_FILE in names and (content := find_content_file(names)) is not None
        }
        if len(qualifying) != 1:
            raise NoTextBundleFoundError(
                message=f"No single TextBundle found in {path.name}",
                hint="Highland archives contain exactly one .textbundle directory",
                details={"file": str(path), "bundles": sorted(qualifying) or None},
            )
        return next(iter(qualifying.items()))

    def _parse_content(
        self,
        text: str,
        info: dict[str, Any],
        filename: str,
        progress: OperationProgress | None,
    ) -> ParsedScreenplay:
        screenplay = self.fountain.parse_string(text, filename=filename, progress=progress)
        screenplay.suppress_scene_numbers = bool(info.get("suppressSceneNumbers", False))
        return screenplay

    def load(
        self, file_path: Path | str, progress: OperationProgress | None = None
    ) -> ParsedScreenplay:
        """Parse any supported screenplay path, dispatching on its suffix.

        Raises:
            UnsupportedFormatError: If the suffix is not a known format.
        """
        path = _existing(file_path)
        suffix = path.suffix.lower()
        if suffix in FOUNTAIN_SUFFIXES:
            return self.fountain.parse_file(path, progress=progress)
        if suffix in FDX_SUFFIXES:
            return self.fdx.parse_file(path, progress=progress)
        if suffix in HIGHLAND_SUFFIXES:
            return self.read_highland(path, progress=progress)
        if suffix in BUNDLE_EXTENSIONS:
            if path.is_dir():
                return self.read_textbundle(path, progress=progress)
            return self.read_highland(path, progress=progress)
        raise UnsupportedFormatError(
            message=f"Unsupported screenplay format: {suffix or path.name}",
            hint="Supported: .fountain, .spmd, .txt, .fdx, .highland, .textbundle, "
            ".textpack",
            details={"file": str(path)},
        )


def _existing(file_path: Path | str) -> Path:
    path = Path(file_path)
    if not path.exists():
        raise GuionFileNotFoundError(
            message=f"Screenplay not found: {path}",
            hint="Check the path and try again",
            details={"path": str(path)},
        )
    return path


def load_screenplay(
    file_path: Path | str,
    progress: OperationProgress | None = None,
    settings: GuionSettings | None = None,
) -> ParsedScreenplay:
    """Parse any supported screenplay file or bundle."""
    return BundleResolver(settings).load(file_path, progress=progress)
