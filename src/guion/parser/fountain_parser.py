"""Fountain screenplay parser.

Lines are classified one at a time by :mod:`guion.parser.line_classifier`;
this module holds the state machine that stitches classified lines into
elements: multi-line action paragraphs, dialogue runs, notes and boneyards
that span lines, and the title page block.
"""

from __future__ import annotations

from pathlib import Path

from guion.config import GuionSettings, get_logger, get_settings
from guion.exceptions import GuionFileNotFoundError, ParseError
from guion.models import Element, ElementType, ParsedScreenplay, TitlePageEntry
from guion.ordering import assign_ordering
from guion.parser.line_classifier import (
    TITLE_KEY_PATTERN,
    LineClassification,
    LineContext,
    classify_line,
)
from guion.progress import OperationProgress

logger = get_logger(__name__)

BOM = "\ufeff"


def normalize_text(text: str) -> str:
    """Strip a byte order mark and convert line endings to ``\\n``."""
    if text.startswith(BOM):
        text = text[1:]
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _has_indented_value(lines: list[str], index: int) -> bool:
    if index >= len(lines):
        return False
    line = lines[index]
    return line[:1].isspace() and bool(line.strip())


def parse_title_page(lines: list[str]) -> tuple[list[TitlePageEntry], int]:
    """Read the leading ``Key: value`` block.

    A key with no inline value must be followed by indented value lines;
    otherwise the block is body text, so an opening ``FADE IN:`` stays a
    screenplay element.

    Args:
        lines: Normalised document lines.

    Returns:
        Tuple of (title page entries, index of the first body line). When the
        leading block does not conform the result is ``([], 0)``.
    """
    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1
    if start >= len(lines) or not TITLE_KEY_PATTERN.match(lines[start]):
        return [], 0

    entries: list[TitlePageEntry] = []
    index = start
    while index < len(lines) and lines[index].strip():
        line = lines[index]
        match = TITLE_KEY_PATTERN.match(line)
        if match and not line[0].isspace():
            value = match.group(2).strip()
            if not value and not _has_indented_value(lines, index + 1):
                return [], 0
            entries.append(TitlePageEntry(match.group(1).strip(), [value] if value else []))
        elif line[0].isspace() and entries:
            entries[-1].values.append(line.strip())
        else:
            return [], 0
        index += 1
    return entries, index


class _ElementBuilder:
    """Collects elements while merging action paragraphs and dialogue runs."""

    def __init__(self) -> None:
        self.elements: list[Element] = []
        self._action_lines: list[str] = []
        self.in_dialogue = False
        self._dual = False

    def add_action_line(self, text: str) -> None:
        self._action_lines.append(text)

    def flush_action(self) -> None:
        if self._action_lines:
            self.elements.append(
                Element(ElementType.ACTION, "\n".join(self._action_lines))
            )
            self._action_lines = []

    def end_block(self) -> None:
        self.flush_action()
        self.in_dialogue = False
        self._dual = False

    def add(self, kind: ElementType, line: LineClassification) -> None:
        self.flush_action()
        if kind is ElementType.DIALOGUE and self.in_dialogue and self.elements:
            previous = self.elements[-1]
            if previous.element_type is ElementType.DIALOGUE:
                previous.element_text = f"{previous.element_text}\n{line.text}"
                return

        self.elements.append(
            Element(
                kind,
                line.text,
                section_level=line.section_level,
                scene_number=line.scene_number,
                is_centered=line.is_centered,
                is_dual_dialogue=line.is_dual_dialogue
                or (self._dual and kind.is_dialogue_part),
            )
        )
        if kind is ElementType.CHARACTER:
            self.in_dialogue = True
            self._dual = line.is_dual_dialogue
        elif not kind.is_dialogue_part and kind not in (
            ElementType.COMMENT,
            ElementType.BONEYARD,
        ):
            self.in_dialogue = False
            self._dual = False

    def add_block(self, kind: ElementType, text: str) -> None:
        self.flush_action()
        self.elements.append(Element(kind, text))


def _find_closing(lines: list[str], start: int, closer: str) -> int:
    """Index of the first line at or after ``start`` containing ``closer``.

    Returns the last index when the block is never closed.
    """
    for index in range(start, len(lines)):
        if closer in lines[index]:
            return index
    return len(lines) - 1


def _block_text(lines: list[str], opener: str, closer: str) -> str:
    text = "\n".join(lines).strip()
    if text.startswith(opener):
        text = text[len(opener) :]
    if text.endswith(closer):
        text = text[: -len(closer)]
    return text.strip()


class FountainParser:
    """Parse Fountain text into a :class:`ParsedScreenplay`.

    Parsing never fails on text input. Unrecognised lines become action and
    empty input yields an empty screenplay.
    """

    def __init__(self, settings: GuionSettings | None = None) -> None:
        self.settings = settings or get_settings()

    def parse_string(
        self,
        text: str,
        filename: str | None = None,
        progress: OperationProgress | None = None,
    ) -> ParsedScreenplay:
        """Parse Fountain content.

        Args:
            text: Raw Fountain text.
            filename: Optional source name stored on the result.
            progress: Optional progress handle. Its total is set to the line
                count and it is polled for cancellation every batch.

        Returns:
            Parsed screenplay with ordering keys assigned.

        Raises:
            CancellationError: If the progress handle was cancelled. No
                partial result is returned.
        """
        lines = normalize_text(text).split("\n")
        if lines == [""]:
            lines = []
        total = len(lines)
        batch_size = self.settings.fountain_batch_size

        if progress is not None:
            progress.set_total_unit_count(total)
            progress.update(0, "Parsing Fountain")

        title_page, index = parse_title_page(lines)
        builder = _ElementBuilder()
        next_checkpoint = batch_size

        while index < total:
            if index >= next_checkpoint:
                next_checkpoint = index + batch_size
                if progress is not None:
                    progress.check_cancelled("fountain")
                    progress.update(index, f"Parsing line {index} of {total}")

            line = lines[index]
            stripped = line.strip()

            if not stripped:
                builder.end_block()
                index += 1
                continue

            if stripped.startswith("/*") and "*/" not in stripped:
                end = _find_closing(lines, index + 1, "*/")
                builder.add_block(
                    ElementType.BONEYARD, _block_text(lines[index : end + 1], "/*", "*/")
                )
                index = end + 1
                continue

            if stripped.startswith("[[") and "]]" not in stripped:
                end = _find_closing(lines, index + 1, "]]")
                builder.add_block(
                    ElementType.COMMENT, _block_text(lines[index : end + 1], "[[", "]]")
                )
                index = end + 1
                continue

            context = LineContext(
                previous_blank=index == 0 or not lines[index - 1].strip(),
                next_blank=index + 1 >= total or not lines[index + 1].strip(),
                in_dialogue=builder.in_dialogue,
            )
            classified = classify_line(line, context)
            kind = classified.element_type
            if kind is None:
                builder.end_block()
            elif kind is ElementType.ACTION and not classified.is_centered:
                builder.add_action_line(classified.text)
            else:
                builder.add(kind, classified)
            index += 1

        builder.end_block()
        elements = builder.elements

        if progress is not None:
            progress.check_cancelled("fountain")

        assign_ordering(
            elements,
            chapter_level=self.settings.chapter_heading_level,
            base=self.settings.order_index_base,
        )

        if progress is not None:
            progress.complete(f"Parsing complete - {len(elements)} elements")

        logger.debug(
            "Parsed Fountain text",
            filename=filename,
            lines=total,
            elements=len(elements),
            title_page_entries=len(title_page),
        )
        return ParsedScreenplay(
            filename=filename, elements=elements, title_page=title_page
        )

    def parse_file(
        self, file_path: Path | str, progress: OperationProgress | None = None
    ) -> ParsedScreenplay:
        """Parse a Fountain file.

        Args:
            file_path: Path to the Fountain file.
            progress: Optional progress handle.

        Returns:
            Parsed screenplay.

        Raises:
            GuionFileNotFoundError: If the file does not exist.
            ParseError: If the file is not valid UTF-8 or cannot be read.
        """
        path = Path(file_path)
        text = read_text_file(path)
        return self.parse_string(text, filename=path.name, progress=progress)


def read_text_file(path: Path) -> str:
    """Read a UTF-8 screenplay file, mapping failures to Guion errors."""
    if not path.exists():
        raise GuionFileNotFoundError(
            message=f"Screenplay file not found: {path}",
            hint="Check the path and try again",
            details={"file": str(path)},
        )
    try:
        return path.read_bytes().decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(
            message=f"Screenplay file is not valid UTF-8: {path.name}",
            hint="Re-save the file with UTF-8 encoding",
            details={"file": str(path), "position": e.start},
        ) from e
    except OSError as e:
        raise ParseError(
            message=f"Failed to read screenplay file: {path.name}",
            details={"file": str(path), "error": str(e)},
        ) from e
