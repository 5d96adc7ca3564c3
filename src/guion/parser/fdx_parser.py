"""Final Draft (FDX) screenplay parser.

The document is scanned with an incremental pull parser instead of being
loaded into a tree, so memory stays bounded by the paragraph being read.
XML errors are fatal: nothing is returned for a document that does not
parse completely.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

from guion.config import GuionSettings, get_logger, get_settings
from guion.exceptions import GuionFileNotFoundError, ParseError
from guion.models import Element, ElementType, ParsedScreenplay, TitlePageEntry
from guion.ordering import assign_ordering
from guion.progress import OperationProgress

logger = get_logger(__name__)

ROOT_TAG = "FinalDraft"
CONTENT_TAG = "Content"
PARAGRAPH_TAG = "Paragraph"
TEXT_TAG = "Text"
TITLE_PAGE_TAG = "TitlePage"
DUAL_DIALOGUE_TAG = "DualDialogue"
DEFAULT_TITLE_KEY = "General"

PARAGRAPH_COUNT_PATTERN = re.compile(rb"<Paragraph[\s>/]")
# Page headers and footers repeat on every page and are not script content
HEADER_FOOTER_PATTERN = re.compile(
    rb"<HeaderAndFooter\b[^>]*?(?:/>|>.*?</HeaderAndFooter\s*>)", re.DOTALL
)

# Final Draft paragraph type -> (element type, section level)
PARAGRAPH_TYPES: dict[str, tuple[ElementType, int]] = {
    "Scene Heading": (ElementType.SCENE_HEADING, 0),
    "Action": (ElementType.ACTION, 0),
    "Character": (ElementType.CHARACTER, 0),
    "Dialogue": (ElementType.DIALOGUE, 0),
    "Parenthetical": (ElementType.PARENTHETICAL, 0),
    "Transition": (ElementType.TRANSITION, 0),
    "Lyrics": (ElementType.LYRICS, 0),
    "Shot": (ElementType.ACTION, 0),
    "General": (ElementType.ACTION, 0),
    "Cast List": (ElementType.ACTION, 0),
    "End of Act": (ElementType.ACTION, 0),
    "New Act": (ElementType.SECTION_HEADING, 2),
}


def map_paragraph_type(paragraph_type: str | None) -> tuple[ElementType, int]:
    """Map a Final Draft paragraph type; unknown types become action."""
    if paragraph_type is None:
        return ElementType.ACTION, 0
    return PARAGRAPH_TYPES.get(paragraph_type, (ElementType.ACTION, 0))


def count_paragraphs(data: bytes) -> int:
    """Cheap first-pass count of paragraph start tags.

    Paragraphs inside ``<HeaderAndFooter>`` are not counted since the
    parser skips them.
    """
    return len(PARAGRAPH_COUNT_PATTERN.findall(HEADER_FOOTER_PATTERN.sub(b"", data)))


def paragraph_region(ancestors: list[ET.Element]) -> str | None:
    """Classify a paragraph by its open ancestors.

    Returns ``"body"`` under the root ``<Content>``, ``"title"`` under
    ``<TitlePage><Content>`` and ``None`` anywhere else.
    """
    if len(ancestors) < 2:
        return None
    if ancestors[1].tag == CONTENT_TAG:
        return "body"
    if (
        len(ancestors) >= 3
        and ancestors[1].tag == TITLE_PAGE_TAG
        and ancestors[2].tag == CONTENT_TAG
    ):
        return "title"
    return None


def paragraph_text(paragraph: ET.Element) -> str:
    """Concatenate the direct ``<Text>`` runs of a paragraph."""
    return "".join(run.text or "" for run in paragraph.findall(TEXT_TAG))


@dataclass
class _ScanState:
    elements: list[Element] = field(default_factory=list)
    title_page: dict[str, TitlePageEntry] = field(default_factory=dict)
    stack: list[ET.Element] = field(default_factory=list)
    dual_depth: int = 0
    paragraphs: int = 0
    root_seen: bool = False


class FDXParser:
    """Parse Final Draft XML into a :class:`ParsedScreenplay`."""

    def __init__(self, settings: GuionSettings | None = None) -> None:
        self.settings = settings or get_settings()

    def parse(
        self,
        data: bytes,
        filename: str | None = None,
        progress: OperationProgress | None = None,
    ) -> ParsedScreenplay:
        """Parse an FDX byte buffer.

        Args:
            data: Raw FDX bytes.
            filename: Optional source name stored on the result.
            progress: Optional progress handle keyed on paragraphs processed.

        Returns:
            Parsed screenplay with ordering keys assigned.

        Raises:
            ParseError: If the XML is malformed, empty or not a Final Draft
                document.
            CancellationError: If the progress handle was cancelled.
        """
        if not data.strip():
            raise ParseError(
                message="FDX document is empty",
                details={"file": filename} if filename else None,
            )

        total = count_paragraphs(data)
        if progress is not None:
            progress.set_total_unit_count(total)
            progress.update(0, "Parsing FDX")

        state = _ScanState()
        pull = ET.XMLPullParser(events=("start", "end"))
        read_size = self.settings.fdx_read_size
        try:
            for offset in range(0, len(data), read_size):
                pull.feed(data[offset : offset + read_size])
                self._drain(pull, state, total, filename, progress)
            pull.close()
            self._drain(pull, state, total, filename, progress)
        except ET.ParseError as e:
            raise ParseError(
                message="Invalid FDX document",
                hint="The file is not well-formed XML; re-export it from Final Draft",
                details={"file": filename, "xml_error": str(e)},
            ) from e

        if not state.root_seen:
            raise ParseError(
                message="FDX document has no root element",
                details={"file": filename},
            )

        if progress is not None:
            progress.check_cancelled("fdx")

        elements = state.elements
        assign_ordering(
            elements,
            chapter_level=self.settings.chapter_heading_level,
            base=self.settings.order_index_base,
        )

        if progress is not None:
            progress.complete(f"FDX parsing complete - {len(elements)} elements")

        logger.debug(
            "Parsed FDX document",
            filename=filename,
            paragraphs=state.paragraphs,
            elements=len(elements),
        )
        return ParsedScreenplay(
            filename=filename,
            elements=elements,
            title_page=list(state.title_page.values()),
        )

    def parse_file(
        self, file_path: Path | str, progress: OperationProgress | None = None
    ) -> ParsedScreenplay:
        """Parse an FDX file.

        Raises:
            GuionFileNotFoundError: If the file does not exist.
            ParseError: If the file cannot be read or parsed.
        """
        path = Path(file_path)
        if not path.exists():
            raise GuionFileNotFoundError(
                message=f"FDX file not found: {path}",
                hint="Check the path and try again",
                details={"file": str(path)},
            )
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ParseError(
                message=f"Failed to read FDX file: {path.name}",
                details={"file": str(path), "error": str(e)},
            ) from e
        return self.parse(data, filename=path.name, progress=progress)

    def _drain(
        self,
        pull: ET.XMLPullParser,
        state: _ScanState,
        total: int,
        filename: str | None,
        progress: OperationProgress | None,
    ) -> None:
        for event, node in pull.read_events():
            if event == "start":
                self._on_start(node, state, filename)
            else:
                self._on_end(node, state, total, progress)

    def _on_start(self, node: ET.Element, state: _ScanState, filename: str | None) -> None:
        if not state.root_seen:
            state.root_seen = True
            if node.tag != ROOT_TAG:
                raise ParseError(
                    message=f"Not a Final Draft document: root element is <{node.tag}>",
                    hint=f"FDX files start with a <{ROOT_TAG}> element",
                    details={"file": filename, "root": node.tag},
                )
        if node.tag == DUAL_DIALOGUE_TAG:
            state.dual_depth += 1
        state.stack.append(node)

    def _on_end(
        self,
        node: ET.Element,
        state: _ScanState,
        total: int,
        progress: OperationProgress | None,
    ) -> None:
        state.stack.pop()
        if node.tag == DUAL_DIALOGUE_TAG:
            state.dual_depth -= 1
        elif node.tag == PARAGRAPH_TAG:
            region = paragraph_region(state.stack)
            if region is not None:
                self._on_paragraph(node, state, region)
                state.paragraphs += 1
            # Drop the finished paragraph from its parent to bound memory
            if state.stack:
                state.stack[-1].remove(node)
            node.clear()
            batch_size = self.settings.fdx_batch_size
            if (
                region is not None
                and progress is not None
                and state.paragraphs % batch_size == 0
            ):
                progress.check_cancelled("fdx")
                progress.update(
                    state.paragraphs, f"Parsing paragraph {state.paragraphs} of {total}"
                )

    def _on_paragraph(
        self, paragraph: ET.Element, state: _ScanState, region: str
    ) -> None:
        # The wrapper around a dual dialogue pair emits nothing itself
        if paragraph.find(DUAL_DIALOGUE_TAG) is not None:
            return

        text = paragraph_text(paragraph)
        paragraph_type = paragraph.get("Type")

        if region == "title":
            if not text.strip():
                return
            key = paragraph_type or DEFAULT_TITLE_KEY
            entry = state.title_page.get(key)
            if entry is None:
                entry = state.title_page[key] = TitlePageEntry(key)
            entry.values.append(text.strip())
            return

        element_type, level = map_paragraph_type(paragraph_type)
        if element_type is ElementType.SECTION_HEADING:
            text = f"{'#' * (level - 1)} {text.strip()}"
        state.elements.append(
            Element(
                element_type,
                text,
                section_level=level,
                scene_number=paragraph.get("Number")
                if element_type is ElementType.SCENE_HEADING
                else None,
                is_centered=paragraph.get("Alignment") == "Center",
                is_dual_dialogue=state.dual_depth > 0,
            )
        )
