"""Serialise the canonical element model back to Fountain text.

Output re-parses to the same element sequence: wherever a line would be read
as something other than the element it came from, the writer adds the
Fountain forcing marker for that element (``!``, ``@``, ``.`` or ``>``).
"""

from __future__ import annotations

from collections.abc import Sequence

from guion.models import Element, ElementType, ParsedScreenplay, TitlePageEntry
from guion.parser.fountain_parser import parse_title_page
from guion.parser.line_classifier import (
    LineContext,
    classify_line,
    is_scene_heading,
    is_transition,
)

TITLE_PAGE_INDENT = "    "
PAGE_BREAK = "==="


def _opens_multiline_block(line: str) -> bool:
    stripped = line.strip()
    return (stripped.startswith("/*") and "*/" not in stripped) or (
        stripped.startswith("[[") and "]]" not in stripped
    )


class FountainWriter:
    """Render a :class:`ParsedScreenplay` as Fountain text."""

    def document(self, screenplay: ParsedScreenplay) -> str:
        """Render title page and body."""
        # A key without values would not read back as a title page
        entries = [entry for entry in screenplay.title_page if entry.values]
        body = self.body(screenplay.elements, guard_title_page=not entries)
        if not entries:
            return body
        title = self.title_page(entries)
        if not body:
            return title
        return f"{title}\n{body}"

    def title_page(self, entries: Sequence[TitlePageEntry]) -> str:
        lines: list[str] = []
        for entry in entries:
            if len(entry.values) == 1:
                lines.append(f"{entry.key}: {entry.values[0]}")
            else:
                lines.append(f"{entry.key}:")
                lines.extend(f"{TITLE_PAGE_INDENT}{value}" for value in entry.values)
        return "\n".join(lines) + "\n"

    def body(self, elements: Sequence[Element], guard_title_page: bool = True) -> str:
        """Render elements, one blank line between blocks.

        Args:
            elements: Elements in document order.
            guard_title_page: Force the first line when it would otherwise be
                read as a title page key.
        """
        blocks: list[str] = []
        index = 0
        while index < len(elements):
            element = elements[index]
            if element.element_type is ElementType.CHARACTER:
                end = self._dialogue_block_end(elements, index)
                block = self._dialogue_block(elements[index:end])
                index = end
            else:
                block = self.render(element)
                index += 1
            if block is None:
                continue
            if not blocks and guard_title_page:
                block = self._guard_first_line(element, block)
            blocks.append(block)
        if not blocks:
            return ""
        return "\n\n".join(blocks) + "\n"

    def render(self, element: Element) -> str | None:
        """Render one element outside a dialogue block."""
        text = element.element_text
        kind = element.element_type

        if kind is ElementType.SCENE_HEADING:
            line = text if is_scene_heading(text) else f".{text}"
            if element.scene_number:
                line = f"{line} #{element.scene_number}#"
            return line
        if kind is ElementType.ACTION:
            if element.is_centered:
                return f"> {text} <"
            return self._action(text)
        if kind is ElementType.CHARACTER:
            return self._character(element, has_dialogue=False)
        if kind is ElementType.DIALOGUE:
            return text or None
        if kind is ElementType.PARENTHETICAL:
            return text
        if kind is ElementType.LYRICS:
            return "\n".join(f"~{line}" for line in text.split("\n"))
        if kind is ElementType.TRANSITION:
            return text if is_transition(text) else f"> {text}"
        if kind is ElementType.SECTION_HEADING:
            if text.startswith("#"):
                return text
            return f"{'#' * max(element.section_level - 1, 1)} {text}"
        if kind is ElementType.SYNOPSIS:
            return f"= {text}"
        if kind is ElementType.COMMENT:
            return f"[[{text}]]"
        if kind is ElementType.BONEYARD:
            return f"/*{text}*/"
        return PAGE_BREAK

    @staticmethod
    def _dialogue_block_end(elements: Sequence[Element], start: int) -> int:
        end = start + 1
        while end < len(elements):
            kind = elements[end].element_type
            if kind.is_dialogue_part:
                end += 1
                continue
            if kind in (ElementType.COMMENT, ElementType.BONEYARD):
                lookahead = end + 1
                while lookahead < len(elements) and elements[lookahead].element_type in (
                    ElementType.COMMENT,
                    ElementType.BONEYARD,
                ):
                    lookahead += 1
                if (
                    lookahead < len(elements)
                    and elements[lookahead].element_type.is_dialogue_part
                ):
                    end = lookahead
                    continue
            break
        return end

    def _dialogue_block(self, block: Sequence[Element]) -> str:
        cue, parts = block[0], block[1:]
        lines = [self._character(cue, has_dialogue=bool(parts))]
        for part in parts:
            rendered = self.render(part)
            if rendered:
                lines.append(rendered)
        return "\n".join(lines)

    @staticmethod
    def _character(element: Element, has_dialogue: bool) -> str:
        text = element.element_text
        classified = classify_line(text, LineContext(previous_blank=True, next_blank=False))
        natural = (
            has_dialogue
            and classified.element_type is ElementType.CHARACTER
            and not classified.forced
            and classified.text == text
        )
        line = text if natural else f"@{text}"
        if element.is_dual_dialogue:
            line = f"{line} ^"
        return line

    @staticmethod
    def _action(text: str) -> str:
        lines = text.split("\n")
        last = len(lines) - 1
        rendered: list[str] = []
        for position, line in enumerate(lines):
            classified = classify_line(
                line,
                LineContext(previous_blank=position == 0, next_blank=position == last),
            )
            natural = (
                classified.element_type is ElementType.ACTION
                and not classified.forced
                and not classified.is_centered
                and classified.text == line
                and not _opens_multiline_block(line)
            )
            rendered.append(line if natural else f"!{line}")
        return "\n".join(rendered)

    @staticmethod
    def _guard_first_line(element: Element, block: str) -> str:
        entries, _ = parse_title_page(block.split("\n"))
        if not entries:
            return block
        if element.element_type is ElementType.ACTION:
            return f"!{block}"
        if element.element_type is ElementType.TRANSITION:
            return f"> {element.element_text}"
        return block
