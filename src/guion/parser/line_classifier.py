"""Classification of single Fountain lines into provisional element tags."""

from __future__ import annotations

import re
from dataclasses import dataclass

from guion.models import ElementType
from guion.utils.screenplay import CHARACTER_EXTENSION_PATTERN, ScreenplayUtils

PAGE_BREAK_PATTERN = re.compile(r"^={3,}$")
SCENE_HEADING_PATTERN = re.compile(
    r"^(?:INT\.?/EXT|EXT\.?/INT|INT|EXT|EST|I/E)(?:\.|\s)", re.IGNORECASE
)
TITLE_KEY_PATTERN = re.compile(r"^([A-Za-z][A-Za-z0-9 _'-]*):(.*)$")

# "#" opens level 2; level 1 stays reserved for the document title
SECTION_LEVEL_OFFSET = 1
MAX_SECTION_LEVEL = 6
MAX_CHARACTER_LENGTH = 50


@dataclass(frozen=True)
class LineContext:
    """Lookbehind and lookahead needed to classify one line."""

    previous_blank: bool = True
    next_blank: bool = True
    in_dialogue: bool = False


@dataclass(frozen=True)
class LineClassification:
    """Provisional tag for one line.

    ``element_type`` is None for blank lines.
    """

    element_type: ElementType | None
    text: str = ""
    section_level: int = 0
    scene_number: str | None = None
    is_centered: bool = False
    is_dual_dialogue: bool = False
    forced: bool = False

    @property
    def is_blank(self) -> bool:
        return self.element_type is None


BLANK = LineClassification(None)


def section_level_for(hashes: int) -> int:
    """Section level for a heading written with ``hashes`` leading ``#``."""
    return min(hashes + SECTION_LEVEL_OFFSET, MAX_SECTION_LEVEL)


def is_scene_heading(text: str) -> bool:
    return bool(SCENE_HEADING_PATTERN.match(text))


def is_transition(text: str) -> bool:
    return text.endswith("TO:") and text == text.upper()


def is_character_cue(text: str) -> bool:
    """True when text reads as a character cue, ignoring surrounding lines."""
    name = text[:-1].rstrip() if text.endswith("^") else text
    if not name or len(name) > MAX_CHARACTER_LENGTH:
        return False
    if name.endswith((".", ":")):
        return False
    base = CHARACTER_EXTENSION_PATTERN.sub("", name).strip()
    if not any(ch.isalpha() for ch in base):
        return False
    return base == base.upper()


def _scene_heading(text: str, forced: bool) -> LineClassification:
    heading, number = ScreenplayUtils.split_scene_number(text)
    return LineClassification(
        ElementType.SCENE_HEADING, heading, scene_number=number, forced=forced
    )


def _character(text: str, forced: bool) -> LineClassification:
    dual = text.endswith("^")
    if dual:
        text = text[:-1].rstrip()
    return LineClassification(
        ElementType.CHARACTER, text, is_dual_dialogue=dual, forced=forced
    )


def _wrapped(text: str, opener: str, closer: str) -> bool:
    return (
        text.startswith(opener)
        and text.endswith(closer)
        and len(text) >= len(opener) + len(closer)
    )


def classify_line(line: str, context: LineContext | None = None) -> LineClassification:
    """Classify one line of Fountain text.

    Total over all input: anything unrecognised is action.

    Args:
        line: Raw line without its newline.
        context: Surrounding-line facts; defaults to a line standing alone
            between blank lines, outside dialogue.

    Returns:
        The provisional classification with the line's element text.
    """
    if context is None:
        context = LineContext()
    text = line.strip()
    if not text:
        return BLANK

    if PAGE_BREAK_PATTERN.match(text):
        return LineClassification(ElementType.PAGE_BREAK)

    if _wrapped(text, "[[", "]]"):
        return LineClassification(ElementType.COMMENT, text[2:-2].strip())
    if _wrapped(text, "/*", "*/"):
        return LineClassification(ElementType.BONEYARD, text[2:-2].strip())

    if context.in_dialogue:
        if text.startswith("~"):
            return LineClassification(ElementType.LYRICS, text[1:].strip(), forced=True)
        if _wrapped(text, "(", ")"):
            return LineClassification(ElementType.PARENTHETICAL, text)
        return LineClassification(ElementType.DIALOGUE, text)

    first = text[0]
    if first == "!":
        return LineClassification(ElementType.ACTION, text[1:].strip(), forced=True)
    if first == "@":
        return _character(text[1:].strip(), forced=True)
    if first == "~":
        return LineClassification(ElementType.LYRICS, text[1:].strip(), forced=True)
    if first == "=":
        return LineClassification(ElementType.SYNOPSIS, text[1:].strip(), forced=True)
    if first == "#":
        hashes = len(text) - len(text.lstrip("#"))
        return LineClassification(
            ElementType.SECTION_HEADING,
            text,
            section_level=section_level_for(hashes),
            forced=True,
        )
    if first == ">":
        if text.endswith("<") and len(text) > 1:
            return LineClassification(
                ElementType.ACTION, text[1:-1].strip(), is_centered=True, forced=True
            )
        return LineClassification(ElementType.TRANSITION, text[1:].strip(), forced=True)
    if first == "." and not text.startswith(".."):
        return _scene_heading(text[1:].strip(), forced=True)

    if is_scene_heading(text):
        return _scene_heading(text, forced=False)
    if is_transition(text) and context.previous_blank and context.next_blank:
        return LineClassification(ElementType.TRANSITION, text)
    if is_character_cue(text) and context.previous_blank and not context.next_blank:
        return _character(text, forced=False)

    return LineClassification(ElementType.ACTION, text)
