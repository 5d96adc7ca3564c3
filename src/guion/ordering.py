"""Composite (chapter_index, order_index) keys for document-ordered elements.

Stores that keep no list order rebuild a screenplay by sorting on the pair
``(chapter_index, order_index)``. Chapters are opened by section headings at
one designated level; every other element, including section headings at
other levels, is numbered inside the current chapter. Elements that precede
the first chapter heading belong to chapter 0.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from guion.models import Element, ElementType
from guion.progress import OperationProgress, check_cancelled

DEFAULT_CHAPTER_LEVEL = 2
DEFAULT_ORDER_BASE = 1

# Elements keyed between two cancellation checks
ORDERING_BATCH_SIZE = 500


def is_chapter_heading(
    element: Element, chapter_level: int = DEFAULT_CHAPTER_LEVEL
) -> bool:
    return (
        element.element_type is ElementType.SECTION_HEADING
        and element.section_level == chapter_level
    )


def assign_ordering(
    elements: list[Element],
    chapter_level: int = DEFAULT_CHAPTER_LEVEL,
    base: int = DEFAULT_ORDER_BASE,
    progress: OperationProgress | None = None,
) -> list[Element]:
    """Assign composite ordering keys in place.

    The list must be in document order. Re-running on the same list yields
    the same keys.

    Args:
        elements: Elements in document order.
        chapter_level: Section heading level that opens a new chapter.
        base: First order index inside each chapter.
        progress: Optional progress handle polled for cancellation.

    Returns:
        The same list, for chaining.

    Raises:
        CancellationError: If the progress handle was cancelled.
    """
    current_chapter = 0
    counter = base
    for position, element in enumerate(elements):
        if position % ORDERING_BATCH_SIZE == 0:
            check_cancelled(progress, "ordering")
        if is_chapter_heading(element, chapter_level):
            current_chapter += 1
            counter = base
        element.chapter_index = current_chapter
        element.order_index = counter
        counter += 1
    return elements


def sort_elements(elements: Iterable[Element]) -> list[Element]:
    """Return elements sorted by their composite key."""
    return sorted(elements, key=lambda element: element.sort_key)


def is_document_ordered(elements: Sequence[Element]) -> bool:
    """True when keys strictly increase along the sequence."""
    return all(
        earlier.sort_key < later.sort_key
        for earlier, later in zip(elements, elements[1:], strict=False)
    )


def chapter_ranges(elements: Sequence[Element]) -> dict[int, tuple[int, int]]:
    """Map each chapter index to its (first, last) order index."""
    ranges: dict[int, tuple[int, int]] = {}
    for element in elements:
        first, last = ranges.get(
            element.chapter_index, (element.order_index, element.order_index)
        )
        ranges[element.chapter_index] = (
            min(first, element.order_index),
            max(last, element.order_index),
        )
    return ranges
