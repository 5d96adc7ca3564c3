"""Canonical screenplay element model shared by every parser and exporter."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from guion.utils.screenplay import ScreenplayUtils


class ElementType(str, Enum):
    """Closed set of screenplay element kinds."""

    SCENE_HEADING = "Scene Heading"
    ACTION = "Action"
    CHARACTER = "Character"
    DIALOGUE = "Dialogue"
    PARENTHETICAL = "Parenthetical"
    LYRICS = "Lyrics"
    TRANSITION = "Transition"
    SECTION_HEADING = "Section Heading"
    SYNOPSIS = "Synopsis"
    COMMENT = "Comment"
    BONEYARD = "Boneyard"
    PAGE_BREAK = "Page Break"

    @property
    def is_dialogue_part(self) -> bool:
        """True for the element kinds that live inside a dialogue block."""
        return self in _DIALOGUE_PARTS


_DIALOGUE_PARTS = frozenset(
    {ElementType.DIALOGUE, ElementType.PARENTHETICAL, ElementType.LYRICS}
)


class SceneLighting(str, Enum):
    """Interior/exterior marker of a scene heading."""

    INTERIOR = "interior"
    EXTERIOR = "exterior"
    INTERIOR_EXTERIOR = "interior_exterior"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SceneLocation:
    """Parsed components of a scene heading.

    ``INT. HOUSE - KITCHEN - NIGHT (FLASHBACK)`` parses to lighting
    interior, scene ``HOUSE``, setup ``KITCHEN``, time of day ``NIGHT`` and
    modifiers ``["FLASHBACK"]``.
    """

    lighting: SceneLighting
    scene: str
    original_text: str
    setup: str | None = None
    time_of_day: str | None = None
    modifiers: tuple[str, ...] = ()

    @classmethod
    def parse(cls, heading: str) -> SceneLocation:
        text, _ = ScreenplayUtils.split_scene_number(heading.strip())
        modifiers = tuple(ScreenplayUtils.extract_modifiers(text))
        bare = ScreenplayUtils.strip_modifiers(text)
        lighting, _ = ScreenplayUtils.split_prefix(bare)
        location = ScreenplayUtils.extract_location(bare) or ""
        scene, _, setup = location.partition(" - ")
        return cls(
            lighting=SceneLighting(lighting),
            scene=scene.strip(),
            setup=setup.strip() or None,
            time_of_day=ScreenplayUtils.extract_time(bare),
            modifiers=modifiers,
            original_text=heading,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "lighting": self.lighting.value,
            "scene": self.scene,
            "setup": self.setup,
            "time_of_day": self.time_of_day,
            "modifiers": list(self.modifiers),
        }


@dataclass
class Element:
    """One screenplay unit in document order.

    ``section_level`` is 1-6 for section headings and 0 for everything
    else. ``chapter_index`` and ``order_index`` form the composite key that
    reproduces document order; they are assigned by
    :func:`guion.ordering.assign_ordering` and are the only fields mutated
    after parsing. ``scene_id`` is generated for scene headings and does not
    take part in equality.
    """

    element_type: ElementType
    element_text: str
    section_level: int = 0
    scene_number: str | None = None
    scene_id: str | None = field(default=None, compare=False)
    is_centered: bool = False
    is_dual_dialogue: bool = False
    chapter_index: int = 0
    order_index: int = 0
    _location: SceneLocation | None = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        self.element_type = ElementType(self.element_type)
        if self.element_type is ElementType.SECTION_HEADING:
            if not 1 <= self.section_level <= 6:
                raise ValueError(
                    f"Section heading level must be between 1 and 6, "
                    f"got {self.section_level}"
                )
        elif self.section_level:
            raise ValueError(
                f"{self.element_type.value} elements cannot carry a section level"
            )
        if self.element_type is ElementType.SCENE_HEADING and self.scene_id is None:
            self.scene_id = str(uuid.uuid4())

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.chapter_index, self.order_index)

    @property
    def location(self) -> SceneLocation | None:
        """Parsed scene location, cached after first access."""
        if self.element_type is not ElementType.SCENE_HEADING:
            return None
        if self._location is None:
            self._location = SceneLocation.parse(self.element_text)
        return self._location

    def to_dict(self) -> dict[str, Any]:
        return {
            "element_type": self.element_type.value,
            "element_text": self.element_text,
            "section_level": self.section_level,
            "scene_number": self.scene_number,
            "scene_id": self.scene_id,
            "is_centered": self.is_centered,
            "is_dual_dialogue": self.is_dual_dialogue,
            "chapter_index": self.chapter_index,
            "order_index": self.order_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Element:
        return cls(
            element_type=ElementType(data["element_type"]),
            element_text=data.get("element_text", ""),
            section_level=int(data.get("section_level") or 0),
            scene_number=data.get("scene_number"),
            scene_id=data.get("scene_id"),
            is_centered=bool(data.get("is_centered", False)),
            is_dual_dialogue=bool(data.get("is_dual_dialogue", False)),
            chapter_index=int(data.get("chapter_index", 0)),
            order_index=int(data.get("order_index", 0)),
        )


@dataclass
class TitlePageEntry:
    """A title page key with its ordered value lines."""

    key: str
    values: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "values": list(self.values)}


@dataclass
class ParsedScreenplay:
    """Canonical parser output: title page entries then elements in order."""

    filename: str | None = None
    elements: list[Element] = field(default_factory=list)
    title_page: list[TitlePageEntry] = field(default_factory=list)
    suppress_scene_numbers: bool = False

    def title_page_value(self, key: str) -> str | None:
        """Return the joined values of a title page key (case-insensitive)."""
        wanted = key.lower()
        for entry in self.title_page:
            if entry.key.lower() == wanted:
                return "\n".join(entry.values)
        return None

    @property
    def title(self) -> str | None:
        return self.title_page_value("Title")

    def sorted_elements(self) -> list[Element]:
        """Elements sorted by their composite ordering key."""
        return sorted(self.elements, key=lambda element: element.sort_key)

    def to_fountain(self) -> str:
        from guion.export.fountain_writer import FountainWriter

        return FountainWriter().document(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "suppress_scene_numbers": self.suppress_scene_numbers,
            "title_page": [entry.to_dict() for entry in self.title_page],
            "elements": [element.to_dict() for element in self.elements],
        }

    def extract_characters(self) -> dict[str, dict[str, Any]]:
        """Collect speaking characters with their scenes and dialogue counts.

        Returns:
            Mapping of character name to a dict with ``scenes`` (scene ids in
            order of appearance), ``dialogue_lines``, ``dialogue_words`` and
            ``first_appearance``.
        """
        characters: dict[str, dict[str, Any]] = {}
        scene_id: str | None = None
        speaker: str | None = None

        for element in self.elements:
            kind = element.element_type
            if kind is ElementType.SCENE_HEADING:
                scene_id = element.scene_id
                speaker = None
            elif kind is ElementType.CHARACTER:
                speaker = ScreenplayUtils.normalize_character_name(element.element_text)
                if not speaker:
                    speaker = None
                    continue
                info = characters.setdefault(
                    speaker,
                    {
                        "scenes": [],
                        "dialogue_lines": 0,
                        "dialogue_words": 0,
                        "first_appearance": scene_id,
                    },
                )
                if scene_id is not None and scene_id not in info["scenes"]:
                    info["scenes"].append(scene_id)
            elif kind is ElementType.DIALOGUE and speaker is not None:
                info = characters[speaker]
                info["dialogue_lines"] += len(element.element_text.splitlines()) or 1
                info["dialogue_words"] += len(element.element_text.split())
            elif not kind.is_dialogue_part:
                speaker = None

        return characters

    def extract_locations(self) -> list[dict[str, Any]]:
        """Unique scene heading locations in order of first appearance."""
        locations: dict[str, dict[str, Any]] = {}
        for element in self.elements:
            location = element.location
            if location is None:
                continue
            key = element.element_text
            entry = locations.get(key)
            if entry is None:
                entry = {"raw_location": key, **location.to_dict(), "scene_ids": []}
                locations[key] = entry
            if element.scene_id and element.scene_id not in entry["scene_ids"]:
                entry["scene_ids"].append(element.scene_id)
        return list(locations.values())
