"""Screenplay-specific utility functions."""

from __future__ import annotations

import re

SCENE_NUMBER_PATTERN = re.compile(r"\s*#([^#\s]+)#\s*$")
MODIFIER_PATTERN = re.compile(r"\(([^)]*)\)")
CHARACTER_EXTENSION_PATTERN = re.compile(r"\s*\([^)]*\)")

# Longest prefixes first so INT./EXT. is not read as INT.
SCENE_PREFIXES: tuple[tuple[str, str], ...] = (
    ("INT./EXT.", "interior_exterior"),
    ("INT/EXT.", "interior_exterior"),
    ("INT./EXT ", "interior_exterior"),
    ("INT/EXT ", "interior_exterior"),
    ("EXT./INT.", "interior_exterior"),
    ("EXT/INT.", "interior_exterior"),
    ("I/E.", "interior_exterior"),
    ("I/E ", "interior_exterior"),
    ("INT.", "interior"),
    ("INT ", "interior"),
    ("EXT.", "exterior"),
    ("EXT ", "exterior"),
    ("EST.", "exterior"),
    ("EST ", "exterior"),
)

TIME_INDICATORS = [
    "MOMENTS LATER",
    "CONTINUOUS",
    "AFTERNOON",
    "MORNING",
    "EVENING",
    "SUNRISE",
    "SUNSET",
    "NIGHT",
    "DAWN",
    "DUSK",
    "NOON",
    "LATER",
    "DAY",
]


class ScreenplayUtils:
    """Utility functions for screenplay processing."""

    @staticmethod
    def split_scene_number(heading: str) -> tuple[str, str | None]:
        """Split a trailing ``#number#`` marker off a scene heading.

        Args:
            heading: Scene heading text (e.g., "INT. HOUSE - DAY #12A#")

        Returns:
            Tuple of (heading without the marker, scene number or None)
        """
        match = SCENE_NUMBER_PATTERN.search(heading)
        if not match:
            return heading, None
        return heading[: match.start()].rstrip(), match.group(1)

    @staticmethod
    def split_prefix(heading: str) -> tuple[str, str]:
        """Return the lighting kind and the text after the INT/EXT prefix."""
        stripped = heading.strip().lstrip(".")
        upper = stripped.upper()
        for prefix, lighting in SCENE_PREFIXES:
            if upper.startswith(prefix):
                return lighting, stripped[len(prefix) :].strip()
        return "unknown", stripped

    @staticmethod
    def extract_location(heading: str) -> str | None:
        """Extract location from scene heading.

        Args:
            heading: Scene heading text (e.g., "INT. COFFEE SHOP - DAY")

        Returns:
            Extracted location or None
        """
        if not heading:
            return None
        heading, _ = ScreenplayUtils.split_scene_number(heading)
        _, rest = ScreenplayUtils.split_prefix(heading)

        if " - " in rest:
            location, last = rest.rsplit(" - ", 1)
            if ScreenplayUtils.extract_time(last) is None:
                location = rest
            location = location.strip()
            return location or None

        if rest.startswith("- ") or rest == "-":
            return None
        return rest or None

    @staticmethod
    def extract_time(heading: str) -> str | None:
        """Extract time of day from scene heading.

        Args:
            heading: Scene heading text (e.g., "INT. COFFEE SHOP - DAY")

        Returns:
            Extracted time or None
        """
        if not heading:
            return None

        last_part = heading.upper().rsplit(" - ", 1)[-1]
        last_part = SCENE_NUMBER_PATTERN.sub("", last_part)
        if re.search(r"\bMIDNIGHT\b", last_part):
            return "NIGHT"
        for indicator in TIME_INDICATORS:
            if re.search(rf"\b{re.escape(indicator)}\b", last_part):
                return indicator
        return None

    @staticmethod
    def extract_modifiers(heading: str) -> list[str]:
        """Collect parenthesised modifiers such as ``(FLASHBACK)``."""
        return [m.strip() for m in MODIFIER_PATTERN.findall(heading) if m.strip()]

    @staticmethod
    def strip_modifiers(heading: str) -> str:
        """Remove parenthesised modifiers and collapse whitespace."""
        return " ".join(MODIFIER_PATTERN.sub("", heading).split())

    @staticmethod
    def normalize_character_name(cue: str) -> str:
        """Strip extensions and dual dialogue markers from a character cue.

        Args:
            cue: Character cue (e.g., "SARAH (V.O.) ^")

        Returns:
            Bare character name (e.g., "SARAH")
        """
        name = cue.strip().lstrip("@").rstrip("^").strip()
        name = CHARACTER_EXTENSION_PATTERN.sub("", name)
        return name.strip()
