"""Tests for Fountain serialisation."""

import pytest

from guion.export import FountainWriter
from guion.models import Element, ElementType, ParsedScreenplay, TitlePageEntry
from guion.ordering import assign_ordering
from guion.parser import FDXParser, FountainParser


def comparable(screenplay: ParsedScreenplay) -> list[dict]:
    rows = []
    for element in screenplay.elements:
        row = element.to_dict()
        row.pop("scene_id")
        rows.append(row)
    return rows


def reparse(screenplay: ParsedScreenplay) -> ParsedScreenplay:
    return FountainParser().parse_string(FountainWriter().document(screenplay))


class TestRoundTrip:
    """Writer output parses back to the same elements."""

    def test_coffee_shop(self, sample_fountain):
        original = FountainParser().parse_string(sample_fountain)
        again = reparse(original)

        assert comparable(again) == comparable(original)
        assert again.title_page == original.title_page

    def test_chapters(self, chaptered_fountain):
        original = FountainParser().parse_string(chaptered_fountain)
        again = reparse(original)

        assert [e.sort_key for e in again.elements] == [
            e.sort_key for e in original.elements
        ]
        assert comparable(again) == comparable(original)

    def test_fdx_source(self, sample_fdx):
        original = FDXParser().parse(sample_fdx)
        again = reparse(original)

        assert comparable(again) == comparable(original)
        assert again.title_page_value("Author") == "Sam Rivera\nAlex Kim"

    def test_to_fountain_shortcut(self, sample_fountain):
        screenplay = FountainParser().parse_string(sample_fountain)
        assert screenplay.to_fountain() == FountainWriter().document(screenplay)


class TestForcingMarkers:
    """Lines that would be misread get a forcing marker."""

    @pytest.fixture
    def writer(self):
        return FountainWriter()

    def test_all_caps_action_line_forced(self, writer):
        element = Element(ElementType.ACTION, "BANG\nHe falls.")
        assert writer.render(element) == "!BANG\nHe falls."

    def test_lone_all_caps_action_untouched(self, writer):
        assert writer.render(Element(ElementType.ACTION, "BANG")) == "BANG"

    def test_action_that_looks_like_scene_heading(self, writer):
        element = Element(ElementType.ACTION, "INT. ROOM - DAY")
        assert writer.render(element) == "!INT. ROOM - DAY"

    def test_plain_action_untouched(self, writer):
        element = Element(ElementType.ACTION, "John walks in.\nHe sits.")
        assert writer.render(element) == "John walks in.\nHe sits."

    def test_non_standard_scene_heading(self, writer):
        element = Element(ElementType.SCENE_HEADING, "BRICK'S POOL")
        assert writer.render(element) == ".BRICK'S POOL"

    def test_scene_number_appended(self, writer):
        element = Element(ElementType.SCENE_HEADING, "INT. ROOM - DAY", scene_number="4A")
        assert writer.render(element) == "INT. ROOM - DAY #4A#"

    def test_non_standard_transition(self, writer):
        element = Element(ElementType.TRANSITION, "Smash to black")
        assert writer.render(element) == "> Smash to black"

    def test_lowercase_character_forced(self, writer):
        elements = [
            Element(ElementType.CHARACTER, "McCLANE"),
            Element(ElementType.DIALOGUE, "Yippee."),
        ]
        assert writer.body(elements) == "@McCLANE\nYippee.\n"

    def test_dual_dialogue_marker(self, writer):
        elements = [
            Element(ElementType.CHARACTER, "BOB", is_dual_dialogue=True),
            Element(ElementType.DIALOGUE, "Hi.", is_dual_dialogue=True),
        ]
        assert writer.body(elements) == "BOB ^\nHi.\n"

    def test_character_without_dialogue_forced(self, writer):
        element = Element(ElementType.CHARACTER, "ALICE")
        assert writer.render(element) == "@ALICE"

    def test_centered_and_markup_blocks(self, writer):
        assert writer.render(Element(ElementType.ACTION, "THE END", is_centered=True)) == (
            "> THE END <"
        )
        assert writer.render(Element(ElementType.SYNOPSIS, "A summary")) == "= A summary"
        assert writer.render(Element(ElementType.COMMENT, "note")) == "[[note]]"
        assert writer.render(Element(ElementType.BONEYARD, "gone")) == "/*gone*/"
        assert writer.render(Element(ElementType.PAGE_BREAK, "")) == "==="
        assert writer.render(Element(ElementType.LYRICS, "la\nla")) == "~la\n~la"

    def test_section_heading_without_hashes(self, writer):
        element = Element(ElementType.SECTION_HEADING, "Act One", section_level=3)
        assert writer.render(element) == "## Act One"

    def test_first_line_title_key_guarded(self, writer):
        elements = [Element(ElementType.ACTION, "Note: this is action")]
        assert writer.body(elements).startswith("!Note: this is action")

    def test_fade_in_opening_left_unforced(self, writer):
        elements = [
            Element(ElementType.ACTION, "FADE IN:"),
            Element(ElementType.SCENE_HEADING, "INT. ROOM - DAY"),
        ]
        text = writer.body(elements)

        assert text.startswith("FADE IN:\n\n")
        reparsed = FountainParser().parse_string(text)
        assert reparsed.title_page == []
        assert [e.element_text for e in reparsed.elements] == [
            "FADE IN:",
            "INT. ROOM - DAY",
        ]

    def test_forced_lines_round_trip(self, writer):
        elements = assign_ordering(
            [
                Element(ElementType.ACTION, "BANG\nHe falls."),
                Element(ElementType.SCENE_HEADING, "BRICK'S POOL"),
                Element(ElementType.CHARACTER, "McCLANE"),
                Element(ElementType.DIALOGUE, "Yippee."),
                Element(ElementType.TRANSITION, "Smash to black"),
            ]
        )
        screenplay = ParsedScreenplay(elements=elements)

        assert comparable(reparse(screenplay)) == comparable(screenplay)


class TestTitlePage:
    """Title page rendering."""

    def test_single_and_multi_value(self):
        text = FountainWriter().title_page(
            [
                TitlePageEntry("Title", ["Big Fish"]),
                TitlePageEntry("Contact", ["Studio", "me@example.com"]),
            ]
        )
        assert text == "Title: Big Fish\nContact:\n    Studio\n    me@example.com\n"

    def test_empty_screenplay(self):
        assert FountainWriter().document(ParsedScreenplay()) == ""

    def test_keys_without_values_dropped(self):
        screenplay = ParsedScreenplay(
            title_page=[TitlePageEntry("Title", ["Alone"]), TitlePageEntry("Draft")],
            elements=[Element(ElementType.ACTION, "Rain.")],
        )
        text = FountainWriter().document(screenplay)

        assert text == "Title: Alone\n\nRain.\n"
        assert FountainParser().parse_string(text).title == "Alone"

    def test_title_page_only(self):
        screenplay = ParsedScreenplay(title_page=[TitlePageEntry("Title", ["Alone"])])
        assert FountainWriter().document(screenplay) == "Title: Alone\n"
