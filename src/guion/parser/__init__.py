"""Screenplay parsers for Fountain, Final Draft and Highland/TextBundle input."""

from guion.parser.bundle_resolver import BundleResolver, load_screenplay
from guion.parser.fdx_parser import FDXParser
from guion.parser.fountain_parser import FountainParser
from guion.parser.line_classifier import LineContext, classify_line

__all__ = [
    "BundleResolver",
    "FDXParser",
    "FountainParser",
    "LineContext",
    "classify_line",
    "load_screenplay",
]
