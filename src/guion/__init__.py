"""Guion: ordered screenplay elements from Fountain, Final Draft and Highland.

Guion reads screenplay documents into one canonical sequence of typed
elements, keys every element with a composite ``(chapter_index,
order_index)`` pair so unordered stores can rebuild the document, and
exports the result as TextBundle or Highland files. Long operations share
one progress and cancellation protocol.
"""

from guion.config import GuionSettings, get_logger, get_settings
from guion.exceptions import CancellationError, GuionError
from guion.models import Element, ElementType, ParsedScreenplay, TitlePageEntry
from guion.ordering import assign_ordering, sort_elements
from guion.parser import FDXParser, FountainParser, load_screenplay
from guion.pipeline import BulkImporter, ScreenplayPipeline
from guion.progress import OperationProgress, ProgressUpdate

__version__ = "0.1.0"

__all__ = [
    "BulkImporter",
    "CancellationError",
    "Element",
    "ElementType",
    "FDXParser",
    "FountainParser",
    "GuionError",
    "GuionSettings",
    "OperationProgress",
    "ParsedScreenplay",
    "ProgressUpdate",
    "ScreenplayPipeline",
    "TitlePageEntry",
    "__version__",
    "assign_ordering",
    "get_logger",
    "get_settings",
    "load_screenplay",
    "sort_elements",
]
