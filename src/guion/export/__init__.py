"""Fountain serialisation and TextBundle/Highland export."""

from guion.export.chunked import write_bytes_chunked
from guion.export.fountain_writer import FountainWriter
from guion.export.textbundle import TextBundleWriter

__all__ = ["FountainWriter", "TextBundleWriter", "write_bytes_chunked"]
