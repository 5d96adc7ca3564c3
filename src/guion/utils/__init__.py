"""Utility modules for Guion."""

from guion.utils.screenplay import ScreenplayUtils

__all__ = ["ScreenplayUtils"]
