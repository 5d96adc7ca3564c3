"""Ordered persistence for parsed screenplays."""

from guion.storage.element_store import ElementStore

__all__ = ["ElementStore"]
