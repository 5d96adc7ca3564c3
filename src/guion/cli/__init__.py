"""Guion CLI package."""

from guion.cli.main import app, main

__all__ = ["app", "main"]
