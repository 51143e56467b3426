"""Command-line interface for collection payments."""

from .collection_cli import app

__all__ = ["app"]
