"""Splice CLI - Command-line tools for exporting video sequences."""

__version__ = "0.1.0"
