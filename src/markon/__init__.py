"""Markon - local Markdown preview with live search and shared annotations."""

__version__ = "0.1.0"
