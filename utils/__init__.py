# utils/__init__.py
"""General utility functions for the Prosit generation system."""

from .logging import setup_logging
from .text_processing import slugify, split_paragraphs

__all__ = [
    "setup_logging",
    "slugify",
    "split_paragraphs",
]
