# utils/text_processing.py
"""Small text helpers shared by the pipeline, renderers and import feature."""

from __future__ import annotations

import re
import unicodedata

SLUG_MAX_LENGTH = 35
SLUG_FALLBACK = "prosit"


def slugify(text: str | None, max_length: int = SLUG_MAX_LENGTH) -> str:
    """Return a filesystem-safe slug for ``text``.

    Accents are stripped, the result is lowercase, runs of other characters
    become a single underscore and the slug is cut to ``max_length``.
    """
    if not isinstance(text, str):
        text = "" if text is None else str(text)
    decomposed = unicodedata.normalize("NFD", text.lower())
    ascii_text = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    slug = re.sub(r"[^a-z0-9]+", "_", ascii_text).strip("_")
    slug = slug[:max_length].strip("_")
    return slug or SLUG_FALLBACK


def split_paragraphs(text: str | None) -> list[str]:
    """Split ``text`` on blank lines, dropping empty chunks."""
    if not text:
        return []
    return [chunk.strip() for chunk in re.split(r"\n\s*\n", text) if chunk.strip()]

