# ingestion/text_extractor.py
"""Plain-text extraction from uploaded JSON, text and Office files."""

from __future__ import annotations

import io
from dataclasses import dataclass

import structlog
from core.exceptions import UnsupportedFormatError
from docx import Document as DocxDocument
from pptx import Presentation

logger = structlog.get_logger(__name__)

LEGACY_OFFICE_EXTENSIONS = {"doc", "ppt"}


@dataclass
class ExtractedText:
    text: str
    kind: str
    is_json_like: bool


def _extension(filename: str | None) -> str:
    name = filename or ""
    return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def _decode(file_bytes: bytes) -> str:
    return file_bytes.decode("utf-8", errors="replace")


def _docx_text(file_bytes: bytes) -> str:
    document = DocxDocument(io.BytesIO(file_bytes))
    parts = [p.text.strip() for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))
    return "\n".join(parts)


def _pptx_text(file_bytes: bytes) -> str:
    presentation = Presentation(io.BytesIO(file_bytes))
    blocks: list[str] = []
    for number, slide in enumerate(presentation.slides, start=1):
        texts = [
            shape.text.strip()
            for shape in slide.shapes
            if getattr(shape, "has_text_frame", False) and shape.text.strip()
        ]
        if texts:
            blocks.append(f"[Slide {number}]\n" + "\n".join(texts))
    return "\n\n".join(blocks)


def extract_plain_text(file_bytes: bytes, filename: str | None) -> ExtractedText:
    """Return the text of an uploaded file and whether it looks like JSON.

    Raises:
        UnsupportedFormatError: For legacy binary ``.doc``/``.ppt`` files or
            Office files that cannot be opened.
    """
    ext = _extension(filename)
    if ext == "json":
        return ExtractedText(_decode(file_bytes), "json", True)
    if ext == "txt":
        return ExtractedText(_decode(file_bytes), "txt", False)
    if ext in LEGACY_OFFICE_EXTENSIONS:
        raise UnsupportedFormatError(
            f"Legacy .{ext} files are not supported; save {filename} as .{ext}x."
        )
    if ext in ("docx", "pptx"):
        try:
            text = _docx_text(file_bytes) if ext == "docx" else _pptx_text(file_bytes)
        except Exception as exc:
            logger.error(f"Could not read {filename}: {exc}")
            raise UnsupportedFormatError(f"Could not read {filename}: {exc}") from exc
        logger.debug(f"Extracted {len(text)} characters from {filename}.")
        return ExtractedText(text, ext, False)

    text = _decode(file_bytes)
    stripped = text.lstrip()
    return ExtractedText(text, ext or "unknown", stripped.startswith(("{", "[")))
