# ingestion/document_structurer.py
"""Turn extracted document text into document JSON the pipeline can reuse."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from config import settings
from core.exceptions import JsonExtractionError, LLMServiceError, UnparsableJsonError
from core.llm_interface import llm_service, truncate_text_by_tokens
from models.document_models import DocumentType
from processing.json_repair import extract_json
from prompt_renderer import render_prompt

from ingestion.text_extractor import extract_plain_text

logger = structlog.get_logger(__name__)

MIN_STRUCTURABLE_LENGTH = 30
RAW_TEXT_LIMIT = 4000
THEME_MIN_LENGTH = 5
THEME_MAX_LENGTH = 100
_GENERIC_HEADING_RE = re.compile(
    r"^(prosit\s*(retour|aller|return)?|cer|sommaire|plan)$", re.IGNORECASE
)
_THEME_LABEL_RE = re.compile(r"th[eè]me?\s*[:：]\s*(.+)", re.IGNORECASE)


@dataclass
class StructuredDocument:
    data: dict[str, Any]
    doc_type: DocumentType
    preview: str


def _resolve_type(doc_type: DocumentType | str | None) -> DocumentType:
    if isinstance(doc_type, DocumentType):
        return doc_type
    if not doc_type or doc_type == "auto":
        return DocumentType.PROSIT_ALLER
    return DocumentType(doc_type)


def heuristic_extract(text: str) -> dict[str, Any]:
    """Best-effort document without the LLM: a theme line plus the raw text."""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    theme = next(
        (
            line
            for line in lines
            if THEME_MIN_LENGTH <= len(line) <= THEME_MAX_LENGTH
            and not _GENERIC_HEADING_RE.match(line)
        ),
        None,
    )
    if theme is None:
        match = _THEME_LABEL_RE.search(text)
        theme = match.group(1) if match else (lines[0] if lines else "Thème non détecté")
    return {"theme": theme.strip(), "raw_text": text[:RAW_TEXT_LIMIT]}


async def structure_document(
    text: str | None, doc_type: DocumentType | str | None = None
) -> StructuredDocument:
    """Extract document JSON of ``doc_type`` from free text.

    Short texts and any LLM or extraction failure fall back to
    :func:`heuristic_extract`.
    """
    source = text if isinstance(text, str) else str(text or "")
    resolved = _resolve_type(doc_type)
    preview = f"Type: {resolved.value} · Length: {len(source)} characters"

    if len(source.strip()) < MIN_STRUCTURABLE_LENGTH:
        return StructuredDocument(
            heuristic_extract(source), resolved, preview + " · Not enough content"
        )

    system_prompt = render_prompt(f"structurer/{resolved.value}.j2", {})
    user_prompt = render_prompt(
        "structurer/user.j2",
        {"text": truncate_text_by_tokens(source, settings.MAX_STRUCTURING_SOURCE_TOKENS)},
    )
    try:
        raw = await llm_service.complete(
            system_prompt,
            [{"role": "user", "content": user_prompt}],
            settings.MAX_STRUCTURING_TOKENS,
            temperature=settings.TEMPERATURE_STRUCTURING,
        )
        data = extract_json(raw)
        if not isinstance(data, dict):
            raise UnparsableJsonError("Structured document is not a JSON object.")
    except (LLMServiceError, JsonExtractionError) as exc:
        logger.warning(
            f"Structuring a {resolved.value} failed; using the heuristic fallback.",
            error=str(exc),
        )
        return StructuredDocument(
            heuristic_extract(source), resolved, preview + " · Fallback (LLM error)"
        )
    return StructuredDocument(data, resolved, preview)


async def load_document(
    path: str | Path, doc_type: DocumentType | str | None = None
) -> dict[str, Any]:
    """Read a document file and return its JSON for injection into a run."""
    file_path = Path(path)
    loop = asyncio.get_running_loop()
    file_bytes = await loop.run_in_executor(None, file_path.read_bytes)
    extracted = extract_plain_text(file_bytes, file_path.name)
    if extracted.is_json_like:
        data = extract_json(extracted.text)
        if not isinstance(data, dict):
            raise UnparsableJsonError(f"{file_path.name} does not hold a JSON object.")
        logger.info(f"Loaded {file_path.name} as document JSON.")
        return data
    structured = await structure_document(extracted.text, doc_type)
    logger.info(f"Structured {file_path.name}: {structured.preview}")
    return structured.data
