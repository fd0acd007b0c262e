import io
import json

import docx
import pytest
from core.exceptions import LLMServiceError, UnparsableJsonError, UnsupportedFormatError
from ingestion import document_structurer
from ingestion.document_structurer import (
    heuristic_extract,
    load_document,
    structure_document,
)
from ingestion.text_extractor import extract_plain_text
from models.document_models import DocumentType
from pptx import Presentation
from pptx.util import Inches

LONG_TEXT = (
    "Prosit Aller\n"
    "Gestion des risques en entreprise\n"
    "Une entreprise industrielle veut cartographier ses risques majeurs."
)


@pytest.fixture(autouse=True)
def no_tokenizer(monkeypatch):
    monkeypatch.setattr(
        document_structurer, "truncate_text_by_tokens", lambda text, max_tokens: text
    )


def _docx_bytes():
    document = docx.Document()
    document.add_paragraph("Gestion des risques")
    document.add_paragraph("   ")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Risque"
    table.rows[0].cells[1].text = "Impact"
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _pptx_bytes():
    presentation = Presentation()
    slide = presentation.slides.add_slide(presentation.slide_layouts[6])
    box = slide.shapes.add_textbox(Inches(1), Inches(1), Inches(4), Inches(1))
    box.text_frame.text = "Définitions"
    presentation.slides.add_slide(presentation.slide_layouts[6])
    buffer = io.BytesIO()
    presentation.save(buffer)
    return buffer.getvalue()


def test_json_and_text_files():
    extracted = extract_plain_text('{"theme": "é"}'.encode(), "pa.JSON")
    assert extracted.is_json_like
    assert extracted.kind == "json"
    text = extract_plain_text("bonjour".encode(), "notes.txt")
    assert (text.text, text.is_json_like) == ("bonjour", False)


def test_unknown_extension_sniffs_json():
    assert extract_plain_text(b'  [1, 2]', "export.dat").is_json_like
    assert not extract_plain_text(b"texte", None).is_json_like


def test_docx_paragraphs_and_tables():
    extracted = extract_plain_text(_docx_bytes(), "pa.docx")
    assert extracted.text == "Gestion des risques\nRisque | Impact"
    assert not extracted.is_json_like


def test_pptx_slides_are_numbered():
    extracted = extract_plain_text(_pptx_bytes(), "pr.pptx")
    assert extracted.text == "[Slide 1]\nDéfinitions"


@pytest.mark.parametrize("filename", ["old.doc", "old.ppt"])
def test_legacy_office_files_are_rejected(filename):
    with pytest.raises(UnsupportedFormatError):
        extract_plain_text(b"\xd0\xcf\x11\xe0", filename)


def test_corrupt_docx_is_rejected():
    with pytest.raises(UnsupportedFormatError):
        extract_plain_text(b"not a zip", "broken.docx")


def test_heuristic_skips_generic_headings():
    data = heuristic_extract(LONG_TEXT)
    assert data["theme"] == "Gestion des risques en entreprise"
    assert data["raw_text"] == LONG_TEXT


def test_heuristic_theme_label_and_fallbacks():
    long_line = "x" * 120 + " thème : Cybersécurité"
    assert heuristic_extract(long_line)["theme"] == "Cybersécurité"
    assert heuristic_extract("CER")["theme"] == "CER"
    assert heuristic_extract("")["theme"] == "Thème non détecté"
    assert len(heuristic_extract("a" * 5000)["raw_text"]) == 4000


@pytest.mark.asyncio
async def test_short_text_skips_llm(scripted_llm):
    fake = scripted_llm()
    structured = await structure_document("Prosit Retour", "prosit_retour")
    assert fake.calls == []
    assert structured.doc_type is DocumentType.PROSIT_RETOUR
    assert structured.data == {"theme": "Prosit Retour", "raw_text": "Prosit Retour"}
    assert structured.preview.endswith("· Not enough content")


@pytest.mark.asyncio
async def test_llm_structuring(scripted_llm):
    fake = scripted_llm('```json\n{"theme": "Gestion des risques", "mots_cles": ["risque"]}\n```')
    structured = await structure_document(LONG_TEXT, "auto")
    assert structured.doc_type is DocumentType.PROSIT_ALLER
    assert structured.data["mots_cles"] == ["risque"]
    assert "Prosit Aller" in fake.calls[0]["system"]
    assert LONG_TEXT in fake.calls[0]["user"]


@pytest.mark.asyncio
async def test_llm_failure_falls_back(scripted_llm):
    scripted_llm(LLMServiceError("quota"))
    structured = await structure_document(LONG_TEXT, DocumentType.CER)
    assert structured.data["theme"] == "Gestion des risques en entreprise"
    assert "Fallback" in structured.preview


@pytest.mark.asyncio
async def test_unparsable_reply_falls_back(scripted_llm):
    scripted_llm("rien d'exploitable")
    structured = await structure_document(LONG_TEXT)
    assert set(structured.data) == {"theme", "raw_text"}


@pytest.mark.asyncio
async def test_load_json_document(tmp_path, scripted_llm, aller_doc):
    fake = scripted_llm()
    path = tmp_path / "pa.json"
    path.write_text(json.dumps(aller_doc(), ensure_ascii=False), encoding="utf-8")
    assert await load_document(path, "prosit_aller") == aller_doc()
    assert fake.calls == []


@pytest.mark.asyncio
async def test_load_text_document_is_structured(tmp_path, scripted_llm):
    scripted_llm({"theme": "Gestion des risques", "bilan": "ok"})
    path = tmp_path / "pr.txt"
    path.write_text(LONG_TEXT, encoding="utf-8")
    data = await load_document(str(path), DocumentType.PROSIT_RETOUR)
    assert data == {"theme": "Gestion des risques", "bilan": "ok"}


@pytest.mark.asyncio
async def test_load_json_array_is_rejected(tmp_path, scripted_llm):
    scripted_llm()
    path = tmp_path / "list.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(UnparsableJsonError):
        await load_document(path)
