# rendering/docx_common.py
"""Shared python-docx building blocks."""

from __future__ import annotations

from config import settings
from docx.document import Document as DocxDocument
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Pt, RGBColor
from docx.text.paragraph import Paragraph
from orchestration.models import RunIdentity

from utils.text_processing import split_paragraphs

NAVY = RGBColor(0x1F, 0x38, 0x64)
BLUE = RGBColor(0x2E, 0x75, 0xB6)
RED = RGBColor(0xB7, 0x1E, 0x42)
WHITE = RGBColor(0xFF, 0xFF, 0xFF)
GRAY = RGBColor(0x55, 0x55, 0x55)
LIGHT_GRAY = RGBColor(0x88, 0x88, 0x88)

BODY_FONT = "Times New Roman"
TITLE_FONT = "Arial"


def _shade(paragraph: Paragraph, fill: str) -> None:
    p_pr = paragraph._p.get_or_add_pPr()
    shd = OxmlElement("w:shd")
    shd.set(qn("w:val"), "clear")
    shd.set(qn("w:color"), "auto")
    shd.set(qn("w:fill"), fill)
    p_pr.append(shd)


class DocxWriter:
    """Thin helper around a python-docx document with the house styles."""

    def __init__(self, document: DocxDocument) -> None:
        self.doc = document
        normal = self.doc.styles["Normal"]
        normal.font.name = BODY_FONT
        normal.font.size = Pt(11)

    def title_block(self, title: str, theme: str, identity: RunIdentity) -> None:
        institution = self.doc.add_paragraph()
        institution.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = institution.add_run(settings.INSTITUTION_NAME)
        run.bold = True
        run.font.size = Pt(14)
        run.font.name = TITLE_FONT
        run.font.color.rgb = NAVY

        banner = self.doc.add_paragraph()
        banner.alignment = WD_ALIGN_PARAGRAPH.CENTER
        _shade(banner, "1F3864")
        run = banner.add_run(title)
        run.bold = True
        run.font.size = Pt(26)
        run.font.name = TITLE_FONT
        run.font.color.rgb = WHITE

        theme_par = self.doc.add_paragraph()
        theme_par.alignment = WD_ALIGN_PARAGRAPH.CENTER
        label = theme_par.add_run("THÈME :  ")
        label.bold = True
        label.font.color.rgb = NAVY
        value = theme_par.add_run(theme.upper())
        value.bold = True
        value.font.color.rgb = RED

        for label_text, value_text in (
            ("Élève ingénieur :", identity.student),
            ("École :", settings.INSTITUTION_NAME),
            ("Promotion :", identity.program),
            ("Année académique :", identity.academic_year),
        ):
            line = self.doc.add_paragraph()
            line.alignment = WD_ALIGN_PARAGRAPH.CENTER
            label_run = line.add_run(label_text + "  ")
            label_run.font.color.rgb = GRAY
            value_run = line.add_run(value_text)
            value_run.bold = True
            value_run.font.color.rgb = NAVY
        self.doc.add_page_break()

    def section(self, roman: str, title: str) -> None:
        banner = self.doc.add_paragraph()
        _shade(banner, "1F3864")
        run = banner.add_run(f"{roman}   {title.upper()}")
        run.bold = True
        run.font.size = Pt(13)
        run.font.name = TITLE_FONT
        run.font.color.rgb = WHITE

    def subtitle(self, text: str) -> None:
        paragraph = self.doc.add_paragraph()
        run = paragraph.add_run(text)
        run.bold = True
        run.font.color.rgb = BLUE

    def body(self, text: str | None) -> None:
        for chunk in split_paragraphs(text):
            paragraph = self.doc.add_paragraph()
            paragraph.alignment = WD_ALIGN_PARAGRAPH.JUSTIFY
            run = paragraph.add_run(chunk)
            run.font.color.rgb = GRAY

    def emphasis(self, text: str | None) -> None:
        paragraph = self.doc.add_paragraph()
        paragraph.alignment = WD_ALIGN_PARAGRAPH.JUSTIFY
        run = paragraph.add_run(text or "")
        run.italic = True
        run.bold = True
        run.font.color.rgb = NAVY

    def bullets(self, items: list[str]) -> None:
        for item in items:
            self.doc.add_paragraph(item, style="List Bullet")

    def numbered(self, items: list[str]) -> None:
        for item in items:
            self.doc.add_paragraph(item, style="List Number")

    def leads(self, items: list[str]) -> None:
        for item in items:
            paragraph = self.doc.add_paragraph()
            arrow = paragraph.add_run("→  ")
            arrow.bold = True
            arrow.font.color.rgb = RED
            paragraph.add_run(item)

    def labelled(self, label: str, text: str) -> None:
        paragraph = self.doc.add_paragraph()
        label_run = paragraph.add_run(label)
        label_run.bold = True
        label_run.font.color.rgb = NAVY
        text_run = paragraph.add_run(text)
        text_run.italic = True

    def footer(self, label: str, theme: str, identity: RunIdentity) -> None:
        paragraph = self.doc.sections[0].footer.paragraphs[0]
        paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = paragraph.add_run(
            f"{label} · {theme} · {identity.student} · {identity.program} · "
            f"{settings.INSTITUTION_NAME} · {identity.academic_year}"
        )
        run.font.size = Pt(9)
        run.font.color.rgb = LIGHT_GRAY
