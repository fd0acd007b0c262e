# rendering/pptx_prosit_retour.py
"""PowerPoint rendering of the Prosit Retour."""

from __future__ import annotations

from typing import Any

from config import settings
from models.document_models import PrositRetourDocument
from orchestration.models import RunIdentity
from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.shapes import MSO_SHAPE
from pptx.util import Inches, Pt

from rendering.base import render_in_executor
from utils.text_processing import split_paragraphs

NAVY = RGBColor(0x1F, 0x38, 0x64)
RED = RGBColor(0xB7, 0x1E, 0x42)
SAND = RGBColor(0xF5, 0xF1, 0xEC)
WHITE = RGBColor(0xFF, 0xFF, 0xFF)
DARK = RGBColor(0x2C, 0x2C, 0x2C)
GRAY = RGBColor(0x77, 0x77, 0x77)
GREEN = RGBColor(0x2E, 0x7D, 0x32)

SLIDE_WIDTH = Inches(13.33)
SLIDE_HEIGHT = Inches(7.5)
BLANK_LAYOUT = 6
ITEMS_PER_SLIDE = 7
RECORDS_PER_SLIDE = 3

AGENDA = (
    "Définitions des mots clés",
    "Contexte (rappel)",
    "Besoins",
    "Contraintes",
    "Problématique",
    "Généralisation",
    "Validation des hypothèses",
    "Plan d'action",
    "Solutions proposées",
    "Bilan",
)


def _chunks(items: list[Any], size: int) -> list[list[Any]]:
    if not items:
        return [[]]
    return [items[i : i + size] for i in range(0, len(items), size)]


def _is_validated(status: str) -> bool:
    lowered = status.lower()
    return lowered.startswith("valid") and "invalid" not in lowered


class PptxWriter:
    """Builds the slide deck on a blank layout with the house colours."""

    def __init__(self) -> None:
        self.prs = Presentation()
        self.prs.slide_width = SLIDE_WIDTH
        self.prs.slide_height = SLIDE_HEIGHT
        self.layout = self.prs.slide_layouts[BLANK_LAYOUT]

    def _rect(self, slide: Any, left: int, top: int, width: int, height: int, color: RGBColor) -> Any:
        shape = slide.shapes.add_shape(MSO_SHAPE.RECTANGLE, left, top, width, height)
        shape.fill.solid()
        shape.fill.fore_color.rgb = color
        shape.line.fill.background()
        return shape

    def _text(
        self,
        slide: Any,
        left: int,
        top: int,
        width: int,
        height: int,
        text: str,
        size: int = 16,
        color: RGBColor = DARK,
        bold: bool = False,
    ) -> Any:
        box = slide.shapes.add_textbox(left, top, width, height)
        frame = box.text_frame
        frame.word_wrap = True
        run = frame.paragraphs[0].add_run()
        run.text = text
        run.font.size = Pt(size)
        run.font.bold = bold
        run.font.color.rgb = color
        return frame

    def _slide(self, title: str) -> Any:
        slide = self.prs.slides.add_slide(self.layout)
        slide.background.fill.solid()
        slide.background.fill.fore_color.rgb = SAND
        self._rect(slide, 0, 0, SLIDE_WIDTH, Inches(1.25), NAVY)
        self._rect(slide, 0, Inches(1.25), SLIDE_WIDTH, Inches(0.05), RED)
        self._text(
            slide, Inches(0.5), Inches(0.2), SLIDE_WIDTH - Inches(1.0), Inches(0.9),
            title.upper(), size=26, color=WHITE, bold=True,
        )
        return slide

    def _body_frame(self, slide: Any) -> Any:
        box = slide.shapes.add_textbox(
            Inches(0.6), Inches(1.6), SLIDE_WIDTH - Inches(1.2), SLIDE_HEIGHT - Inches(2.2)
        )
        frame = box.text_frame
        frame.word_wrap = True
        return frame

    @staticmethod
    def _paragraph(frame: Any, first: bool) -> Any:
        return frame.paragraphs[0] if first else frame.add_paragraph()

    def cover(self, theme: str, identity: RunIdentity) -> None:
        slide = self.prs.slides.add_slide(self.layout)
        slide.background.fill.solid()
        slide.background.fill.fore_color.rgb = NAVY
        self._rect(slide, 0, 0, Inches(0.35), SLIDE_HEIGHT, RED)
        self._text(
            slide, Inches(1.0), Inches(1.2), Inches(11), Inches(0.6),
            settings.INSTITUTION_NAME, size=18, color=WHITE, bold=True,
        )
        self._text(
            slide, Inches(1.0), Inches(2.0), Inches(11), Inches(1.0),
            "PROSIT RETOUR", size=44, color=WHITE, bold=True,
        )
        self._text(
            slide, Inches(1.0), Inches(3.2), Inches(11), Inches(1.2),
            theme, size=26, color=WHITE,
        )
        self._text(
            slide, Inches(1.0), Inches(5.4), Inches(11), Inches(1.0),
            f"{identity.student} · {identity.program} · {identity.academic_year}",
            size=16, color=WHITE,
        )

    def bullet_slides(self, title: str, items: list[str], numbered: bool = False) -> None:
        chunks = _chunks(items, ITEMS_PER_SLIDE)
        offset = 0
        for index, chunk in enumerate(chunks):
            slide = self._slide(title if index == 0 else f"{title} (suite)")
            frame = self._body_frame(slide)
            for position, item in enumerate(chunk):
                paragraph = self._paragraph(frame, position == 0)
                marker = paragraph.add_run()
                marker.text = f"{offset + position + 1}.  " if numbered else "■  "
                marker.font.color.rgb = RED
                marker.font.bold = True
                marker.font.size = Pt(18)
                text = paragraph.add_run()
                text.text = item
                text.font.size = Pt(18)
                text.font.color.rgb = DARK
            offset += len(chunk)

    def text_slide(self, title: str, text: str, emphasis: bool = False) -> None:
        slide = self._slide(title)
        frame = self._body_frame(slide)
        for position, chunk in enumerate(split_paragraphs(text) or [""]):
            paragraph = self._paragraph(frame, position == 0)
            run = paragraph.add_run()
            run.text = chunk
            run.font.size = Pt(22 if emphasis else 18)
            run.font.italic = emphasis
            run.font.bold = emphasis
            run.font.color.rgb = NAVY if emphasis else DARK

    def labelled_slides(self, title: str, records: list[tuple[str, str, RGBColor]]) -> None:
        """Slides of ``(heading, body, heading colour)`` records."""
        for index, chunk in enumerate(_chunks(records, RECORDS_PER_SLIDE)):
            slide = self._slide(title if index == 0 else f"{title} (suite)")
            frame = self._body_frame(slide)
            for position, (heading, body, color) in enumerate(chunk):
                head = self._paragraph(frame, position == 0)
                run = head.add_run()
                run.text = heading
                run.font.bold = True
                run.font.size = Pt(18)
                run.font.color.rgb = color
                if body:
                    detail = frame.add_paragraph()
                    detail_run = detail.add_run()
                    detail_run.text = body
                    detail_run.font.size = Pt(14)
                    detail_run.font.color.rgb = GRAY

    def number_slides(self) -> None:
        total = len(self.prs.slides)
        for number, slide in enumerate(self.prs.slides, start=1):
            if number == 1:
                continue
            self._text(
                slide, SLIDE_WIDTH - Inches(1.3), SLIDE_HEIGHT - Inches(0.5),
                Inches(1.1), Inches(0.3), f"{number} / {total}", size=9, color=GRAY,
            )


def build_prosit_retour(
    document: dict[str, Any], identity: RunIdentity, output_path: str
) -> None:
    pr = PrositRetourDocument.coerce(document)
    theme = pr.theme or identity.topic
    writer = PptxWriter()
    writer.cover(theme, identity)
    writer.bullet_slides("Sommaire", list(AGENDA), numbered=True)
    writer.labelled_slides(
        "Définitions des mots clés",
        [(term, text, NAVY) for term, text in pr.definitions.items()],
    )
    writer.text_slide("Contexte (rappel)", pr.contexte_rappel)
    writer.bullet_slides("Besoins", pr.besoins)
    writer.bullet_slides("Contraintes", pr.contraintes)
    writer.text_slide("Problématique", pr.problematique, emphasis=True)
    writer.text_slide("Généralisation", pr.generalisation, emphasis=True)
    writer.labelled_slides(
        "Validation des hypothèses",
        [
            (
                ("✓ " if _is_validated(h.statut) else "✗ ")
                + h.hypothese
                + (f" [{h.statut}]" if h.statut else ""),
                h.justification,
                GREEN if _is_validated(h.statut) else RED,
            )
            for h in pr.validation_hypotheses
        ],
    )
    writer.bullet_slides("Plan d'action", pr.plan_action, numbered=True)
    writer.labelled_slides(
        "Solutions proposées",
        [(s.titre, s.description, NAVY) for s in pr.solutions],
    )
    writer.text_slide("Bilan", pr.bilan)
    writer.number_slides()
    writer.prs.save(output_path)


async def render_prosit_retour(
    document: dict[str, Any], identity: RunIdentity, output_path: str
) -> None:
    await render_in_executor(
        lambda: build_prosit_retour(document, identity, output_path), output_path
    )
