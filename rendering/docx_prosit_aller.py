# rendering/docx_prosit_aller.py
"""Word rendering of the Prosit Aller."""

from __future__ import annotations

from typing import Any

import docx
from models.document_models import PrositAllerDocument
from orchestration.models import RunIdentity

from rendering.base import render_in_executor
from rendering.docx_common import DocxWriter


def build_prosit_aller(
    document: dict[str, Any], identity: RunIdentity, output_path: str
) -> None:
    pa = PrositAllerDocument.coerce(document)
    theme = pa.theme or identity.topic
    writer = DocxWriter(docx.Document())
    writer.title_block("PROSIT ALLER", theme, identity)

    writer.section("I.", "Mots Clés")
    writer.bullets(pa.mots_cles)
    writer.section("II.", "Contexte")
    writer.body(pa.contexte)
    writer.section("III.", "Définition des Besoins")
    writer.bullets(pa.definition_besoins)
    writer.section("IV.", "Définition de la Problématique")
    writer.emphasis(pa.problematique)
    writer.section("V.", "Définition des Contraintes")
    writer.bullets(pa.contraintes)
    writer.section("VI.", "Généralisation")
    writer.emphasis(pa.generalisation)
    writer.section("VII.", "Pistes de Solution")
    writer.leads(pa.pistes_solution)
    writer.section("VIII.", "Plan d'Action")
    writer.numbered(pa.plan_action)

    writer.footer("Prosit Aller", theme, identity)
    writer.doc.save(output_path)


async def render_prosit_aller(
    document: dict[str, Any], identity: RunIdentity, output_path: str
) -> None:
    await render_in_executor(
        lambda: build_prosit_aller(document, identity, output_path), output_path
    )
