# rendering/docx_cer.py
"""Word rendering of the CER (Cahier d'Étude et de Recherche)."""

from __future__ import annotations

from typing import Any

import docx
from models.document_models import CerDocument
from orchestration.models import RunIdentity

from rendering.base import render_in_executor
from rendering.docx_common import DocxWriter


def build_cer(document: dict[str, Any], identity: RunIdentity, output_path: str) -> None:
    cer = CerDocument.coerce(document)
    theme = cer.theme or identity.topic
    writer = DocxWriter(docx.Document())
    writer.title_block("CAHIER D'ÉTUDE ET DE RECHERCHE", theme, identity)

    writer.section("I.", "Analyse du Contexte")
    writer.body(cer.contexte)

    writer.section("II.", "Objectifs")
    writer.subtitle("Objectifs de type Savoir")
    writer.bullets(cer.objectifs_savoir)
    writer.subtitle("Objectifs de type Savoir-Faire")
    writer.bullets(cer.objectifs_savoir_faire)

    writer.section("III.", "Analyse des Besoins et Problématique")
    writer.subtitle("Besoins identifiés")
    writer.bullets(cer.besoins)
    writer.subtitle("Problématique")
    writer.emphasis(cer.problematique)

    writer.section("IV.", "Contraintes")
    writer.bullets(cer.contraintes)
    writer.section("V.", "Généralisation")
    writer.emphasis(cer.generalisation)
    writer.section("VI.", "Pistes de Solution")
    writer.leads(cer.pistes_solution)
    writer.section("VII.", "Plan d'Action")
    writer.numbered(cer.plan_action)

    writer.section("VIII.", "Réalisation du Plan d'Action")
    for index, part in enumerate(cer.realisation, start=1):
        writer.subtitle(f"{index}. {part.titre}")
        writer.body(part.contenu)

    writer.section("IX.", "Validation des Hypothèses")
    for hypothesis in cer.validation_hypotheses:
        status = f" [{hypothesis.statut}]" if hypothesis.statut else ""
        writer.subtitle(f"{hypothesis.hypothese}{status}")
        writer.body(hypothesis.justification)

    writer.section("X.", "Conclusion")
    writer.body(cer.conclusion)
    writer.section("XI.", "Synthèse du Travail Effectué")
    writer.body(cer.synthese)

    writer.section("XII.", "Références des Méthodes et Outils Utilisés")
    for index, method in enumerate(cer.methodes_utilisees, start=1):
        writer.subtitle(f"{index}. {method.titre}")
        if method.reference:
            writer.labelled("Référence : ", method.reference)
        writer.body(method.description)

    writer.section("XIII.", "Références Bibliographiques")
    writer.numbered(cer.references_bibliographiques)

    writer.footer("CER", theme, identity)
    writer.doc.save(output_path)


async def render_cer(
    document: dict[str, Any], identity: RunIdentity, output_path: str
) -> None:
    await render_in_executor(
        lambda: build_cer(document, identity, output_path), output_path
    )
