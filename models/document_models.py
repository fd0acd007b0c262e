# models/document_models.py
"""Schemas for the three generated documents.

The LLM returns loosely typed JSON. These models give every field a default
and coerce the common shape mistakes (a string where a list is expected, a
list of pairs instead of a mapping, ``null`` values) so the renderers can rely
on a typed view. Unknown keys are preserved.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DocumentType(str, Enum):
    PROSIT_ALLER = "prosit_aller"
    PROSIT_RETOUR = "prosit_retour"
    CER = "cer"


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "\n\n".join(_as_text(item) for item in value if item is not None)
    if isinstance(value, dict):
        return "\n".join(f"{k} : {_as_text(v)}" for k, v in value.items())
    return str(value)


def _as_text_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, dict):
        return [f"{k} : {_as_text(v)}" for k, v in value.items()]
    if isinstance(value, list):
        return [_as_text(item) for item in value if item is not None]
    return [str(value)]


def _as_record_list(value: Any, text_key: str) -> list[Any]:
    """Normalise a list of sub-records; bare strings become ``{text_key: s}``."""
    if value is None:
        return []
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        value = [value]
    records: list[Any] = []
    for item in value:
        if item is None:
            continue
        if isinstance(item, dict):
            records.append(item)
        else:
            records.append({text_key: _as_text(item)})
    return records


class SubRecord(BaseModel):
    """Small nested record inside a document list."""

    model_config = ConfigDict(extra="allow")

    @field_validator("*", mode="before")
    @classmethod
    def _text_fields(cls, value: Any) -> Any:
        return _as_text(value)


class HypothesisValidation(SubRecord):
    hypothese: str = ""
    statut: str = ""
    justification: str = ""


class Solution(SubRecord):
    titre: str = ""
    description: str = ""


class RealisationSection(SubRecord):
    titre: str = ""
    contenu: str = ""


class MethodReference(SubRecord):
    titre: str = ""
    reference: str = ""
    description: str = ""


class DocumentBaseModel(BaseModel):
    """Common behaviour for document schemas."""

    model_config = ConfigDict(extra="allow")

    TEXT_FIELDS: ClassVar[tuple[str, ...]] = ()
    LIST_FIELDS: ClassVar[tuple[str, ...]] = ()
    RECORD_FIELDS: ClassVar[dict[str, str]] = {}

    theme: str = ""

    @classmethod
    def empty_value(cls, field_name: str) -> Any:
        """Return the empty default used when ``field_name`` is absent."""
        info = cls.model_fields.get(field_name)
        if info is None:
            return ""
        if info.default_factory is not None:
            return info.default_factory()
        return info.default

    @classmethod
    def coerce(cls, data: Any) -> DocumentBaseModel:
        """Build a typed view of raw document JSON, tolerating shape errors."""
        raw = dict(data) if isinstance(data, dict) else {}
        for name in cls.TEXT_FIELDS:
            if name in raw:
                raw[name] = _as_text(raw[name])
        for name in cls.LIST_FIELDS:
            if name in raw:
                raw[name] = _as_text_list(raw[name])
        for name, text_key in cls.RECORD_FIELDS.items():
            if name in raw:
                raw[name] = _as_record_list(raw[name], text_key)
        if "theme" in raw:
            raw["theme"] = _as_text(raw["theme"])
        return cls.model_validate(raw)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump()


class PrositAllerDocument(DocumentBaseModel):
    """Document A: the problem framing handed to students."""


    mots_cles: list[str] = Field(default_factory=list)
    contexte: str = ""
    definition_besoins: list[str] = Field(default_factory=list)
    problematique: str = ""
    contraintes: list[str] = Field(default_factory=list)
    generalisation: str = ""
    pistes_solution: list[str] = Field(default_factory=list)
    plan_action: list[str] = Field(default_factory=list)

    TEXT_FIELDS: ClassVar[tuple[str, ...]] = (
        "contexte",
        "problematique",
        "generalisation",
    )
    LIST_FIELDS: ClassVar[tuple[str, ...]] = (
        "mots_cles",
        "definition_besoins",
        "contraintes",
        "pistes_solution",
        "plan_action",
    )


class PrositRetourDocument(DocumentBaseModel):
    """Document B: research results presented back to the group."""


    definitions: dict[str, str] = Field(default_factory=dict)
    contexte_rappel: str = ""
    besoins: list[str] = Field(default_factory=list)
    contraintes: list[str] = Field(default_factory=list)
    problematique: str = ""
    generalisation: str = ""
    validation_hypotheses: list[HypothesisValidation] = Field(default_factory=list)
    plan_action: list[str] = Field(default_factory=list)
    solutions: list[Solution] = Field(default_factory=list)
    bilan: str = ""

    TEXT_FIELDS: ClassVar[tuple[str, ...]] = (
        "contexte_rappel",
        "problematique",
        "generalisation",
        "bilan",
    )
    LIST_FIELDS: ClassVar[tuple[str, ...]] = ("besoins", "contraintes", "plan_action")
    RECORD_FIELDS: ClassVar[dict[str, str]] = {
        "validation_hypotheses": "hypothese",
        "solutions": "titre",
    }

    @field_validator("definitions", mode="before")
    @classmethod
    def _definitions_mapping(cls, value: Any) -> dict[str, str]:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): _as_text(v) for k, v in value.items()}
        mapping: dict[str, str] = {}
        if isinstance(value, list):
            for item in value:
                if isinstance(item, dict):
                    term = item.get("terme") or item.get("term") or item.get("mot")
                    text = item.get("definition") or item.get("description") or ""
                    if term:
                        mapping[str(term)] = _as_text(text)
                elif isinstance(item, str) and ":" in item:
                    term, text = item.split(":", 1)
                    mapping[term.strip()] = text.strip()
        return mapping


class CerDocument(DocumentBaseModel):
    """Document C: the student's study and research report."""


    contexte: str = ""
    objectifs_savoir: list[str] = Field(default_factory=list)
    objectifs_savoir_faire: list[str] = Field(default_factory=list)
    besoins: list[str] = Field(default_factory=list)
    problematique: str = ""
    contraintes: list[str] = Field(default_factory=list)
    generalisation: str = ""
    pistes_solution: list[str] = Field(default_factory=list)
    plan_action: list[str] = Field(default_factory=list)
    realisation: list[RealisationSection] = Field(default_factory=list)
    validation_hypotheses: list[HypothesisValidation] = Field(default_factory=list)
    conclusion: str = ""
    synthese: str = ""
    methodes_utilisees: list[MethodReference] = Field(default_factory=list)
    references_bibliographiques: list[str] = Field(default_factory=list)

    TEXT_FIELDS: ClassVar[tuple[str, ...]] = (
        "contexte",
        "problematique",
        "generalisation",
        "conclusion",
        "synthese",
    )
    LIST_FIELDS: ClassVar[tuple[str, ...]] = (
        "objectifs_savoir",
        "objectifs_savoir_faire",
        "besoins",
        "contraintes",
        "pistes_solution",
        "plan_action",
        "references_bibliographiques",
    )
    RECORD_FIELDS: ClassVar[dict[str, str]] = {
        "realisation": "contenu",
        "validation_hypotheses": "hypothese",
        "methodes_utilisees": "titre",
    }


DOCUMENT_SCHEMAS: dict[DocumentType, type[DocumentBaseModel]] = {
    DocumentType.PROSIT_ALLER: PrositAllerDocument,
    DocumentType.PROSIT_RETOUR: PrositRetourDocument,
    DocumentType.CER: CerDocument,
}
