# processing/structural_validator.py
"""Rule-table validation of generated document JSON."""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from models.document_models import (
    CerDocument,
    DocumentBaseModel,
    DocumentType,
    PrositAllerDocument,
    PrositRetourDocument,
)


@dataclass(frozen=True)
class ValidationRule:
    """A single structural constraint on one top-level field."""

    field: str
    predicate: Callable[[Any], bool]
    message: str


@dataclass(frozen=True)
class RuleSet:
    """Ordered rules for one document type plus the schema supplying defaults."""

    document_type: DocumentType
    schema: type[DocumentBaseModel]
    rules: tuple[ValidationRule, ...]


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    score: int = 100
    failed_fields: list[str] = field(default_factory=list)


def min_items(count: int) -> Callable[[Any], bool]:
    return lambda value: isinstance(value, list) and len(value) >= count


def min_length(count: int) -> Callable[[Any], bool]:
    return lambda value: isinstance(value, str) and len(value) >= count


def min_keys(count: int) -> Callable[[Any], bool]:
    return lambda value: isinstance(value, dict) and len(value) >= count


def is_question(value: Any) -> bool:
    return isinstance(value, str) and value.strip().endswith("?")


PROSIT_ALLER_RULES = RuleSet(
    DocumentType.PROSIT_ALLER,
    PrositAllerDocument,
    (
        ValidationRule("mots_cles", min_items(6), "at least 6 keywords required"),
        ValidationRule(
            "contexte", min_length(100), "context too short (at least 100 characters)"
        ),
        ValidationRule("definition_besoins", min_items(2), "at least 2 needs required"),
        ValidationRule(
            "problematique", is_question, "must be a question (end with '?')"
        ),
        ValidationRule("contraintes", min_items(3), "at least 3 constraints required"),
        ValidationRule("generalisation", min_length(20), "generalisation too short"),
        ValidationRule(
            "pistes_solution", min_items(2), "at least 2 solution leads required"
        ),
        ValidationRule("plan_action", min_items(4), "action plan needs at least 4 steps"),
    ),
)

PROSIT_RETOUR_RULES = RuleSet(
    DocumentType.PROSIT_RETOUR,
    PrositRetourDocument,
    (
        ValidationRule("definitions", min_keys(4), "at least 4 definitions required"),
        ValidationRule("contexte_rappel", min_length(80), "context reminder too short"),
        ValidationRule("besoins", min_items(2), "at least 2 needs required"),
        ValidationRule("contraintes", min_items(2), "at least 2 constraints required"),
        ValidationRule(
            "problematique", is_question, "problem statement must end with '?'"
        ),
        ValidationRule(
            "validation_hypotheses",
            min_items(2),
            "at least 2 hypothesis validations required",
        ),
        ValidationRule("plan_action", min_items(3), "action plan needs at least 3 steps"),
        ValidationRule("solutions", min_items(2), "at least 2 solutions required"),
        ValidationRule("bilan", min_length(60), "conclusion (bilan) too short"),
    ),
)

CER_RULES = RuleSet(
    DocumentType.CER,
    CerDocument,
    (
        ValidationRule(
            "contexte", min_length(100), "context too short (at least 100 characters)"
        ),
        ValidationRule(
            "objectifs_savoir", min_items(4), "at least 4 knowledge objectives required"
        ),
        ValidationRule(
            "objectifs_savoir_faire",
            min_items(4),
            "at least 4 know-how objectives required",
        ),
        ValidationRule("besoins", min_items(2), "at least 2 needs required"),
        ValidationRule(
            "problematique", is_question, "problem statement must end with '?'"
        ),
        ValidationRule("contraintes", min_items(3), "at least 3 constraints required"),
        ValidationRule(
            "realisation", min_items(3), "at least 3 realisation sections required"
        ),
        ValidationRule(
            "validation_hypotheses",
            min_items(2),
            "at least 2 hypothesis validations required",
        ),
        ValidationRule(
            "conclusion", min_length(100), "conclusion too short (at least 100 characters)"
        ),
        ValidationRule(
            "synthese", min_length(200), "synthesis too short (at least 200 characters)"
        ),
        ValidationRule(
            "methodes_utilisees", min_items(2), "at least 2 methods or tools required"
        ),
        ValidationRule(
            "references_bibliographiques",
            min_items(3),
            "at least 3 bibliographic references required",
        ),
    ),
)

RULE_SETS: dict[DocumentType, RuleSet] = {
    rule_set.document_type: rule_set
    for rule_set in (PROSIT_ALLER_RULES, PROSIT_RETOUR_RULES, CER_RULES)
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def validate(document: Any, rule_set: RuleSet) -> ValidationResult:
    """Score ``document`` against ``rule_set``.

    Missing or null fields are evaluated as the schema's empty default. The
    function never raises; a non-mapping document is treated as empty.
    """
    data = document if isinstance(document, dict) else {}
    errors: list[str] = []
    failed_fields: list[str] = []
    for rule in rule_set.rules:
        value = data.get(rule.field)
        if value is None:
            value = rule_set.schema.empty_value(rule.field)
        try:
            passed = bool(rule.predicate(value))
        except Exception:
            passed = False
        if not passed:
            errors.append(f"[{rule.field}] {rule.message}")
            if rule.field not in failed_fields:
                failed_fields.append(rule.field)

    total = len(rule_set.rules)
    score = _round_half_up(100 * (total - len(errors)) / total) if total else 100
    return ValidationResult(
        valid=not errors, errors=errors, score=score, failed_fields=failed_fields
    )
