# processing/coherence_checker.py
"""Cross-document coherence checks between consecutive pipeline documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

TOPIC_PREFIX_LENGTH = 10
KEYWORD_PREFIX_LENGTH = 5
MAX_UNCOVERED_KEYWORDS = 2
REPORTED_KEYWORDS = 3


@dataclass(frozen=True)
class CoherenceProfile:
    """Which fields of the upstream and downstream documents are compared.

    A check is skipped when one of its fields is ``None``.
    """

    upstream_label: str
    downstream_label: str
    upstream_hypotheses: str | None = "pistes_solution"
    downstream_validations: str | None = "validation_hypotheses"
    upstream_keywords: str | None = "mots_cles"
    downstream_terms: str | None = "definitions"


@dataclass
class CoherenceResult:
    coherent: bool
    issues: list[str] = field(default_factory=list)


ALLER_TO_RETOUR = CoherenceProfile("Prosit Aller", "Prosit Retour")
ALLER_TO_CER = CoherenceProfile(
    "Prosit Aller", "CER", upstream_keywords=None, downstream_terms=None
)
RETOUR_TO_CER = CoherenceProfile(
    "Prosit Retour",
    "CER",
    upstream_hypotheses="validation_hypotheses",
    upstream_keywords=None,
    downstream_terms=None,
)


def _count(document: dict[str, Any], field_name: str | None) -> int:
    if field_name is None:
        return 0
    value = document.get(field_name)
    return len(value) if isinstance(value, list | dict) else 0


def _terms(document: dict[str, Any], field_name: str) -> list[str]:
    value = document.get(field_name)
    if isinstance(value, dict):
        items = list(value.keys())
    elif isinstance(value, list):
        items = value
    else:
        return []
    return [str(item).lower() for item in items]


def check_coherence(
    upstream: dict[str, Any] | None,
    downstream: dict[str, Any] | None,
    profile: CoherenceProfile = ALLER_TO_RETOUR,
) -> CoherenceResult:
    """Compare ``downstream`` with the ``upstream`` document it was built from.

    With ``upstream`` missing the only issue reported is its absence. With
    ``downstream`` missing no comparison is made.
    """
    issues: list[str] = []
    if upstream is None:
        issues.append(f"{profile.upstream_label} missing from shared memory")
        return CoherenceResult(coherent=False, issues=issues)
    if downstream is None:
        return CoherenceResult(coherent=True, issues=issues)

    upstream_theme = str(upstream.get("theme") or "")
    downstream_theme = str(downstream.get("theme") or "")
    up_topic = upstream_theme.lower()
    down_topic = downstream_theme.lower()
    if (
        down_topic
        and down_topic != up_topic
        and up_topic[:TOPIC_PREFIX_LENGTH] not in down_topic
    ):
        issues.append(
            f'Topic mismatch: {profile.upstream_label}="{upstream_theme}" '
            f'vs {profile.downstream_label}="{downstream_theme}"'
        )

    if profile.upstream_hypotheses and profile.downstream_validations:
        hypotheses = _count(upstream, profile.upstream_hypotheses)
        validations = _count(downstream, profile.downstream_validations)
        if validations < hypotheses:
            issues.append(
                f"Hypothesis validations ({validations}) fewer than "
                f"{profile.upstream_label} solution leads ({hypotheses})"
            )

    if profile.upstream_keywords and profile.downstream_terms:
        keywords = list(dict.fromkeys(_terms(upstream, profile.upstream_keywords)))
        defined = set(_terms(downstream, profile.downstream_terms))
        uncovered = [
            keyword
            for keyword in keywords
            if not any(keyword[:KEYWORD_PREFIX_LENGTH] in term for term in defined)
        ]
        if len(uncovered) > MAX_UNCOVERED_KEYWORDS:
            issues.append(
                f"{profile.upstream_label} keywords not defined in "
                f"{profile.downstream_label}: "
                + ", ".join(uncovered[:REPORTED_KEYWORDS])
            )

    if issues:
        logger.debug("Coherence issues detected.", issues=issues)
    return CoherenceResult(coherent=not issues, issues=issues)
