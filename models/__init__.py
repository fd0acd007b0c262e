
"""Central package for Prosit data models."""

from .document_models import (
    DOCUMENT_SCHEMAS,
    CerDocument,
    DocumentBaseModel,
    DocumentType,
    HypothesisValidation,
    MethodReference,
    PrositAllerDocument,
    PrositRetourDocument,
    RealisationSection,
    Solution,
)

__all__ = [
    "DOCUMENT_SCHEMAS",
    "CerDocument",
    "DocumentBaseModel",
    "DocumentType",
    "HypothesisValidation",
    "MethodReference",
    "PrositAllerDocument",
    "PrositRetourDocument",
    "RealisationSection",
    "Solution",
]
