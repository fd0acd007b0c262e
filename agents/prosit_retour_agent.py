# agents/prosit_retour_agent.py
from typing import Any

import structlog
from config import settings
from models.document_models import DocumentType
from orchestration.models import LogKind, SharedMemory
from processing.coherence_checker import ALLER_TO_RETOUR, CoherenceProfile, check_coherence
from processing.structural_validator import PROSIT_RETOUR_RULES
from rendering.pptx_prosit_retour import render_prosit_retour

from agents.stage_agent import (
    DocumentStageAgent,
    Renderer,
    StageLog,
    count_items,
    require_document,
)

logger = structlog.get_logger(__name__)


class PrositRetourAgent(DocumentStageAgent):
    """Stage 2: researches and validates the leads of the Prosit Aller."""

    document_type = DocumentType.PROSIT_RETOUR
    document_label = "Prosit Retour"
    prompt_dir = "prosit_retour_agent"
    order_prefix = "02"
    file_label = "Prosit_Retour"
    extension = "pptx"
    rule_set = PROSIT_RETOUR_RULES

    def default_renderer(self) -> Renderer:
        return render_prosit_retour

    @property
    def max_draft_tokens(self) -> int:
        return settings.MAX_PROSIT_RETOUR_TOKENS

    def upstream(self, memory: SharedMemory) -> dict[str, Any] | None:
        return memory.prosit_aller

    def check_prerequisites(self, memory: SharedMemory) -> None:
        require_document(
            memory, self.stage_tag, DocumentType.PROSIT_ALLER, "Prosit Aller"
        )

    def opening_thoughts(self, memory: SharedMemory) -> list[str]:
        aller = memory.prosit_aller or {}
        return [
            f'Reading the Prosit Aller from shared memory. Topic: "{aller.get("theme", "")}"',
            f"{count_items(aller, 'mots_cles')} keywords and "
            f"{count_items(aller, 'pistes_solution')} leads to validate.",
        ]

    def describe_plan(self, plan: dict[str, Any]) -> list[str]:
        if not plan:
            return []
        themes = plan.get("themes_a_approfondir") or []
        if not isinstance(themes, list):
            themes = [themes]
        return [
            "Themes to deepen: " + ", ".join(str(t) for t in themes),
            f"Critical point: {plan.get('point_critique', 'n/a')}",
        ]

    def after_plan(self, memory: SharedMemory, log: StageLog) -> None:
        log(LogKind.ACTION, "Checking the Prosit Aller before drafting.")
        probe = check_coherence(memory.prosit_aller, None, ALLER_TO_RETOUR)
        log(
            LogKind.OBSERVATION,
            "Prosit Aller pre-check: "
            + ("OK" if probe.coherent else "; ".join(probe.issues)),
        )

    def coherence_profile(self, memory: SharedMemory) -> CoherenceProfile | None:
        return ALLER_TO_RETOUR

    def summarize(self, document: dict[str, Any]) -> str:
        definitions = count_items(document, "definitions")
        validations = count_items(document, "validation_hypotheses")
        solutions = count_items(document, "solutions")
        return (
            f"{definitions} definitions | {validations} validations | "
            f"{solutions} solutions"
        )
