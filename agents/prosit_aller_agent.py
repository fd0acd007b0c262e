# agents/prosit_aller_agent.py
from typing import Any

import structlog
from config import settings
from models.document_models import DocumentType
from orchestration.models import SharedMemory
from processing.structural_validator import PROSIT_ALLER_RULES
from rendering.docx_prosit_aller import render_prosit_aller

from agents.stage_agent import DocumentStageAgent, Renderer, count_items

logger = structlog.get_logger(__name__)


class PrositAllerAgent(DocumentStageAgent):
    """Stage 1: frames the problem from the run topic and optional context."""

    document_type = DocumentType.PROSIT_ALLER
    document_label = "Prosit Aller"
    prompt_dir = "prosit_aller_agent"
    order_prefix = "01"
    file_label = "Prosit_Aller"
    extension = "docx"
    rule_set = PROSIT_ALLER_RULES

    def default_renderer(self) -> Renderer:
        return render_prosit_aller

    @property
    def max_draft_tokens(self) -> int:
        return settings.MAX_PROSIT_ALLER_TOKENS

    def opening_thoughts(self, memory: SharedMemory) -> list[str]:
        return [
            f'Reading shared memory. Topic received: "{memory.identity.topic}".',
            "Analysing the domain before drafting to keep the document coherent.",
        ]

    def describe_plan(self, plan: dict[str, Any]) -> list[str]:
        if not plan:
            return []
        stakes = plan.get("enjeux") or []
        if not isinstance(stakes, list):
            stakes = [stakes]
        return [
            f"Domain: {plan.get('domaine', 'n/a')} | Stakes: "
            + ", ".join(str(s) for s in stakes),
            f"Chosen problem angle: {plan.get('angle_problematique', 'n/a')}",
        ]

    def default_theme(self, memory: SharedMemory) -> str:
        return memory.identity.topic

    def summarize(self, document: dict[str, Any]) -> str:
        keywords = count_items(document, "mots_cles")
        steps = count_items(document, "plan_action")
        return f"{keywords} keywords | {steps} steps"
