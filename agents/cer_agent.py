# agents/cer_agent.py
"""Stage 3: writes the CER from whatever upstream documents the run holds."""

import math
import re
from dataclasses import dataclass
from typing import Any

import structlog
from config import settings
from core.exceptions import MissingPrerequisiteError
from models.document_models import DocumentType
from orchestration.models import LogKind, SharedMemory
from processing.coherence_checker import ALLER_TO_CER, RETOUR_TO_CER, CoherenceProfile
from processing.structural_validator import CER_RULES
from rendering.docx_cer import render_cer

from agents.stage_agent import DocumentStageAgent, Renderer, StageLog, count_items

logger = structlog.get_logger(__name__)

RICH_FIELD_COUNT = 10
MEDIUM_FIELD_COUNT = 6
_SCORE_RE = re.compile(r"score[^%\d]*(\d{1,3})%", re.IGNORECASE)


@dataclass
class MemoryAnalysis:
    """What the CER stage has to work with."""

    source: str
    richness: str
    average_score: int | None
    warning_count: int
    has_retour: bool


def analyze_memory(memory: SharedMemory, exclude_stage: str | None = None) -> MemoryAnalysis:
    """Summarise the upstream documents, earlier quality scores and warnings."""
    aller = memory.prosit_aller
    retour = memory.prosit_retour
    if aller is not None and retour is not None:
        source = "PA + PR"
    elif retour is not None:
        source = "PR seul"
    elif aller is not None:
        source = "PA seul"
    else:
        source = "mémoire minimale"

    scores: list[int] = []
    for entry in memory.logs:
        if entry.stage == exclude_stage or entry.kind is not LogKind.OBSERVATION:
            continue
        match = _SCORE_RE.search(entry.message)
        if match:
            scores.append(int(match.group(1)))
    average = int(math.floor(sum(scores) / len(scores) + 0.5)) if scores else None

    basis = retour if retour is not None else aller
    field_count = len(basis) if isinstance(basis, dict) else 0
    if field_count >= RICH_FIELD_COUNT:
        richness = "riche"
    elif field_count >= MEDIUM_FIELD_COUNT:
        richness = "moyenne"
    else:
        richness = "minimale"

    return MemoryAnalysis(
        source=source,
        richness=richness,
        average_score=average,
        warning_count=len(memory.warnings),
        has_retour=retour is not None,
    )


class CerAgent(DocumentStageAgent):
    document_type = DocumentType.CER
    document_label = "CER"
    prompt_dir = "cer_agent"
    order_prefix = "03"
    file_label = "CER"
    extension = "docx"
    rule_set = CER_RULES
    repair_reminder = (
        "synthese doit faire au moins 250 caractères, conclusion au moins 150, "
        "realisation au moins 3 sections détaillées."
    )

    def default_renderer(self) -> Renderer:
        return render_cer

    @property
    def max_draft_tokens(self) -> int:
        return settings.MAX_CER_TOKENS

    def upstream(self, memory: SharedMemory) -> dict[str, Any] | None:
        if memory.prosit_retour is not None:
            return memory.prosit_retour
        return memory.prosit_aller

    def check_prerequisites(self, memory: SharedMemory) -> None:
        if self.upstream(memory) is None:
            raise MissingPrerequisiteError(self.stage_tag, "Prosit Aller or Prosit Retour")

    def opening_thoughts(self, memory: SharedMemory) -> list[str]:
        has_aller = memory.prosit_aller is not None
        has_retour = memory.prosit_retour is not None
        return [
            f"Consulting shared memory: Prosit Aller={has_aller}, Prosit Retour={has_retour}",
            "Prosit Retour available; building on both documents."
            if has_retour
            else "No Prosit Retour; working from the Prosit Aller only.",
        ]

    def prepare(self, memory: SharedMemory, log: StageLog) -> dict[str, Any]:
        log(LogKind.ACTION, "Analysing shared memory for available material.")
        analysis = analyze_memory(memory, exclude_stage=self.stage_tag)
        average = (
            f"{analysis.average_score}%" if analysis.average_score is not None else "n/a"
        )
        log(
            LogKind.OBSERVATION,
            f"Source: {analysis.source} | Richness: {analysis.richness} | "
            f"Average upstream score: {average}",
        )
        if analysis.warning_count:
            log(
                LogKind.OBSERVATION,
                f"{analysis.warning_count} coherence warning(s) to address in the CER.",
            )
        return {"analysis": analysis}

    def describe_plan(self, plan: dict[str, Any]) -> list[str]:
        if not plan:
            return []
        sections = plan.get("sections_prioritaires") or []
        if not isinstance(sections, list):
            sections = [sections]
        return [
            "Priority sections: " + ", ".join(str(s) for s in sections),
            f"Detail level: {plan.get('niveau_detail', 'n/a')} | Recommended objectives: "
            f"{plan.get('nombre_objectifs_recommande', 'n/a')}",
        ]

    def coherence_profile(self, memory: SharedMemory) -> CoherenceProfile | None:
        return RETOUR_TO_CER if memory.prosit_retour is not None else ALLER_TO_CER

    def summarize(self, document: dict[str, Any]) -> str:
        objectives = count_items(document, "objectifs_savoir") + count_items(
            document, "objectifs_savoir_faire"
        )
        sections = count_items(document, "realisation")
        references = count_items(document, "references_bibliographiques")
        return (
            f"{objectives} objectives | {sections} realisation sections | "
            f"{references} references"
        )
