# agents/stage_agent.py
"""Common plan / draft / validate / repair / render loop of a generation stage.

Each stage logs its progress as thought, action, observation and result
entries. The log is an audit trail only; control flow is the plain sequence
in :meth:`DocumentStageAgent.run`.
"""

from __future__ import annotations

import copy
import os
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar

import structlog
from config import settings
from core.exceptions import (
    JsonExtractionError,
    MissingPrerequisiteError,
    RenderError,
    UnparsableJsonError,
)
from core.llm_interface import llm_service
from models.document_models import DocumentType
from orchestration.models import LogKind, RunIdentity, SharedMemory, StageOutcome
from processing.coherence_checker import CoherenceProfile, check_coherence
from processing.json_repair import extract_json
from processing.structural_validator import RuleSet, ValidationResult, validate
from prompt_renderer import render_prompt

logger = structlog.get_logger(__name__)

StageLog = Callable[[LogKind, str], None]
Renderer = Callable[[dict[str, Any], RunIdentity, str], Awaitable[None]]


def apply_repair(
    document: dict[str, Any], correction: Any, fields: list[str]
) -> dict[str, Any]:
    """Return a copy of ``document`` with ``fields`` overridden from ``correction``.

    Only top-level keys listed in ``fields`` and present in ``correction`` are
    replaced; every other key keeps its previous value.
    """
    merged = copy.deepcopy(document)
    if not isinstance(correction, dict):
        return merged
    for name in fields:
        if name in correction:
            merged[name] = copy.deepcopy(correction[name])
    return merged


def count_items(document: Any, field_name: str) -> int:
    """Number of entries under ``field_name``, 0 when the value is not a collection.

    A bare non-empty string counts as one entry, as the schemas coerce it.
    """
    value = document.get(field_name) if isinstance(document, dict) else None
    if isinstance(value, list | dict):
        return len(value)
    if isinstance(value, str) and value.strip():
        return 1
    return 0


def _join_errors(errors: list[str]) -> str:
    return "; ".join(errors) if errors else "none"


class DocumentStageAgent:
    """One generation stage, parameterised by its document type."""

    document_type: ClassVar[DocumentType]
    document_label: ClassVar[str]
    prompt_dir: ClassVar[str]
    order_prefix: ClassVar[str]
    file_label: ClassVar[str]
    extension: ClassVar[str]
    rule_set: ClassVar[RuleSet]
    repair_reminder: ClassVar[str] = ""

    def __init__(
        self,
        model_name: str | None = None,
        renderer: Renderer | None = None,
    ) -> None:
        self.model_name = model_name or settings.MAIN_MODEL
        self.renderer = renderer or self.default_renderer()
        logger.debug(
            f"{type(self).__name__} initialized with model: {self.model_name}"
        )

    # Stage-specific hooks
    def default_renderer(self) -> Renderer:
        raise NotImplementedError

    @property
    def max_draft_tokens(self) -> int:
        raise NotImplementedError

    def upstream(self, memory: SharedMemory) -> dict[str, Any] | None:
        """Document this stage builds on, if any."""
        return None

    def check_prerequisites(self, memory: SharedMemory) -> None:
        """Raise ``MissingPrerequisiteError`` when a required upstream is absent."""

    def opening_thoughts(self, memory: SharedMemory) -> list[str]:
        return []

    def prepare(self, memory: SharedMemory, log: StageLog) -> dict[str, Any]:
        """Extra template context computed before planning."""
        return {}

    def describe_plan(self, plan: dict[str, Any]) -> list[str]:
        return []

    def after_plan(self, memory: SharedMemory, log: StageLog) -> None:
        """Hook run between planning and drafting."""

    def coherence_profile(self, memory: SharedMemory) -> CoherenceProfile | None:
        return None

    def default_theme(self, memory: SharedMemory) -> str:
        upstream = self.upstream(memory) or {}
        return str(upstream.get("theme") or memory.identity.topic)

    def summarize(self, document: dict[str, Any]) -> str:
        return ""

    # Shared behaviour
    @property
    def stage_tag(self) -> str:
        return self.document_type.value

    def output_path(self, memory: SharedMemory) -> str:
        filename = (
            f"{self.order_prefix}_{self.file_label}_{memory.identity.slug}"
            f".{self.extension}"
        )
        return os.path.join(memory.output_dir, filename)

    def template_context(
        self, memory: SharedMemory, extra: dict[str, Any]
    ) -> dict[str, Any]:
        context: dict[str, Any] = {
            "institution": settings.INSTITUTION_NAME,
            "identity": memory.identity,
            "upstream": self.upstream(memory) or {},
            "warnings": list(memory.warnings),
            "plan": {},
        }
        context.update(extra)
        return context

    async def _call(
        self, template: str, context: dict[str, Any], max_tokens: int, temperature: float
    ) -> str:
        system_prompt = render_prompt(f"{self.prompt_dir}/{template}_system.j2", context)
        user_prompt = render_prompt(f"{self.prompt_dir}/{template}_user.j2", context)
        return await llm_service.complete(
            system_prompt,
            [{"role": "user", "content": user_prompt}],
            max_tokens,
            temperature=temperature,
            model_name=self.model_name,
        )

    async def plan(self, context: dict[str, Any]) -> dict[str, Any]:
        """Ask for a short planning JSON; an unusable plan becomes ``{}``."""
        raw = await self._call(
            "plan", context, settings.MAX_PLANNING_TOKENS, settings.TEMPERATURE_PLANNING
        )
        try:
            plan = extract_json(raw)
        except JsonExtractionError as exc:
            logger.warning(
                f"{self.document_label}: plan could not be extracted, continuing without it.",
                error=str(exc),
            )
            return {}
        if not isinstance(plan, dict):
            logger.warning(
                f"{self.document_label}: plan is not a JSON object, continuing without it."
            )
            return {}
        return plan

    async def draft(self, context: dict[str, Any]) -> dict[str, Any]:
        raw = await self._call(
            "draft", context, self.max_draft_tokens, settings.TEMPERATURE_DRAFTING
        )
        document = extract_json(raw)
        if not isinstance(document, dict):
            raise UnparsableJsonError(
                f"{self.document_label} draft is a JSON {type(document).__name__}, expected an object."
            )
        return document

    async def repair(
        self, document: dict[str, Any], result: ValidationResult
    ) -> dict[str, Any]:
        """One targeted correction pass; only the failing fields are taken over."""
        system_prompt = render_prompt(
            "shared/repair_system.j2",
            {
                "document_label": self.document_label,
                "errors": result.errors,
                "reminder": self.repair_reminder,
            },
        )
        user_prompt = render_prompt("shared/repair_user.j2", {"document": document})
        raw = await llm_service.complete(
            system_prompt,
            [{"role": "user", "content": user_prompt}],
            self.max_draft_tokens,
            temperature=settings.TEMPERATURE_REPAIR,
            model_name=self.model_name,
        )
        correction = extract_json(raw)
        return apply_repair(document, correction, result.failed_fields)

    async def render(
        self, document: dict[str, Any], memory: SharedMemory, output_path: str
    ) -> None:
        try:
            await self.renderer(document, memory.identity, output_path)
        except RenderError:
            raise
        except Exception as exc:
            raise RenderError(output_path, str(exc)) from exc

    async def run(
        self, memory: SharedMemory, log: StageLog | None = None
    ) -> StageOutcome:
        """Produce, check, render and store this stage's document."""
        if log is None:

            def log(kind: LogKind, message: str) -> None:
                memory.append_log(self.stage_tag, kind, message)

        self.check_prerequisites(memory)
        logger.info(f"{self.document_label} stage started.", slug=memory.identity.slug)
        for thought in self.opening_thoughts(memory):
            log(LogKind.THOUGHT, thought)

        # Planning
        extra = self.prepare(memory, log)
        context = self.template_context(memory, extra)
        log(LogKind.ACTION, f"LLM call: planning the {self.document_label}.")
        plan = await self.plan(context)
        context["plan"] = plan
        if not plan:
            log(LogKind.OBSERVATION, "No usable plan returned; continuing with an empty plan.")
        for observation in self.describe_plan(plan):
            log(LogKind.OBSERVATION, observation)
        self.after_plan(memory, log)

        # Drafting
        log(LogKind.THOUGHT, f"Plan ready. Drafting the full {self.document_label}.")
        log(LogKind.ACTION, f"LLM call: drafting the {self.document_label} as JSON.")
        document = await self.draft(context)
        if not document.get("theme"):
            document["theme"] = self.default_theme(memory)
            log(
                LogKind.OBSERVATION,
                f'Draft had no theme; using "{document["theme"]}".',
            )

        # Validating
        log(LogKind.ACTION, f"Validating the {self.document_label} structure.")
        result = validate(document, self.rule_set)
        log(
            LogKind.OBSERVATION,
            f"Quality score: {result.score}% | Errors: {_join_errors(result.errors)}",
        )
        profile = self.coherence_profile(memory)
        if profile is not None:
            log(
                LogKind.ACTION,
                f"Checking coherence {profile.upstream_label} -> {profile.downstream_label}.",
            )
            coherence = check_coherence(self.upstream(memory), document, profile)
            if coherence.coherent:
                log(LogKind.OBSERVATION, "Coherence with upstream document verified.")
            else:
                log(
                    LogKind.OBSERVATION,
                    "Coherence issues detected: " + " | ".join(coherence.issues),
                )
                memory.add_warnings(coherence.issues)

        # Repairing
        final_score = result.score
        repaired = False
        if not result.valid:
            log(
                LogKind.THOUGHT,
                f"Score {result.score}% is not enough. Targeted repair of: "
                + ", ".join(result.failed_fields),
            )
            log(LogKind.ACTION, "LLM call: targeted repair of the failing fields.")
            document = await self.repair(document, result)
            repaired = True
            second = validate(document, self.rule_set)
            final_score = second.score
            log(
                LogKind.OBSERVATION,
                f"Score after repair: {second.score}% | Remaining errors: "
                f"{_join_errors(second.errors)}",
            )
            log(
                LogKind.THOUGHT,
                "Repair succeeded."
                if second.valid
                else f"Final score {second.score}%; rendering the best available content.",
            )
        else:
            log(LogKind.THOUGHT, f"Score {result.score}%; no repair needed.")

        # Rendering
        output_path = self.output_path(memory)
        log(LogKind.ACTION, f"Rendering {self.extension.upper()} -> {output_path}")
        await self.render(document, memory, output_path)
        memory.record_file(self.document_type, output_path)

        # Done
        memory.set_document(self.document_type, document)
        log(LogKind.ACTION, f"Stored the {self.document_label} in shared memory.")
        summary = self.summarize(document)
        log(
            LogKind.RESULT,
            f"{self.document_label} done. File: {os.path.basename(output_path)}"
            + (f" | {summary}" if summary else ""),
        )
        logger.info(
            f"{self.document_label} stage finished.",
            score=final_score,
            repaired=repaired,
            output_path=output_path,
        )
        return StageOutcome(
            document_type=self.document_type,
            document=document,
            initial_score=result.score,
            final_score=final_score,
            repaired=repaired,
            output_path=output_path,
        )


def require_document(
    memory: SharedMemory, stage: str, doc_type: DocumentType, label: str
) -> dict[str, Any]:
    document = memory.get_document(doc_type)
    if document is None:
        raise MissingPrerequisiteError(stage, label)
    return document
