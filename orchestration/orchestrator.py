# orchestration/orchestrator.py
"""Sequencer for the three generation stages of a run.

The orchestrator never generates or validates anything itself. It decides
which stages execute for the chosen mode, forwards every stage log entry into
the run's shared log (tagged with the stage) and reports progress.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping

import structlog
from agents.cer_agent import CerAgent
from agents.prosit_aller_agent import PrositAllerAgent
from agents.prosit_retour_agent import PrositRetourAgent
from agents.stage_agent import DocumentStageAgent, StageLog
from config import RunDefaults
from core.exceptions import (
    DocumentSlotError,
    MissingPrerequisiteError,
    PipelineCancelledError,
)
from models.document_models import DocumentType
from utils.text_processing import slugify

from orchestration.models import (
    ORCHESTRATOR_TAG,
    LogKind,
    LogSink,
    PipelineMode,
    PipelineResult,
    ProgressSink,
    RunIdentity,
    RunParams,
    SharedMemory,
)

logger = structlog.get_logger(__name__)

StageAgents = Mapping[DocumentType, DocumentStageAgent]

_LABELS = {
    DocumentType.PROSIT_ALLER: "Prosit Aller",
    DocumentType.PROSIT_RETOUR: "Prosit Retour",
    DocumentType.CER: "CER",
}


def create_run(params: RunParams, defaults: RunDefaults | None = None) -> SharedMemory:
    """Build the shared memory of a new run.

    Identity fields the caller left empty come from ``defaults``. Imported
    documents in ``params`` are placed in their slots.
    """
    cfg = defaults or RunDefaults()
    topic = (params.topic or "").strip() or cfg.topic
    identity = RunIdentity(
        topic=topic,
        student=params.student or cfg.student,
        program=params.program or cfg.program,
        academic_year=params.academic_year or cfg.academic_year,
        slug=slugify(topic),
        context=params.context or "",
    )
    memory = SharedMemory(identity=identity, output_dir=params.output_dir or cfg.output_dir)
    if params.prosit_aller is not None:
        memory.set_document(DocumentType.PROSIT_ALLER, params.prosit_aller)
    if params.prosit_retour is not None:
        memory.set_document(DocumentType.PROSIT_RETOUR, params.prosit_retour)
    logger.info(
        "Run created.",
        topic=identity.topic,
        slug=identity.slug,
        imported=[doc_type.value for doc_type in DocumentType if memory.has_document(doc_type)],
    )
    return memory


def default_agents() -> dict[DocumentType, DocumentStageAgent]:
    return {
        DocumentType.PROSIT_ALLER: PrositAllerAgent(),
        DocumentType.PROSIT_RETOUR: PrositRetourAgent(),
        DocumentType.CER: CerAgent(),
    }


def stages_for(mode: PipelineMode, skip_retour: bool = False) -> list[DocumentType]:
    """Stages that execute for ``mode``, in order."""
    if mode is PipelineMode.FROM_RETOUR:
        return [DocumentType.CER]
    stages = [DocumentType.PROSIT_ALLER] if mode is PipelineMode.FULL else []
    if not skip_retour:
        stages.append(DocumentType.PROSIT_RETOUR)
    stages.append(DocumentType.CER)
    return stages


class _RunLog:
    """Appends to the shared log and forwards each entry to the caller."""

    def __init__(self, memory: SharedMemory, on_log: LogSink | None) -> None:
        self.memory = memory
        self.on_log = on_log

    def __call__(self, stage: str, kind: LogKind, message: str) -> None:
        entry = self.memory.append_log(stage, kind, message)
        if self.on_log is not None:
            self.on_log(entry)

    def for_stage(self, stage: str) -> StageLog:
        def log(kind: LogKind, message: str) -> None:
            self(stage, kind, message)

        return log


def _check_mode_inputs(
    memory: SharedMemory, mode: PipelineMode, stages: list[DocumentType]
) -> None:
    if mode is PipelineMode.FROM_ALLER and not memory.has_document(DocumentType.PROSIT_ALLER):
        raise MissingPrerequisiteError(ORCHESTRATOR_TAG, "Prosit Aller")
    if mode is PipelineMode.FROM_RETOUR and not memory.has_document(DocumentType.PROSIT_RETOUR):
        raise MissingPrerequisiteError(ORCHESTRATOR_TAG, "Prosit Retour")
    for doc_type in stages:
        if memory.has_document(doc_type):
            raise DocumentSlotError(
                f"Mode '{mode.value}' would regenerate the imported {_LABELS[doc_type]}."
            )


async def run_pipeline(
    memory: SharedMemory,
    mode: PipelineMode | str = PipelineMode.FULL,
    skip_retour: bool = False,
    on_log: LogSink | None = None,
    on_progress: ProgressSink | None = None,
    cancel_event: asyncio.Event | None = None,
    agents: StageAgents | None = None,
) -> PipelineResult:
    """Run the stages selected by ``mode`` over ``memory``.

    Any stage error propagates unchanged; documents and files produced by
    earlier stages stay in ``memory``. A closing result entry is logged even
    when the run stops early.

    Raises:
        MissingPrerequisiteError: The mode needs an imported document that is
            not in ``memory``.
        PipelineCancelledError: ``cancel_event`` was set before a stage.
    """
    mode = PipelineMode(mode)
    if mode is PipelineMode.FROM_RETOUR:
        skip_retour = False
    stages = stages_for(mode, skip_retour)
    stage_agents = agents if agents is not None else default_agents()
    log = _RunLog(memory, on_log)

    def progress(stage: str, status: str) -> None:
        if on_progress is not None:
            on_progress(stage, status)

    identity = memory.identity
    log(
        ORCHESTRATOR_TAG,
        LogKind.THOUGHT,
        f"Execution mode: {mode.value} | skip_retour: {skip_retour}",
    )
    log(
        ORCHESTRATOR_TAG,
        LogKind.THOUGHT,
        f"Topic: \"{identity.topic}\" | Student: {identity.student} | Program: {identity.program}",
    )
    log(
        ORCHESTRATOR_TAG,
        LogKind.OBSERVATION,
        "Initial memory: "
        f"prosit_aller={memory.has_document(DocumentType.PROSIT_ALLER)}, "
        f"prosit_retour={memory.has_document(DocumentType.PROSIT_RETOUR)}",
    )
    log(ORCHESTRATOR_TAG, LogKind.OBSERVATION, f"Output directory: {memory.output_dir}")

    completed = False
    try:
        _check_mode_inputs(memory, mode, stages)
        for doc_type in DocumentType:
            stage = doc_type.value
            label = _LABELS[doc_type]
            if doc_type not in stages:
                if doc_type is DocumentType.PROSIT_RETOUR and skip_retour:
                    reason = "skipped on request"
                elif memory.has_document(doc_type):
                    reason = f"already in memory (mode={mode.value})"
                else:
                    reason = f"not run in mode {mode.value}"
                log(ORCHESTRATOR_TAG, LogKind.OBSERVATION, f"{label} stage skipped: {reason}.")
                progress(stage, "skipped")
                continue

            if cancel_event is not None and cancel_event.is_set():
                raise PipelineCancelledError(f"Run cancelled before the {label} stage.")

            log(ORCHESTRATOR_TAG, LogKind.ACTION, f"Delegating to the {label} stage.")
            progress(stage, "started")
            try:
                outcome = await stage_agents[doc_type].run(memory, log.for_stage(stage))
            except BaseException:
                progress(stage, "failed")
                raise
            log(
                ORCHESTRATOR_TAG,
                LogKind.OBSERVATION,
                f"{label} stage finished -> {os.path.basename(outcome.output_path)}",
            )
            progress(stage, "done")
        completed = True
    finally:
        files = memory.files
        warnings = memory.warnings
        status = "Pipeline complete." if completed else "Pipeline stopped."
        log(
            ORCHESTRATOR_TAG,
            LogKind.RESULT,
            f"{status} {len(files)} file(s) generated. Warnings: {len(warnings)}",
        )
        if warnings:
            log(
                ORCHESTRATOR_TAG,
                LogKind.OBSERVATION,
                "Coherence warnings: " + " | ".join(warnings),
            )
        logger.info(
            status,
            slug=identity.slug,
            files=len(files),
            warnings=len(warnings),
        )

    return PipelineResult.from_memory(memory)
