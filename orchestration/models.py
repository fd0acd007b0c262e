# orchestration/models.py
"""Shared state and result types for one pipeline run."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog
from core.exceptions import DocumentSlotError
from models.document_models import DocumentType
from pydantic import BaseModel

logger = structlog.get_logger(__name__)

ORCHESTRATOR_TAG = "orchestrator"

class LogKind(str, Enum):
    THOUGHT = "thought"
    ACTION = "action"
    OBSERVATION = "observation"
    RESULT = "result"


class PipelineMode(str, Enum):
    """Which stages a run executes."""

    FULL = "full"
    FROM_ALLER = "from_aller"
    FROM_RETOUR = "from_retour"


@dataclass(frozen=True)
class LogEntry:
    """One audit-trail line of a run."""

    stage: str
    kind: LogKind
    message: str
    timestamp: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "stage": self.stage,
            "kind": self.kind.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


LogSink = Callable[[LogEntry], None]
ProgressSink = Callable[[str, str], None]


@dataclass(frozen=True)
class RunIdentity:
    """Who and what a run is for; handed to prompts and renderers."""

    topic: str
    student: str
    program: str
    academic_year: str
    slug: str
    context: str = ""


class RunParams(BaseModel):
    """Caller-supplied parameters for :func:`orchestration.orchestrator.create_run`.

    Omitted identity fields are filled from :class:`config.RunDefaults`.
    ``prosit_aller`` and ``prosit_retour`` carry imported documents that are
    placed in their slots before the pipeline starts.
    """

    topic: str | None = None
    student: str | None = None
    program: str | None = None
    academic_year: str | None = None
    context: str = ""
    output_dir: str | None = None
    prosit_aller: dict[str, Any] | None = None
    prosit_retour: dict[str, Any] | None = None


@dataclass
class SharedMemory:
    """Mutable state threaded through the stages of a single run.

    Document slots are written at most once. The log and the warning list
    only grow.
    """

    identity: RunIdentity
    output_dir: str
    _documents: dict[DocumentType, dict[str, Any]] = field(default_factory=dict)
    _files: dict[DocumentType, str] = field(default_factory=dict)
    _logs: list[LogEntry] = field(default_factory=list)
    _warnings: list[str] = field(default_factory=list)

    # Document slots
    def get_document(self, doc_type: DocumentType) -> dict[str, Any] | None:
        return self._documents.get(doc_type)

    def has_document(self, doc_type: DocumentType) -> bool:
        return doc_type in self._documents

    def set_document(self, doc_type: DocumentType, document: dict[str, Any]) -> None:
        if doc_type in self._documents:
            raise DocumentSlotError(
                f"Document slot '{doc_type.value}' is already populated for this run."
            )
        self._documents[doc_type] = document

    @property
    def prosit_aller(self) -> dict[str, Any] | None:
        return self._documents.get(DocumentType.PROSIT_ALLER)

    @property
    def prosit_retour(self) -> dict[str, Any] | None:
        return self._documents.get(DocumentType.PROSIT_RETOUR)

    @property
    def cer(self) -> dict[str, Any] | None:
        return self._documents.get(DocumentType.CER)

    # Rendered files
    def record_file(self, doc_type: DocumentType, path: str) -> None:
        self._files[doc_type] = path

    @property
    def files(self) -> dict[str, str]:
        return {doc_type.value: path for doc_type, path in self._files.items()}

    # Audit log
    def append_log(self, stage: str, kind: LogKind, message: str) -> LogEntry:
        entry = LogEntry(
            stage=stage,
            kind=LogKind(kind),
            message=message,
            timestamp=datetime.now(timezone.utc),
        )
        self._logs.append(entry)
        logger.debug(
            "Run log entry", stage=stage, kind=entry.kind.value, message=message
        )
        return entry

    @property
    def logs(self) -> tuple[LogEntry, ...]:
        return tuple(self._logs)

    def logs_for(self, stage: str) -> list[LogEntry]:
        return [entry for entry in self._logs if entry.stage == stage]

    # Coherence warnings
    def add_warning(self, message: str) -> None:
        self._warnings.append(message)

    def add_warnings(self, messages: list[str]) -> None:
        self._warnings.extend(messages)

    @property
    def warnings(self) -> tuple[str, ...]:
        return tuple(self._warnings)


@dataclass
class PipelineResult:
    """What :func:`orchestration.orchestrator.run_pipeline` returns."""

    prosit_aller: dict[str, Any] | None
    prosit_retour: dict[str, Any] | None
    cer: dict[str, Any] | None
    files: dict[str, str]
    logs: list[LogEntry]
    warnings: list[str]

    @classmethod
    def from_memory(cls, memory: SharedMemory) -> PipelineResult:
        return cls(
            prosit_aller=memory.prosit_aller,
            prosit_retour=memory.prosit_retour,
            cer=memory.cer,
            files=memory.files,
            logs=list(memory.logs),
            warnings=list(memory.warnings),
        )


@dataclass
class StageOutcome:
    """Result of one stage: the final document and how it got there."""

    document_type: DocumentType
    document: dict[str, Any]
    initial_score: int
    final_score: int
    repaired: bool
    output_path: str
