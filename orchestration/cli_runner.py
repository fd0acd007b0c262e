# orchestration/cli_runner.py
"""Command-line runner for the Prosit pipeline."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass

import structlog
from config import RunDefaults, settings
from core.exceptions import PrositError
from core.llm_interface import llm_service
from ingestion.document_structurer import load_document
from models.document_models import DocumentType
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from utils.logging import setup_logging

from orchestration.models import (
    ORCHESTRATOR_TAG,
    LogEntry,
    LogKind,
    PipelineMode,
    PipelineResult,
    RunParams,
)
from orchestration.orchestrator import create_run, run_pipeline

logger = structlog.get_logger(__name__)

KIND_STYLES = {
    LogKind.THOUGHT: "cyan",
    LogKind.ACTION: "yellow",
    LogKind.OBSERVATION: "bright_black",
    LogKind.RESULT: "green",
}
STAGE_TAGS = {
    ORCHESTRATOR_TAG: ("Orchestr.", "magenta"),
    DocumentType.PROSIT_ALLER.value: ("Aller", "blue"),
    DocumentType.PROSIT_RETOUR.value: ("Retour", "yellow"),
    DocumentType.CER.value: ("CER", "green"),
}

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


@dataclass
class CliOptions:
    topic: str | None = None
    mode: str = PipelineMode.FULL.value
    skip_retour: bool = False
    output_dir: str | None = None
    student: str | None = None
    program: str | None = None
    academic_year: str | None = None
    context: str = ""
    prosit_aller_file: str | None = None
    prosit_retour_file: str | None = None


class ConsoleLogSink:
    """Prints run log entries as they are appended."""

    def __init__(self, console: Console) -> None:
        self.console = console

    def __call__(self, entry: LogEntry) -> None:
        tag, tag_style = STAGE_TAGS.get(entry.stage, (entry.stage, "white"))
        kind_style = KIND_STYLES.get(entry.kind, "white")
        # Text, not markup: messages and tags contain square brackets.
        self.console.print(
            Text.assemble(
                (f"[{tag:<9}] ", tag_style),
                (f"[{entry.kind.value:<11}] ", kind_style),
                entry.message,
            )
        )


def files_table(result: PipelineResult) -> Table:
    table = Table(title="Generated files")
    table.add_column("Document", style="bold")
    table.add_column("File")
    for doc_type in DocumentType:
        path = result.files.get(doc_type.value)
        if path:
            table.add_row(doc_type.value, os.path.basename(path))
    return table


async def build_params(options: CliOptions) -> RunParams:
    """Run parameters from CLI options, loading any imported documents."""
    prosit_aller = None
    prosit_retour = None
    if options.prosit_aller_file:
        prosit_aller = await load_document(options.prosit_aller_file, DocumentType.PROSIT_ALLER)
    if options.prosit_retour_file:
        prosit_retour = await load_document(
            options.prosit_retour_file, DocumentType.PROSIT_RETOUR
        )
    return RunParams(
        topic=options.topic,
        student=options.student,
        program=options.program,
        academic_year=options.academic_year,
        context=options.context,
        output_dir=options.output_dir,
        prosit_aller=prosit_aller,
        prosit_retour=prosit_retour,
    )


async def _run(options: CliOptions, console: Console) -> PipelineResult:
    try:
        params = await build_params(options)
        memory = create_run(params, RunDefaults.from_settings())
        console.print(
            Panel(
                Text(
                    f"Topic  : {memory.identity.topic}\n"
                    f"Mode   : {options.mode}"
                    f"{' (without Prosit Retour)' if options.skip_retour else ''}\n"
                    f"Output : {memory.output_dir}"
                ),
                title=f"{settings.INSTITUTION_NAME} · Prosit agents",
                border_style="blue",
                expand=False,
            )
        )
        return await run_pipeline(
            memory,
            options.mode,
            skip_retour=options.skip_retour,
            on_log=ConsoleLogSink(console),
            on_progress=lambda stage, status: logger.debug(
                "Stage progress", stage=stage, status=status
            ),
        )
    finally:
        await llm_service.aclose()


def run(options: CliOptions, console: Console | None = None) -> int:
    """Run the pipeline for ``options`` and return the process exit status."""
    output_dir = options.output_dir or settings.BASE_OUTPUT_DIR
    setup_logging(output_dir)
    console = console or Console()
    try:
        result = asyncio.run(_run(options, console))
    except KeyboardInterrupt:
        logger.info("Prosit run cancelled by KeyboardInterrupt.")
        return EXIT_INTERRUPTED
    except PrositError as err:
        logger.error("Prosit run failed: %s", err)
        console.print(Text.assemble(("ERROR ", "bold red"), str(err)))
        return EXIT_FAILURE
    except Exception as err:  # pragma: no cover - entry point catch
        logger.critical(
            "Prosit run encountered an unhandled exception: %s", err, exc_info=True
        )
        return EXIT_FAILURE

    console.print(files_table(result))
    for warning in result.warnings:
        console.print(Text.assemble(("Warning: ", "yellow"), warning))
    return EXIT_OK
