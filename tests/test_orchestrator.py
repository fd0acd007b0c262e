import asyncio
import copy

import pytest
from agents.cer_agent import CerAgent
from agents.prosit_aller_agent import PrositAllerAgent
from agents.prosit_retour_agent import PrositRetourAgent
from config import RunDefaults
from core.exceptions import (
    DocumentSlotError,
    MissingPrerequisiteError,
    NoJsonFoundError,
    PipelineCancelledError,
)
from models.document_models import DocumentType
from orchestration.models import ORCHESTRATOR_TAG, LogKind, PipelineMode, RunParams
from orchestration.orchestrator import create_run, run_pipeline, stages_for


@pytest.fixture
def agents(rendered):
    return {
        DocumentType.PROSIT_ALLER: PrositAllerAgent(renderer=rendered),
        DocumentType.PROSIT_RETOUR: PrositRetourAgent(renderer=rendered),
        DocumentType.CER: CerAgent(renderer=rendered),
    }


def _run(topic, tmp_path, **params):
    return create_run(RunParams(topic=topic, output_dir=str(tmp_path), **params))


def _stages_logged(result):
    return {entry.stage for entry in result.logs}


def test_create_run_applies_defaults(tmp_path):
    defaults = RunDefaults(student="MAYACK", program="X2028", output_dir=str(tmp_path))
    memory = create_run(RunParams(topic="Gestion des risques en entreprise"), defaults)
    assert memory.identity.student == "MAYACK"
    assert memory.identity.program == "X2028"
    assert memory.identity.academic_year == "2025 – 2026"
    assert memory.identity.slug == "gestion_des_risques_en_entreprise"
    assert memory.output_dir == str(tmp_path)
    assert memory.logs == ()


def test_create_run_without_topic_uses_default():
    memory = create_run(RunParams())
    assert memory.identity.topic == "Prosit"
    assert memory.identity.slug == "prosit"


def test_create_run_places_imported_documents(tmp_path, aller_doc, retour_doc):
    memory = _run("T", tmp_path, prosit_aller=aller_doc(), prosit_retour=retour_doc())
    assert memory.has_document(DocumentType.PROSIT_ALLER)
    assert memory.has_document(DocumentType.PROSIT_RETOUR)
    assert not memory.has_document(DocumentType.CER)


def test_stage_selection():
    assert stages_for(PipelineMode.FULL) == list(DocumentType)
    assert stages_for(PipelineMode.FULL, skip_retour=True) == [
        DocumentType.PROSIT_ALLER,
        DocumentType.CER,
    ]
    assert stages_for(PipelineMode.FROM_ALLER) == [
        DocumentType.PROSIT_RETOUR,
        DocumentType.CER,
    ]
    assert stages_for(PipelineMode.FROM_RETOUR, skip_retour=True) == [DocumentType.CER]


@pytest.mark.asyncio
async def test_full_run_repairs_once_and_continues(
    tmp_path, scripted_llm, agents, aller_doc, retour_doc, cer_doc
):
    weak_aller = aller_doc(mots_cles=["a", "b", "c", "d", "e"])
    fake = scripted_llm(
        {"domaine": "Réseaux"},
        weak_aller,
        {"mots_cles": ["a", "b", "c", "d", "e"]},
        {"themes_a_approfondir": ["VLAN"]},
        retour_doc(),
        {"niveau_detail": "avancé"},
        cer_doc(),
    )
    progress = []
    streamed = []
    memory = _run("Network security", tmp_path)
    result = await run_pipeline(
        memory,
        "full",
        on_log=streamed.append,
        on_progress=lambda stage, status: progress.append((stage, status)),
        agents=agents,
    )

    assert len(fake.calls) == 7
    aller_logs = [e for e in result.logs if e.stage == "prosit_aller"]
    repairs = [e for e in aller_logs if e.kind is LogKind.ACTION and "repair" in e.message]
    assert len(repairs) == 1
    assert any(e.message.startswith("Score after repair: 88%") for e in aller_logs)
    assert result.files["prosit_aller"].endswith("01_Prosit_Aller_network_security.docx")
    assert set(result.files) == {"prosit_aller", "prosit_retour", "cer"}
    assert result.prosit_retour is not None and result.cer is not None
    assert progress == [
        ("prosit_aller", "started"),
        ("prosit_aller", "done"),
        ("prosit_retour", "started"),
        ("prosit_retour", "done"),
        ("cer", "started"),
        ("cer", "done"),
    ]
    assert streamed == result.logs
    closing = [e for e in result.logs if e.kind is LogKind.RESULT and e.stage == ORCHESTRATOR_TAG]
    assert closing[-1].message.startswith("Pipeline complete. 3 file(s) generated.")


@pytest.mark.asyncio
async def test_topic_mismatch_reaches_result_warnings(
    tmp_path, scripted_llm, agents, aller_doc, retour_doc, cer_doc
):
    scripted_llm(
        {},
        aller_doc(theme="Cloud migration"),
        {},
        retour_doc(theme="Unrelated topic"),
        {},
        cer_doc(theme="Unrelated topic"),
    )
    result = await run_pipeline(_run("Cloud migration", tmp_path), agents=agents)

    assert any(
        "Topic mismatch" in w and "Cloud migration" in w and "Unrelated topic" in w
        for w in result.warnings
    )
    messages = [e.message for e in result.logs if e.stage == ORCHESTRATOR_TAG]
    assert any(m.startswith("Coherence warnings: ") for m in messages)


@pytest.mark.asyncio
async def test_from_retour_runs_cer_only(tmp_path, scripted_llm, agents, retour_doc, cer_doc):
    imported = retour_doc()
    pristine = copy.deepcopy(imported)
    fake = scripted_llm({}, cer_doc())
    memory = _run("Network security", tmp_path, prosit_retour=imported)
    result = await run_pipeline(memory, PipelineMode.FROM_RETOUR, skip_retour=True, agents=agents)

    assert "prosit_aller" not in _stages_logged(result)
    assert "prosit_retour" not in _stages_logged(result)
    assert len(fake.calls) == 2
    assert pristine["bilan"] in fake.calls[1]["user"]
    assert result.prosit_retour == pristine
    assert result.prosit_aller is None
    assert set(result.files) == {"cer"}


@pytest.mark.asyncio
async def test_from_aller_with_skipped_retour(tmp_path, scripted_llm, agents, aller_doc, cer_doc):
    scripted_llm({}, cer_doc())
    progress = []
    memory = _run("Network security", tmp_path, prosit_aller=aller_doc())
    result = await run_pipeline(
        memory,
        "from_aller",
        skip_retour=True,
        on_progress=lambda stage, status: progress.append((stage, status)),
        agents=agents,
    )
    assert progress[:2] == [("prosit_aller", "skipped"), ("prosit_retour", "skipped")]
    assert result.prosit_retour is None
    messages = [e.message for e in result.logs if e.stage == ORCHESTRATOR_TAG]
    assert "Prosit Retour stage skipped: skipped on request." in messages


@pytest.mark.asyncio
async def test_from_aller_without_document_fails(tmp_path, scripted_llm, agents):
    fake = scripted_llm()
    memory = _run("Network security", tmp_path)
    with pytest.raises(MissingPrerequisiteError):
        await run_pipeline(memory, "from_aller", agents=agents)
    assert fake.calls == []
    assert memory.logs[-1].message.startswith("Pipeline stopped. 0 file(s) generated.")


@pytest.mark.asyncio
async def test_from_retour_without_document_fails(tmp_path, scripted_llm, agents, aller_doc):
    scripted_llm()
    memory = _run("Network security", tmp_path, prosit_aller=aller_doc())
    with pytest.raises(MissingPrerequisiteError):
        await run_pipeline(memory, "from_retour", agents=agents)


@pytest.mark.asyncio
async def test_full_run_refuses_to_overwrite_import(tmp_path, scripted_llm, agents, aller_doc):
    scripted_llm()
    memory = _run("Network security", tmp_path, prosit_aller=aller_doc())
    with pytest.raises(DocumentSlotError):
        await run_pipeline(memory, "full", agents=agents)


@pytest.mark.asyncio
async def test_stage_failure_keeps_earlier_documents(
    tmp_path, scripted_llm, agents, aller_doc
):
    scripted_llm({}, aller_doc(), {}, "aucun JSON")
    progress = []
    memory = _run("Network security", tmp_path)
    with pytest.raises(NoJsonFoundError):
        await run_pipeline(
            memory,
            agents=agents,
            on_progress=lambda stage, status: progress.append((stage, status)),
        )
    assert memory.prosit_aller is not None
    assert set(memory.files) == {"prosit_aller"}
    assert progress[-1] == ("prosit_retour", "failed")
    assert memory.logs[-1].kind is LogKind.RESULT
    assert memory.logs[-1].message.startswith("Pipeline stopped. 1 file(s) generated.")


@pytest.mark.asyncio
async def test_cancel_event_stops_before_next_stage(tmp_path, scripted_llm, agents):
    fake = scripted_llm()
    cancel = asyncio.Event()
    cancel.set()
    memory = _run("Network security", tmp_path)
    with pytest.raises(PipelineCancelledError):
        await run_pipeline(memory, agents=agents, cancel_event=cancel)
    assert fake.calls == []
    assert "prosit_aller" not in {entry.stage for entry in memory.logs}


@pytest.mark.asyncio
async def test_independent_runs_do_not_share_state(tmp_path, scripted_llm, agents, aller_doc):
    first = _run("Sujet un", tmp_path)
    second = _run("Sujet deux", tmp_path)
    first.add_warning("only in first")
    assert second.warnings == ()
    assert first.identity.slug != second.identity.slug
