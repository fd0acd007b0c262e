import pytest
from agents.cer_agent import CerAgent, analyze_memory
from orchestration.models import LogKind, RunParams
from orchestration.orchestrator import create_run
from processing.coherence_checker import ALLER_TO_CER, RETOUR_TO_CER


def _memory(tmp_path, **params):
    return create_run(RunParams(topic="Network security", output_dir=str(tmp_path), **params))


def test_analysis_of_both_documents(tmp_path, aller_doc, retour_doc):
    memory = _memory(tmp_path, prosit_aller=aller_doc(), prosit_retour=retour_doc())
    analysis = analyze_memory(memory)
    assert analysis.source == "PA + PR"
    assert analysis.richness == "riche"
    assert analysis.has_retour
    assert analysis.average_score is None


def test_analysis_of_aller_only(tmp_path, aller_doc):
    analysis = analyze_memory(_memory(tmp_path, prosit_aller=aller_doc()))
    assert analysis.source == "PA seul"
    assert analysis.richness == "moyenne"
    assert not analysis.has_retour


def test_analysis_of_minimal_import(tmp_path):
    analysis = analyze_memory(_memory(tmp_path, prosit_retour={"theme": "x", "raw_text": "y"}))
    assert analysis.source == "PR seul"
    assert analysis.richness == "minimale"


def test_average_score_rounds_half_up(tmp_path, aller_doc):
    memory = _memory(tmp_path, prosit_aller=aller_doc())
    memory.append_log("prosit_aller", LogKind.OBSERVATION, "Quality score: 75% | Errors: x")
    memory.append_log("prosit_retour", LogKind.OBSERVATION, "Score after repair: 80% | none")
    memory.append_log("prosit_retour", LogKind.THOUGHT, "Score 10% is not enough.")
    memory.append_log("cer", LogKind.OBSERVATION, "Quality score: 0% | Errors: all")
    memory.add_warning("Topic mismatch")
    analysis = analyze_memory(memory, exclude_stage="cer")
    assert analysis.average_score == 78
    assert analysis.warning_count == 1


def test_upstream_prefers_retour(tmp_path, aller_doc, retour_doc):
    agent = CerAgent(renderer=lambda *args: None)
    both = _memory(tmp_path, prosit_aller=aller_doc(), prosit_retour=retour_doc(bilan="B" * 70))
    assert agent.upstream(both)["bilan"] == "B" * 70
    assert agent.coherence_profile(both) is RETOUR_TO_CER
    only_aller = _memory(tmp_path, prosit_aller=aller_doc())
    assert agent.upstream(only_aller)["mots_cles"]
    assert agent.coherence_profile(only_aller) is ALLER_TO_CER


@pytest.mark.asyncio
async def test_cer_prompt_carries_analysis_and_warnings(
    tmp_path, scripted_llm, rendered, retour_doc, cer_doc
):
    fake = scripted_llm({"niveau_detail": "avancé"}, cer_doc())
    memory = _memory(tmp_path, prosit_retour=retour_doc())
    memory.add_warning("Topic mismatch: earlier run")
    outcome = await CerAgent(renderer=rendered).run(memory)

    assert "Données disponibles (PR seul)" in fake.calls[0]["user"]
    assert "Topic mismatch: earlier run" in fake.calls[0]["user"]
    assert "Niveau de détail requis : avancé" in fake.calls[1]["system"]
    assert outcome.output_path.endswith("03_CER_network_security.docx")
    assert memory.cer == outcome.document
    messages = [entry.message for entry in memory.logs_for("cer")]
    assert any(m.startswith("Source: PR seul | Richness: riche") for m in messages)
