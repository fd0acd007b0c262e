import json
import os
import sys

import pytest

# Ensure repository root is on PYTHONPATH for tests
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

# Ensure placeholder secrets do not trigger validators during tests
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("LOG_FILE", "")

from core.llm_interface import llm_service  # noqa: E402


class ScriptedLLM:
    """Stands in for ``llm_service.complete`` and replays canned replies."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def complete(
        self, system_prompt, messages, max_tokens, temperature=None, model_name=None
    ):
        self.calls.append(
            {
                "system": system_prompt,
                "user": messages[-1]["content"],
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        if not self.replies:
            raise AssertionError("Unexpected LLM call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return reply
        return json.dumps(reply, ensure_ascii=False)


@pytest.fixture
def scripted_llm(monkeypatch):
    def install(*replies):
        fake = ScriptedLLM(replies)
        monkeypatch.setattr(llm_service, "complete", fake.complete)
        return fake

    return install


KEYWORDS = [
    "pare-feu",
    "chiffrement",
    "authentification",
    "vulnérabilité",
    "segmentation",
    "journalisation",
]


def make_aller(theme="Network security", **overrides):
    document = {
        "theme": theme,
        "mots_cles": list(KEYWORDS),
        "contexte": (
            "Une PME industrielle a subi une intrusion sur son réseau interne. "
            "La direction demande un audit complet et un plan de remédiation chiffré."
        ),
        "definition_besoins": ["Protéger les données", "Assurer la disponibilité"],
        "problematique": "Comment sécuriser le réseau sans bloquer la production ?",
        "contraintes": ["Budget limité", "Délai de trois mois", "Équipe réduite"],
        "generalisation": "Sécuriser un système d'information existant",
        "pistes_solution": [
            "Un pare-feu suffit-il ?",
            "Faut-il segmenter le réseau ?",
            "Le chiffrement est-il nécessaire ?",
        ],
        "plan_action": ["Auditer", "Prioriser", "Déployer", "Contrôler"],
    }
    document.update(overrides)
    return document


def make_retour(theme="Network security", **overrides):
    document = {
        "theme": theme,
        "definitions": {keyword: f"Définition de {keyword}" for keyword in KEYWORDS},
        "contexte_rappel": (
            "Rappel : une PME industrielle a subi une intrusion et doit sécuriser "
            "son réseau interne rapidement."
        ),
        "besoins": ["Protéger les données", "Assurer la disponibilité"],
        "contraintes": ["Budget limité", "Délai de trois mois"],
        "problematique": "Comment sécuriser le réseau sans bloquer la production ?",
        "generalisation": "Sécuriser un système d'information existant",
        "validation_hypotheses": [
            {"hypothese": "Pare-feu", "statut": "Invalidé", "justification": "Insuffisant seul"},
            {"hypothese": "Segmentation", "statut": "Validé", "justification": "Limite la propagation"},
            {"hypothese": "Chiffrement", "statut": "Validé", "justification": "Protège les flux"},
        ],
        "plan_action": ["Auditer", "Segmenter", "Chiffrer"],
        "solutions": [
            {"titre": "VLAN", "description": "Isoler les ateliers du réseau bureautique."},
            {"titre": "VPN", "description": "Chiffrer les accès distants."},
        ],
        "bilan": (
            "La défense en profondeur combine segmentation, chiffrement et supervision "
            "pour un coût maîtrisé."
        ),
    }
    document.update(overrides)
    return document


def make_cer(theme="Network security", **overrides):
    document = {
        "theme": theme,
        "contexte": "C" * 120,
        "objectifs_savoir": ["[OBJ_ID_1] a", "[OBJ_ID_2] b", "[OBJ_ID_3] c", "[OBJ_ID_4] d"],
        "objectifs_savoir_faire": ["[OBJ_ID_1] e", "[OBJ_ID_2] f", "[OBJ_ID_3] g", "[OBJ_ID_4] h"],
        "besoins": ["Protéger", "Disponibilité"],
        "problematique": "Comment sécuriser le réseau ?",
        "contraintes": ["Budget", "Délai", "Équipe"],
        "generalisation": "Sécuriser un SI existant",
        "pistes_solution": ["Segmenter ?"],
        "plan_action": ["Auditer", "Déployer"],
        "realisation": [
            {"titre": "Audit", "contenu": "Cartographie des flux.\n\nRésultats."},
            {"titre": "Segmentation", "contenu": "Mise en place des VLAN."},
            {"titre": "Supervision", "contenu": "Collecte des journaux."},
        ],
        "validation_hypotheses": [
            {"hypothese": "Pare-feu", "statut": "Invalidé"},
            {"hypothese": "Segmentation", "statut": "Validé"},
            {"hypothese": "Chiffrement", "statut": "Validé"},
        ],
        "conclusion": "K" * 120,
        "synthese": "S" * 220,
        "methodes_utilisees": [
            {"titre": "EBIOS RM", "reference": "ANSSI, 2018", "description": "Analyse de risque"},
            {"titre": "ISO 27001", "reference": "ISO, 2022", "description": "Référentiel"},
        ],
        "references_bibliographiques": ["Ref 1", "Ref 2", "Ref 3"],
    }
    document.update(overrides)
    return document


@pytest.fixture
def aller_doc():
    return make_aller


@pytest.fixture
def retour_doc():
    return make_retour


@pytest.fixture
def cer_doc():
    return make_cer


@pytest.fixture
def rendered():
    """Stub renderer recording the paths it was asked to write."""
    calls = []

    async def render(document, identity, output_path):
        calls.append((document, identity, output_path))

    render.calls = calls
    return render
