# tests/test_config.py

import config
from config import ProsiSettings, RunDefaults


def test_empty_api_key_warns(monkeypatch):
    warnings: list[str] = []

    def fake_warning(msg: str, **_kw: object) -> None:
        warnings.append(msg)

    monkeypatch.setattr(config.logger, "warning", fake_warning)
    ProsiSettings(OPENAI_API_KEY="  ")
    assert any("OPENAI_API_KEY" in msg for msg in warnings)


def test_token_budgets():
    cfg = ProsiSettings(OPENAI_API_KEY="valid")
    assert cfg.MAX_PLANNING_TOKENS == 2000
    assert (cfg.MAX_PROSIT_ALLER_TOKENS, cfg.MAX_PROSIT_RETOUR_TOKENS, cfg.MAX_CER_TOKENS) == (
        3500,
        5000,
        6000,
    )


def test_log_level_alias():
    cfg = ProsiSettings(OPENAI_API_KEY="valid", AGENT_LOG_LEVEL="DEBUG")
    assert cfg.LOG_LEVEL_STR == "DEBUG"


def test_run_defaults_from_settings():
    cfg = ProsiSettings(
        OPENAI_API_KEY="valid",
        DEFAULT_STUDENT_NAME="MAYACK ETIENNE",
        BASE_OUTPUT_DIR="/tmp/prosits",
    )
    defaults = RunDefaults.from_settings(cfg)
    assert defaults.student == "MAYACK ETIENNE"
    assert defaults.output_dir == "/tmp/prosits"
    assert defaults.program == "X2027"
