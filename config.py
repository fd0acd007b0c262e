# config.py
"""Configuration settings for the Prosit generation system.
Uses Pydantic BaseSettings for automatic environment variable loading.
"""

from __future__ import annotations

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = structlog.get_logger()


class ProsiSettings(BaseSettings):
    """Full configuration for the Prosit system."""

    # API and Model Configuration
    OPENAI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta/openai"
    OPENAI_API_KEY: str = ""
    MAIN_MODEL: str = "gemini-2.5-flash-lite"

    # Temperature Settings
    TEMPERATURE_DEFAULT: float = 0.7
    TEMPERATURE_PLANNING: float = 0.6
    TEMPERATURE_DRAFTING: float = 0.7
    TEMPERATURE_REPAIR: float = 0.4
    TEMPERATURE_STRUCTURING: float = 0.2

    # LLM Call Settings
    LLM_RETRY_ATTEMPTS: int = 3
    LLM_RETRY_DELAY_SECONDS: float = 8.0
    HTTPX_TIMEOUT: float = 300.0
    LLM_TOP_P: float = 0.95
    TIKTOKEN_DEFAULT_ENCODING: str = "cl100k_base"
    FALLBACK_CHARS_PER_TOKEN: float = 4.0
    TOKENIZER_CACHE_SIZE: int = 10
    # Concurrency across independent runs sharing one process
    MAX_CONCURRENT_LLM_CALLS: int = 4

    # Token budgets per call kind
    MAX_PLANNING_TOKENS: int = 2000
    MAX_PROSIT_ALLER_TOKENS: int = 3500
    MAX_PROSIT_RETOUR_TOKENS: int = 5000
    MAX_CER_TOKENS: int = 6000
    MAX_STRUCTURING_TOKENS: int = 2000
    MAX_STRUCTURING_SOURCE_TOKENS: int = 1500

    # Output
    BASE_OUTPUT_DIR: str = "output"
    INSTITUTION_NAME: str = "UCAC-ICAM"

    # Run identity defaults used when the caller omits a field
    DEFAULT_TOPIC: str = "Prosit"
    DEFAULT_STUDENT_NAME: str = "ÉTUDIANT"
    DEFAULT_PROGRAM: str = "X2027"
    DEFAULT_ACADEMIC_YEAR: str = "2025 – 2026"

    # Logging & UI
    LOG_LEVEL_STR: str = Field("INFO", alias="AGENT_LOG_LEVEL")
    LOG_FORMAT: str = (
        "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s"
    )
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    LOG_FILE: str | None = "prosit_run.log"
    ENABLE_RICH_PROGRESS: bool = True

    @model_validator(mode="after")
    def warn_missing_api_key(self) -> ProsiSettings:
        if not self.OPENAI_API_KEY.strip():
            logger.warning(
                "OPENAI_API_KEY is empty. LLM calls will be rejected by the provider."
            )
        return self

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", populate_by_name=True, extra="ignore"
    )


settings = ProsiSettings()


class RunDefaults(BaseModel):
    """Identity values applied when a run is created without them.

    Passed explicitly to :func:`orchestration.orchestrator.create_run`; use
    :meth:`from_settings` to derive them from the environment.
    """

    topic: str = "Prosit"
    student: str = "ÉTUDIANT"
    program: str = "X2027"
    academic_year: str = "2025 – 2026"
    output_dir: str = "output"

    @classmethod
    def from_settings(cls, source: ProsiSettings | None = None) -> RunDefaults:
        cfg = source or settings
        return cls(
            topic=cfg.DEFAULT_TOPIC,
            student=cfg.DEFAULT_STUDENT_NAME,
            program=cfg.DEFAULT_PROGRAM,
            academic_year=cfg.DEFAULT_ACADEMIC_YEAR,
            output_dir=cfg.BASE_OUTPUT_DIR,
        )
