# utils/logging.py

"""Process logging for Prosit runs.

The run audit trail kept in shared memory is separate; this module only wires
structlog and the stdlib handlers (rotating file, Rich console).
"""

from __future__ import annotations

import logging
import logging.handlers
import os

import structlog
from config import settings
from rich.logging import RichHandler

logger = structlog.get_logger(__name__)

__all__ = ["setup_logging", "resolve_log_path"]

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore")

_SHARED_PROCESSORS = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
    structlog.stdlib.render_to_log_kwargs,
]


def resolve_log_path(log_file: str, output_dir: str | None = None) -> str:
    """Relative log files live under the run output directory."""
    if os.path.isabs(log_file):
        return log_file
    return os.path.join(output_dir or settings.BASE_OUTPUT_DIR, log_file)


def _plain_formatter() -> logging.Formatter:
    return logging.Formatter(settings.LOG_FORMAT, datefmt=settings.LOG_DATE_FORMAT)


def _file_handler(output_dir: str | None) -> logging.Handler:
    path = resolve_log_path(settings.LOG_FILE, output_dir)
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(_plain_formatter())
    return handler


def _console_handler() -> logging.Handler:
    if settings.ENABLE_RICH_PROGRESS:
        # markup off: log messages quote LLM output with square brackets
        return RichHandler(
            level=settings.LOG_LEVEL_STR,
            rich_tracebacks=True,
            show_path=False,
            markup=False,
        )
    handler = logging.StreamHandler()
    handler.setFormatter(_plain_formatter())
    return handler


def setup_logging(output_dir: str | None = None) -> None:
    """Configure structlog over stdlib logging.

    Safe to call once per run; existing root handlers are replaced.
    """
    structlog.configure(
        processors=_SHARED_PROCESSORS,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(settings.LOG_LEVEL_STR)

    if settings.LOG_FILE:
        try:
            root.addHandler(_file_handler(output_dir))
        except OSError as exc:
            logger.error("Could not open log file %s: %s", settings.LOG_FILE, exc)

    root.addHandler(_console_handler())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(
        "Logging configured.",
        log_level=logging.getLevelName(settings.LOG_LEVEL_STR),
        log_file=settings.LOG_FILE or None,
    )
