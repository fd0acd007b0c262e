# rendering/base.py
"""Async wrapper running the synchronous office-document builders."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable

import structlog
from core.exceptions import RenderError

logger = structlog.get_logger(__name__)


async def render_in_executor(build: Callable[[], None], output_path: str) -> None:
    """Run a synchronous ``build`` in the default executor.

    The parent directory of ``output_path`` is created first. Any failure is
    reported as ``RenderError``.
    """
    loop = asyncio.get_running_loop()
    try:
        parent = os.path.dirname(output_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        await loop.run_in_executor(None, build)
    except RenderError:
        raise
    except Exception as exc:
        logger.error(f"Rendering {output_path} failed: {exc}", exc_info=True)
        raise RenderError(output_path, str(exc)) from exc
    logger.info(f"Rendered {os.path.basename(output_path)}.")
