# prompt_renderer.py
"""Utilities for rendering LLM prompts using Jinja2 templates."""

import dataclasses
import json
from enum import Enum
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from pydantic import BaseModel

PROMPTS_PATH = Path(__file__).parent / "prompts"
_env = Environment(
    loader=FileSystemLoader(PROMPTS_PATH),
    autoescape=False,
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
)


def _default_json_serializer(value: Any) -> Any:
    """Serialize pydantic models, dataclasses and enums for JSON output."""
    if isinstance(value, BaseModel):
        return value.model_dump(exclude_none=True)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(
        f"Object of type {value.__class__.__name__} is not JSON serializable"
    )


def _tojson(value: Any, indent: int | None = 2) -> str:
    """JSON filter that supports pydantic models and keeps accented text readable."""
    return json.dumps(
        value,
        default=_default_json_serializer,
        ensure_ascii=False,
        indent=indent,
    )


_env.filters["tojson"] = _tojson


def render_prompt(template_name: str, context: dict[str, Any]) -> str:
    """Render a Jinja2 template from the prompts directory."""
    template = _env.get_template(template_name)
    return template.render(**context).strip()
