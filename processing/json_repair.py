# processing/json_repair.py
"""Recover JSON values from raw LLM output.

LLM responses frequently wrap JSON in markdown fences, surround it with
prose, leave trailing commas or get cut off by the output token cap. The
helpers here strip the noise, isolate the first object or array and close
any structure left open by truncation.
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog
from core.exceptions import NoJsonFoundError, UnparsableJsonError

logger = structlog.get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_DANGLING_KEY_RE = re.compile(r":\s*$")
_PLACEHOLDER = '"..."'
_CLOSERS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    """Remove markdown code fence markers anywhere in ``text``."""
    return _FENCE_RE.sub("", text).strip()


def _find_value_end(text: str) -> int:
    """Return the index closing the leading JSON value, or ``-1`` if truncated.

    ``text`` must start with ``{`` or ``[``.
    """
    depth = 0
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return index
    return -1


def remove_trailing_commas(text: str) -> str:
    """Drop commas that directly precede a closing brace or bracket.

    String literals are left untouched.
    """
    out: list[str] = []
    in_string = False
    escaped = False
    pending_comma: int | None = None
    for char in text:
        if in_string:
            out.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == ",":
            pending_comma = len(out)
            out.append(char)
            continue
        if char in "}]" and pending_comma is not None:
            del out[pending_comma]
        if not char.isspace():
            pending_comma = None
        if char == '"':
            in_string = True
        out.append(char)
    return "".join(out)


def repair_truncated(text: str) -> str:
    """Close every structure left open in ``text``.

    The text is replayed with a stack of expected closers. A dangling
    ``"key":`` receives an empty string, an unterminated string literal is
    replaced by a placeholder and the open structures are closed last in,
    first out.
    """
    stack: list[str] = []
    in_string = False
    escaped = False
    string_start = -1
    end = len(text)
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
                if not stack:
                    end = index + 1
                    break
            continue
        if char == '"':
            in_string = True
            string_start = index
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in "}]" and stack:
            stack.pop()

    result = text[:end]
    if in_string:
        result = result[:string_start] + _PLACEHOLDER
    else:
        result = result.rstrip()
        if result.endswith(","):
            result = result[:-1].rstrip()
        if _DANGLING_KEY_RE.search(result):
            result = result + ' ""'

    while stack:
        result += stack.pop()
    return result


def extract_json(raw: str) -> dict[str, Any] | list[Any]:
    """Extract the first JSON object or array from ``raw`` LLM output.

    Raises:
        NoJsonFoundError: If no ``{`` or ``[`` occurs in the text.
        UnparsableJsonError: If the candidate cannot be repaired into JSON.
    """
    if raw is None:
        raise NoJsonFoundError("No JSON found in an empty LLM response.")
    if not isinstance(raw, str):
        raise TypeError(f"extract_json expects a string, got {type(raw).__name__}")

    text = strip_code_fences(raw)
    match = re.search(r"[{\[]", text)
    if match is None:
        raise NoJsonFoundError("No JSON object or array found in the LLM response.")
    text = text[match.start() :]

    end = _find_value_end(text)
    if end == -1:
        logger.debug(
            "JSON candidate is truncated; closing open structures.",
            length=len(text),
        )
        candidate = repair_truncated(text)
    else:
        candidate = text[: end + 1]

    candidate = remove_trailing_commas(candidate)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as first_error:
        logger.debug(
            "First JSON parse failed; retrying after repair.",
            error=str(first_error),
        )
        repaired = remove_trailing_commas(repair_truncated(candidate))
        try:
            return json.loads(repaired)
        except json.JSONDecodeError as exc:
            snippet = candidate[:200].replace("\n", " ")
            raise UnparsableJsonError(
                f"Could not parse JSON from LLM response ({exc.msg} at position {exc.pos}): {snippet}"
            ) from exc
