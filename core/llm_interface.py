# core/llm_interface.py
"""
Handles all direct interactions with the Large Language Model endpoint.
Includes the chat completion call with retries, response cleaning and the
tiktoken helpers used to size prompts.
"""

import asyncio
import functools
import random
import re
from typing import Any

import httpx
import structlog
import tiktoken
from config import settings

from core.exceptions import LLMServiceError

logger = structlog.get_logger(__name__)

_REASONING_TAGS = "think|thought|thinking|reasoning|reflection"
_REASONING_BLOCK_RE = re.compile(
    rf"<\s*({_REASONING_TAGS})\s*>.*?<\s*/\s*\1\s*>", re.DOTALL | re.IGNORECASE
)
_STRAY_TAG_RE = re.compile(rf"<\s*/?\s*(?:{_REASONING_TAGS})\s*/?\s*>", re.IGNORECASE)


def _completion_token_param(api_base: str) -> str:
    # OpenAI's own endpoint renamed the output cap; compatible servers did not.
    if "api.openai.com" in api_base:
        return "max_completion_tokens"
    return "max_tokens"


@functools.lru_cache(maxsize=settings.TOKENIZER_CACHE_SIZE)
def _get_tokenizer(model_name: str) -> tiktoken.Encoding | None:
    """tiktoken encoding for ``model_name``, the default encoding, or None."""
    try:
        return tiktoken.encoding_for_model(model_name)
    except KeyError:
        pass
    try:
        return tiktoken.get_encoding(settings.TIKTOKEN_DEFAULT_ENCODING)
    except Exception as exc:  # network or cache failures inside tiktoken
        logger.error(
            "No tokenizer available, estimating tokens from characters.",
            model=model_name,
            error=str(exc),
        )
        return None


def count_tokens(text: str, model_name: str | None = None) -> int:
    if not text:
        return 0
    encoder = _get_tokenizer(model_name or settings.MAIN_MODEL)
    if encoder is None:
        return int(len(text) / settings.FALLBACK_CHARS_PER_TOKEN)
    return len(encoder.encode(text, allowed_special="all"))


def truncate_text_by_tokens(
    text: str,
    max_tokens: int,
    model_name: str | None = None,
    truncation_marker: str = "\n... (truncated)",
) -> str:
    """Cut ``text`` to ``max_tokens``, ending with ``truncation_marker`` when cut."""
    if not text:
        return ""
    encoder = _get_tokenizer(model_name or settings.MAIN_MODEL)
    if encoder is None:
        limit = int(max_tokens * settings.FALLBACK_CHARS_PER_TOKEN)
        if len(text) <= limit:
            return text
        return text[: max(limit - len(truncation_marker), 0)] + truncation_marker

    tokens = encoder.encode(text, allowed_special="all")
    if len(tokens) <= max_tokens:
        return text
    keep = max_tokens - len(encoder.encode(truncation_marker, allowed_special="all"))
    if keep <= 0:
        return encoder.decode(tokens[:max_tokens])
    return encoder.decode(tokens[:keep]) + truncation_marker


class LLMService:
    """Chat-completion client shared by every stage of every run."""

    def __init__(self, timeout: float = settings.HTTPX_TIMEOUT):
        self._client = httpx.AsyncClient(timeout=timeout)
        # process-wide limit, shared by concurrent runs
        self._semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_LLM_CALLS)
        self.request_count = 0
        logger.debug(
            "LLM client ready.",
            base_url=settings.OPENAI_API_BASE,
            max_concurrency=settings.MAX_CONCURRENT_LLM_CALLS,
        )

    async def _backoff_delay(self, attempt: int) -> None:
        """Sleep for an exponentially increasing delay with jitter."""
        delay = settings.LLM_RETRY_DELAY_SECONDS * (2**attempt)
        jitter = random.uniform(0, delay / 2)
        await asyncio.sleep(delay + jitter)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _log_usage(self, model_name: str, usage: Any) -> None:
        if not isinstance(usage, dict):
            logger.debug("Response carried no usage block.", model=model_name)
            return
        logger.info(
            "LLM usage",
            model=model_name,
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
            total_tokens=usage.get("total_tokens"),
        )

    async def _post(self, payload: dict[str, Any], headers: dict[str, str]) -> str:
        """Send one chat completion request and return the message text."""
        response = await self._client.post(
            f"{settings.OPENAI_API_BASE.rstrip('/')}/chat/completions",
            json=payload,
            headers=headers,
        )
        response.raise_for_status()
        data = response.json()
        choices = data.get("choices") or []
        if not choices:
            raise LLMServiceError(
                f"LLM ('{payload['model']}') returned no choices: {str(data)[:200]}"
            )
        choice = choices[0]
        if choice.get("finish_reason") == "length":
            logger.warning(
                f"LLM ('{payload['model']}') output hit the token cap; the response is truncated."
            )
        content = (choice.get("message") or {}).get("content") or ""
        if not content.strip():
            raise LLMServiceError(
                f"LLM ('{payload['model']}') returned an empty response "
                f"(finish_reason={choice.get('finish_reason')})."
            )
        self._log_usage(payload["model"], data.get("usage"))
        return content

    async def complete(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        max_tokens: int,
        temperature: float | None = None,
        model_name: str | None = None,
    ) -> str:
        """Return the model's reply to ``messages`` under ``system_prompt``.

        Timeouts, transport errors, 429 and 5xx responses are retried with
        exponential backoff. Any other failure raises ``LLMServiceError``.
        """
        model = model_name or settings.MAIN_MODEL
        effective_temperature = (
            temperature if temperature is not None else settings.TEMPERATURE_DEFAULT
        )
        payload: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
            "temperature": effective_temperature,
            "top_p": settings.LLM_TOP_P,
            _completion_token_param(settings.OPENAI_API_BASE): max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {settings.OPENAI_API_KEY}",
            "Content-Type": "application/json",
        }
        prompt_tokens = count_tokens(
            system_prompt + "".join(m.get("content", "") for m in messages), model
        )

        async with self._semaphore:
            last_exc: Exception | None = None
            for attempt in range(settings.LLM_RETRY_ATTEMPTS):
                logger.debug(
                    f"Calling LLM '{model}' (Attempt {attempt + 1}/{settings.LLM_RETRY_ATTEMPTS}). "
                    f"Prompt tokens (est.): {prompt_tokens}. Max output tokens: {max_tokens}. "
                    f"Temp: {effective_temperature}"
                )
                try:
                    self.request_count += 1
                    raw_text = await self._post(payload, headers)
                    return self.clean_model_response(raw_text)
                except httpx.HTTPStatusError as e_status:
                    last_exc = e_status
                    status = e_status.response.status_code
                    logger.warning(
                        f"LLM ('{model}' Attempt {attempt + 1}): HTTP status {status}. "
                        f"Body: {e_status.response.text[:200]}"
                    )
                    if 400 <= status < 500 and status != 429:
                        raise LLMServiceError(
                            f"LLM request rejected with status {status}: {e_status.response.text[:200]}"
                        ) from e_status
                except (httpx.TimeoutException, httpx.TransportError) as e_req:
                    last_exc = e_req
                    logger.warning(
                        f"LLM ('{model}' Attempt {attempt + 1}): Request error: {e_req!r}"
                    )
                except ValueError as e_json:
                    last_exc = e_json
                    logger.warning(
                        f"LLM ('{model}' Attempt {attempt + 1}): Invalid JSON body: {e_json}"
                    )

                if attempt < settings.LLM_RETRY_ATTEMPTS - 1:
                    await self._backoff_delay(attempt)

        logger.error(
            f"LLM: All {settings.LLM_RETRY_ATTEMPTS} attempts failed for '{model}'. Last error: {last_exc}"
        )
        raise LLMServiceError(
            f"LLM call to '{model}' failed after {settings.LLM_RETRY_ATTEMPTS} attempts: {last_exc}"
        ) from last_exc

    def clean_model_response(self, text: str) -> str:
        """Strip reasoning blocks and collapse runs of blank lines."""
        if not isinstance(text, str):
            return ""
        cleaned = _STRAY_TAG_RE.sub("", _REASONING_BLOCK_RE.sub("", text))
        if len(cleaned) < len(text):
            logger.debug("Removed reasoning tags.", before=len(text), after=len(cleaned))
        return re.sub(r"\n{3,}", "\n\n", cleaned).strip()


llm_service = LLMService()
