"""Resilient LLM call: per-request timeout, bounded retries with backoff, output repair."""

import threading
import time
from typing import Any, Optional, Sequence

from busybot.config import settings
from busybot.logging_config import get_logger
from busybot.services.llm.base import LLMError, LLMErrorKind, LLMProvider
from busybot.services.llm.gemini_provider import GeminiProvider
from busybot.services.llm.json_repair import clean_text_output, parse_json_output
from busybot.services.llm.openai_provider import OpenAIProvider

logger = get_logger("llm.client")

PROVIDERS = {
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
}
DEFAULT_PROVIDER = "gemini"


def get_llm_provider(api_key: str, provider: Optional[str] = None) -> LLMProvider:
    """Build the provider configured for a tenant. Unknown names fall back to Gemini."""
    name = (provider or DEFAULT_PROVIDER).lower()
    provider_class = PROVIDERS.get(name)
    if provider_class is None:
        logger.warning(f"Unknown LLM provider '{provider}', using {DEFAULT_PROVIDER}")
        provider_class = PROVIDERS[DEFAULT_PROVIDER]
    return provider_class(api_key=api_key)


def _backoff_delay(attempt: int, schedule: Sequence[float]) -> float:
    if not schedule:
        return 0.0
    return float(schedule[min(attempt, len(schedule) - 1)])


def _cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def call_llm(
    prompt: str,
    api_key: str,
    *,
    expect_json: bool = False,
    max_retries: Optional[int] = None,
    provider: Optional[str] = None,
    temperature: float = 0.7,
    max_tokens: int = 1000,
    timeout_seconds: Optional[float] = None,
    backoff_seconds: Optional[Sequence[float]] = None,
    cancel_event: Optional[threading.Event] = None,
    llm_provider: Optional[LLMProvider] = None,
) -> Any:
    """Send one prompt and return cleaned text, or parsed JSON when ``expect_json``.

    Retries rate limits, timeouts and transport failures up to ``max_retries`` times.
    Rejected credentials fail immediately. Backoff sleeps wait on ``cancel_event`` so an
    abandoned tenant operation stops at once with a ``timeout`` error.

    Raises:
        LLMError: carrying the kind and HTTP status of the last failure.
    """
    retries = settings.llm_max_retries if max_retries is None else max(0, max_retries)
    schedule = settings.llm_backoff_seconds if backoff_seconds is None else backoff_seconds
    client = llm_provider or get_llm_provider(api_key, provider)
    messages = [{"role": "user", "content": prompt}]

    attempt = 0
    while True:
        if _cancelled(cancel_event):
            raise LLMError(LLMErrorKind.TIMEOUT, "LLM call cancelled before completion")
        try:
            response = client.generate(
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout_seconds=timeout_seconds,
            )
        except LLMError as exc:
            if not exc.retryable or attempt >= retries:
                logger.warning(
                    f"LLM call failed: {exc.kind.value}",
                    extra={"context": {**exc.to_dict(), "attempts": attempt + 1}},
                )
                raise
            delay = _backoff_delay(attempt, schedule)
            attempt += 1
            logger.info(
                f"LLM call retry {attempt}/{retries} in {delay}s",
                extra={"context": {"kind": exc.kind.value, "status_code": exc.status_code}},
            )
            if cancel_event is not None:
                if cancel_event.wait(delay):
                    raise LLMError(LLMErrorKind.TIMEOUT, "LLM call cancelled during backoff") from exc
            elif delay > 0:
                time.sleep(delay)
            continue

        if expect_json:
            return parse_json_output(response.content)

        text = clean_text_output(response.content)
        if not text:
            raise LLMError(LLMErrorKind.MALFORMED_OUTPUT, "Model returned only quotes or fences")
        return text
