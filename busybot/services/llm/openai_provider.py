from typing import List, Optional

import httpx

from busybot.config import settings
from busybot.logging_config import get_logger
from busybot.services.llm.base import LLMError, LLMErrorKind, LLMProvider, LLMResponse, error_for_status

logger = get_logger("llm.openai")


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions provider."""

    def __init__(self, api_key: str, default_model: Optional[str] = None):
        self.api_key = api_key
        self.default_model = default_model or settings.openai_model
        self.base_url = "https://api.openai.com/v1/chat/completions"

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout_seconds: Optional[float] = None,
    ) -> LLMResponse:
        """Generate response from OpenAI."""

        model = model or self.default_model
        timeout = timeout_seconds if timeout_seconds is not None else settings.llm_timeout_seconds

        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_completion_tokens": max_tokens,
        }
        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")

        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.TimeoutException as exc:
            raise LLMError(LLMErrorKind.TIMEOUT, f"OpenAI timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise LLMError(LLMErrorKind.TRANSPORT, f"OpenAI transport error: {exc}") from exc

        logger.debug(f"OpenAI response status: {response.status_code}")

        if response.status_code != 200:
            logger.warning(f"OpenAI error: {response.status_code} - {response.text[:200]}")
            raise error_for_status(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as exc:
            raise LLMError(LLMErrorKind.MALFORMED_OUTPUT, "OpenAI returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise LLMError(LLMErrorKind.MALFORMED_OUTPUT, "OpenAI response is not a JSON object")

        content = ""
        choices = data.get("choices") or []
        if choices and isinstance(choices[0], dict):
            message = choices[0].get("message") or {}
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                content = message["content"]
        logger.debug(f"OpenAI content: {content[:100] if content else 'EMPTY'}")

        if not content.strip():
            raise LLMError(LLMErrorKind.MALFORMED_OUTPUT, "OpenAI returned an empty response")

        return LLMResponse(
            content=content,
            model=data.get("model", model),
            usage=data.get("usage"),
        )
