from typing import List, Optional

import httpx

from busybot.config import settings
from busybot.logging_config import get_logger
from busybot.services.llm.base import LLMError, LLMErrorKind, LLMProvider, LLMResponse, error_for_status

logger = get_logger("llm.gemini")

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"

# Personal chats quote all kinds of things; do not let the default filters eat replies.
SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
]


class GeminiProvider(LLMProvider):
    """Google Gemini generateContent REST provider."""

    def __init__(self, api_key: str, default_model: Optional[str] = None):
        self.api_key = api_key
        self.default_model = default_model or settings.gemini_model

    def _build_contents(self, messages: List[dict]) -> List[dict]:
        contents = []
        for message in messages:
            role = "model" if message.get("role") == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": message.get("content", "")}]})
        return contents

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout_seconds: Optional[float] = None,
    ) -> LLMResponse:
        """Generate response from Gemini."""
        model = model or self.default_model
        timeout = timeout_seconds if timeout_seconds is not None else settings.llm_timeout_seconds

        payload = {
            "contents": self._build_contents(messages),
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
                "topP": 0.95,
            },
            "safetySettings": SAFETY_SETTINGS,
        }
        logger.debug(f"Gemini request: model={model}, messages_count={len(messages)}")

        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(
                    f"{GEMINI_API_BASE}/{model}:generateContent",
                    headers={"x-goog-api-key": self.api_key, "Content-Type": "application/json"},
                    json=payload,
                )
        except httpx.TimeoutException as exc:
            raise LLMError(LLMErrorKind.TIMEOUT, f"Gemini timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise LLMError(LLMErrorKind.TRANSPORT, f"Gemini transport error: {exc}") from exc

        logger.debug(f"Gemini response status: {response.status_code}")
        if response.status_code != 200:
            logger.warning(f"Gemini error: {response.status_code} - {response.text[:200]}")
            raise error_for_status(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as exc:
            raise LLMError(LLMErrorKind.MALFORMED_OUTPUT, "Gemini returned a non-JSON body") from exc

        if not isinstance(data, dict):
            raise LLMError(LLMErrorKind.MALFORMED_OUTPUT, "Gemini response is not a JSON object")

        content = ""
        candidates = data.get("candidates") or []
        if candidates and isinstance(candidates[0], dict):
            parts = (candidates[0].get("content") or {}).get("parts") or []
            content = "".join(str(part.get("text") or "") for part in parts if isinstance(part, dict))

        if not content.strip():
            raise LLMError(LLMErrorKind.MALFORMED_OUTPUT, "Gemini returned an empty response")

        return LLMResponse(
            content=content,
            model=data.get("modelVersion", model),
            usage=data.get("usageMetadata"),
        )
