from busybot.services.llm.base import LLMError, LLMErrorKind, LLMProvider, LLMResponse
from busybot.services.llm.gemini_provider import GeminiProvider
from busybot.services.llm.openai_provider import OpenAIProvider

__all__ = ["GeminiProvider", "LLMError", "LLMErrorKind", "LLMProvider", "LLMResponse", "OpenAIProvider"]
