from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class LLMErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    INVALID_CREDENTIAL = "invalid_credential"
    TIMEOUT = "timeout"
    MALFORMED_OUTPUT = "malformed_output"
    TRANSPORT = "transport"


RETRYABLE_KINDS = {LLMErrorKind.RATE_LIMITED, LLMErrorKind.TIMEOUT, LLMErrorKind.TRANSPORT}


class LLMError(Exception):
    """Typed LLM failure. ``kind`` lets callers pick tenant-visible messaging vs. silent fallback."""

    def __init__(
        self,
        kind: LLMErrorKind,
        message: str,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
    ):
        self.kind = kind
        self.status_code = status_code
        self.retryable = kind in RETRYABLE_KINDS if retryable is None else retryable
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "status_code": self.status_code, "error": str(self)}


def error_for_status(status_code: int, body: str = "") -> LLMError:
    """Map a non-2xx provider response to a typed error."""
    snippet = (body or "")[:200]
    if status_code == 429:
        return LLMError(LLMErrorKind.RATE_LIMITED, f"Rate limited: {snippet}", status_code)
    if status_code in (400, 401, 403):
        return LLMError(LLMErrorKind.INVALID_CREDENTIAL, f"Rejected request: {snippet}", status_code)
    if status_code >= 500:
        return LLMError(LLMErrorKind.TRANSPORT, f"Provider error {status_code}: {snippet}", status_code)
    return LLMError(LLMErrorKind.TRANSPORT, f"Unexpected status {status_code}: {snippet}", status_code, retryable=False)


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout_seconds: Optional[float] = None,
    ) -> LLMResponse:
        """Generate response from LLM. Raises LLMError."""
        pass
