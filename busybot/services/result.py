from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown", **details: Any) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code, details=details)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default

    def to_error_body(self) -> dict[str, Any]:
        """Error payload for HTTP responses: message, code and any extra details."""
        return {"error": self.error, "code": self.error_code, **self.details}
