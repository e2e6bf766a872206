from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

from citaflow.errors import CitaflowError

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """Outcome of a tool call: either a value or an error message with a code."""

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

    @staticmethod
    def from_error(exc: CitaflowError) -> "Result[T]":
        return Result.failure(exc.message, code=exc.code)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default

    def to_payload(self) -> dict[str, Any]:
        if self.ok:
            payload: dict[str, Any] = {"success": True}
            if isinstance(self.value, dict):
                payload.update(self.value)
            elif self.value is not None:
                payload["result"] = self.value
            return payload
        return {"success": False, "error": self.error, "code": self.error_code, **self.details}
