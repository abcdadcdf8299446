from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """Outcome of a collaborator call whose failure is an expected branch."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def success(value: T, **details: Any) -> "Result[T]":
        return Result(ok=True, value=value, details=details)

    @staticmethod
    def failure(error: str, code: str = "unknown", **details: Any) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code, details=details)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
