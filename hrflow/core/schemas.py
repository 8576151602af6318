from typing import Any, Dict, Generic, Optional, TypeVar
from pydantic import BaseModel, Field
from datetime import datetime, timezone

from hrflow.core.exceptions import AppException, ErrorKind

T = TypeVar("T")


class ErrorInfo(BaseModel):
    code: str
    kind: ErrorKind
    message: str
    details: Optional[Dict[str, Any]] = None


class ServiceResult(BaseModel, Generic[T]):
    """Outcome of one engine operation: either data or a classified error."""

    success: bool
    data: Optional[T] = None
    error: Optional[ErrorInfo] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with JSON-serializable values."""
        return self.model_dump(mode="json")

    @classmethod
    def ok(cls, data: Any, metadata: Optional[Dict[str, Any]] = None) -> "ServiceResult":
        return cls(success=True, data=data, metadata=metadata or {})

    @classmethod
    def fail(cls, exc: AppException, metadata: Optional[Dict[str, Any]] = None) -> "ServiceResult":
        return cls(
            success=False,
            error=ErrorInfo(code=exc.error_code, kind=exc.kind, message=exc.message, details=exc.details),
            metadata=metadata or {},
        )
