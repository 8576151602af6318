import enum
from typing import Any, Dict, Optional


class ErrorKind(str, enum.Enum):
    """Failure taxonomy shared by every engine operation."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INVALID_STATE = "INVALID_STATE"
    CONFLICT = "CONFLICT"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"


class AppException(Exception):
    kind: ErrorKind = ErrorKind.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ValidationFailedError(AppException):
    kind = ErrorKind.VALIDATION_ERROR

    def __init__(self, errors, error_code: str = "VALIDATION_ERROR", details: Optional[Dict[str, Any]] = None):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(
            message=", ".join(self.errors),
            status_code=422,
            error_code=error_code,
            details={"errors": self.errors, **(details or {})}
        )


class AccessDeniedError(AppException):
    """Caller lacks the required relationship to the entity.

    Named AccessDeniedError to avoid shadowing Python's built-in PermissionError.
    """
    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str = "Insufficient permissions", error_code: str = "UNAUTHORIZED"):
        super().__init__(
            message=message,
            status_code=403,
            error_code=error_code
        )


class NotFoundError(AppException):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, error_code: str = "NOT_FOUND"):
        super().__init__(
            message=message,
            status_code=404,
            error_code=error_code
        )


class InvalidTransitionError(AppException):
    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=409,
            error_code="INVALID_TRANSITION",
            details=details
        )


class InvalidStateError(AppException):
    kind = ErrorKind.INVALID_STATE

    def __init__(self, message: str, error_code: str = "INVALID_STATE", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=409,
            error_code=error_code,
            details=details
        )


class ConflictError(AppException):
    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, error_code: str = "CONFLICT", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=409,
            error_code=error_code,
            details=details
        )


class PersistenceError(AppException):
    kind = ErrorKind.PERSISTENCE_ERROR

    def __init__(self, message: str = "The operation could not be persisted"):
        super().__init__(
            message=message,
            status_code=503,
            error_code="PERSISTENCE_ERROR"
        )
