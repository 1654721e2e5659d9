from typing import Any

from fastapi import status


class AppError(Exception):
    code: str = "APP_ERROR"
    message: str = "Application error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    details: Any | None = None

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: Any | None = None,
    ):
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        if details is not None:
            self.details = details

        super().__init__(self.message)


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    message = "Validation error"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(AppError):
    code = "NOT_FOUND"
    message = "Resource not found"
    status_code = status.HTTP_404_NOT_FOUND


class AuthError(AppError):
    code = "AUTH_ERROR"
    message = "Authentication failed"
    status_code = status.HTTP_401_UNAUTHORIZED


class ConflictError(AppError):
    """Raised when a write lost the revision check against a concurrent writer."""

    code = "CONFLICT_ERROR"
    message = "Progress was modified concurrently, re-read and retry"
    status_code = status.HTTP_409_CONFLICT


class InternalError(AppError):
    code = "INTERNAL_ERROR"
    message = "Internal server error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


_ERRORS_BY_STATUS: dict[int, type[AppError]] = {
    status.HTTP_400_BAD_REQUEST: ValidationError,
    status.HTTP_401_UNAUTHORIZED: AuthError,
    status.HTTP_404_NOT_FOUND: NotFoundError,
    status.HTTP_409_CONFLICT: ConflictError,
    422: ValidationError,
}


def error_payload(
    code: str,
    message: str,
    details: Any | None = None,
) -> dict[str, Any]:
    return {"error": {"code": code, "message": message, "details": details}}


def resolve_error_code(status_code: int) -> str:
    if status_code in _ERRORS_BY_STATUS:
        return _ERRORS_BY_STATUS[status_code].code
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        return InternalError.code
    return "UNKNOWN_ERROR"


def error_from_status(
    status_code: int, message: str | None = None, details: Any | None = None
) -> AppError:
    """Rebuild the typed error for an HTTP status received from the API."""
    error_cls = _ERRORS_BY_STATUS.get(status_code)
    if error_cls is None:
        if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            return InternalError(message, details=details)
        return AppError(message, status_code=status_code, details=details)
    return error_cls(message, details=details)
