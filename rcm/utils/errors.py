"""Custom exception classes, posting result types and error handling."""
import enum
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rcm.config.sentry import add_breadcrumb, capture_exception, settings
from rcm.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    """Failure categories shared by the ledger, the engine and the HTTP layer."""

    NOT_FOUND = "not_found"
    AMOUNT_EXCEEDS_CHARGES = "amount_exceeds_charges"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_STATE = "invalid_state"
    INVALID_ARGUMENT = "invalid_argument"
    INFRASTRUCTURE = "infrastructure"


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a ledger operation.

    Business failures come back as a failed `Result` so callers can keep
    going; infrastructure faults are raised instead.
    """

    ok: bool
    value: Optional[T] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error_kind: ErrorKind, message: str) -> "Result[T]":
        return cls(ok=False, error_kind=error_kind, message=message)


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or "APP_ERROR"
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Validation error."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            code="VALIDATION_ERROR",
            details=details or {},
        )


class InvalidArgumentError(AppError):
    """A caller-supplied argument is missing or has the wrong shape."""

    error_kind = ErrorKind.INVALID_ARGUMENT

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            code="INVALID_ARGUMENT",
            details=details or {},
        )


class NotFoundError(AppError):
    """Resource not found error."""

    error_kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, identifier: Optional[Any] = None):
        message = f"{resource} not found"
        if identifier is not None:
            message += f" (id: {identifier})"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            code="NOT_FOUND",
        )


class ConflictError(AppError):
    """The resource is not in a state that allows the operation."""

    error_kind = ErrorKind.INVALID_STATE

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            code="CONFLICT",
            details=details or {},
        )


class PostingRejectedError(AppError):
    """A manual posting was rejected by the claim ledger."""

    STATUS_BY_KIND = {
        ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
        ErrorKind.INVALID_STATE: status.HTTP_409_CONFLICT,
    }

    def __init__(self, error_kind: ErrorKind, message: str):
        self.error_kind = error_kind
        super().__init__(
            message=message,
            status_code=self.STATUS_BY_KIND.get(error_kind, status.HTTP_422_UNPROCESSABLE_ENTITY),
            code=error_kind.name,
        )


class UnauthorizedError(AppError):
    """Unauthorized access error."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="UNAUTHORIZED",
        )


def _request_context(request: Request) -> dict:
    return {
        "path": request.url.path,
        "method": request.method,
        "query_params": dict(request.query_params),
    }


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle application errors."""
    add_breadcrumb(
        message=f"Application error: {exc.code}",
        category="error",
        level="warning" if exc.status_code < 500 else "error",
        data={"path": request.url.path, "method": request.method, "status_code": exc.status_code},
    )

    logger.warning(
        "Application error",
        error=exc.code,
        message=exc.message,
        path=request.url.path,
        status_code=exc.status_code,
    )

    # Server errors always alert; client errors only when alert_on_errors is set
    if settings.enable_alerts and (exc.status_code >= 500 or settings.alert_on_errors):
        capture_exception(
            exc,
            level="error" if exc.status_code >= 500 else "warning",
            context={
                "request": _request_context(request),
                "error": {"code": exc.code, "message": exc.message, "status_code": exc.status_code},
            },
            tags={"error_type": exc.code, "status_code": str(exc.status_code)},
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "details": exc.details,
        },
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors."""
    errors = exc.errors()
    logger.warning("Validation error", path=request.url.path, errors=errors)

    if settings.enable_alerts and settings.alert_on_warnings:
        capture_exception(
            exc,
            level="warning",
            context={"request": _request_context(request)},
            tags={"error_type": "VALIDATION_ERROR"},
        )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
                for error in errors
            ],
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    add_breadcrumb(
        message=f"Unexpected error: {type(exc).__name__}",
        category="exception",
        level="error",
        data={"path": request.url.path, "method": request.method},
    )

    logger.error(
        "Unexpected error",
        error=str(exc),
        path=request.url.path,
        exc_info=True,
    )

    if settings.enable_alerts:
        capture_exception(
            exc,
            level="error",
            context={"request": _request_context(request)},
            tags={"error_type": type(exc).__name__},
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
        },
    )
