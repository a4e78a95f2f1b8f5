"""Application errors and the centralized error-formatting stage."""

import logging
import re
import traceback
from typing import Any, Dict, List, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..models.tour import tour_violations
from .config import settings

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went very wrong"

_QUOTED_VALUE = re.compile(r"([\"'])(\\?.)*?\1")


class AppError(Exception):
    """
    Base class for anticipated, user-facing failures.

    Every subclass is operational: its message is safe to return to the
    caller. Anything that is not an AppError is treated as a programming
    error by the error handlers.
    """

    is_operational = True

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.status = "fail" if str(status_code).startswith("4") else "error"

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view of the error object for development responses."""
        return {
            "name": type(self).__name__,
            "statusCode": self.status_code,
            "status": self.status,
            "isOperational": self.is_operational,
        }


class ValidationError(AppError):
    """Raised when a tour violates one or more schema constraints."""

    def __init__(self, violations: List[Dict[str, str]]):
        self.violations = violations
        messages = ". ".join(v["message"] for v in violations)
        super().__init__(f"Invalid input data. {messages}", 400)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.violations
        return data


class CastError(AppError):
    """Raised when a path or query value cannot be cast to the field's type."""

    def __init__(self, path: str, value: Any):
        self.path = path
        self.value = value
        super().__init__(f"Invalid {path}: {value}", 400)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"path": self.path, "value": str(self.value)})
        return data


class DuplicateKeyError(AppError):
    """Raised when a write collides with a unique index."""

    def __init__(self, value: Optional[Any] = None):
        self.value = value
        if value is None:
            message = "Duplicate field value. Please use another value!"
        else:
            message = f'Duplicate field value: "{value}". Please use another value!'
        super().__init__(message, 400)

    @classmethod
    def from_driver_error(cls, exc: Exception) -> "DuplicateKeyError":
        """Build from a pymongo DuplicateKeyError, extracting the offending value."""
        details = getattr(exc, "details", None) or {}
        key_value = details.get("keyValue") if isinstance(details, dict) else None
        if key_value:
            return cls(next(iter(key_value.values())))

        match = _QUOTED_VALUE.search(str(exc))
        if match:
            return cls(match.group(0).strip("\"'"))
        return cls()


class NotFoundError(AppError):
    """Raised when no tour matches the requested id."""

    def __init__(self, message: str = "No tour found with that id"):
        super().__init__(message, 404)


class PageNotFoundError(AppError):
    """Raised when an explicitly requested page lies beyond the result set."""

    def __init__(self, page: int, skip: int, total: int):
        self.page = page
        self.skip = skip
        self.total = total
        super().__init__("This page does not exist", 404)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"page": self.page, "skip": self.skip, "total": self.total})
        return data


class InvalidQueryError(AppError):
    """Raised for query-string combinations the store cannot execute."""

    def __init__(self, message: str):
        super().__init__(message, 400)


def _stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def _development_body(exc: BaseException, status: str, message: str) -> Dict[str, Any]:
    if isinstance(exc, AppError):
        error = exc.to_dict()
    else:
        error = {"name": type(exc).__name__, "statusCode": 500, "status": status}
    return {
        "status": status,
        "error": error,
        "message": message,
        "stack": _stack(exc),
    }


def render_error(request: Request, exc: BaseException) -> JSONResponse:
    """
    Format any failure into the error envelope.

    Operational errors carry their own status code and message. Anything else
    is logged and, outside development, collapsed into a generic 500 response.

    Args:
        request: FastAPI request object
        exc: The failure to format

    Returns:
        JSONResponse: Error envelope
    """
    if isinstance(exc, AppError):
        status_code, status, message = exc.status_code, exc.status, exc.message
    else:
        status_code, status, message = 500, "error", str(exc) or GENERIC_ERROR_MESSAGE
        logger.error(
            "Unhandled error while processing request",
            extra={
                "path": request.url.path,
                "method": request.method,
                "request_id": getattr(request.state, "request_id", None),
                "error": repr(exc),
            },
            exc_info=(type(exc), exc, exc.__traceback__),
        )

    if settings.debug:
        content = _development_body(exc, status, message)
    elif isinstance(exc, AppError):
        content = {"status": status, "message": message}
    else:
        content = {"status": "error", "message": GENERIC_ERROR_MESSAGE}

    return JSONResponse(status_code=status_code, content=content)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Exception handler for operational application errors."""
    return render_error(request, exc)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Surface FastAPI request decoding failures as validation errors."""
    return render_error(request, ValidationError(tour_violations(exc.errors())))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Convert framework HTTP errors (unknown routes, bad methods) into app errors."""
    if exc.status_code == 404:
        error = AppError(f"Can't find {request.url.path} on this server!", 404)
    else:
        error = AppError(str(exc.detail), exc.status_code)
    response = render_error(request, error)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for programming and unknown errors."""
    return render_error(request, exc)


def register_exception_handlers(app) -> None:
    """Route every failure through the single error-formatting stage."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
