"""API error taxonomy and the JSON error envelope.

Every error response has the shape ``{"error": <title>, "message": <detail>}``.
Route handlers raise the ``ApiError`` subclasses below; anything else that
escapes a handler is logged and answered with a generic 500.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


class ApiError(Exception):
    """Base class for errors that map onto an HTTP error envelope."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal server error"

    def __init__(
        self,
        message: str,
        *,
        error: str | None = None,
        status_code: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error is not None:
            self.error = error
        if status_code is not None:
            self.status_code = status_code
        self.headers = headers

    def to_dict(self) -> dict[str, str]:
        return {"error": self.error, "message": self.message}


class ValidationError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Missing required fields"


class AuthenticationError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Authentication required"


class NotFoundError(ApiError):
    """Missing resource. Also used when the resource belongs to another user."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "Not found"


class QuotaExceededError(ApiError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error = "Rate limit exceeded"


class UpstreamError(ApiError):
    """Failure reported by the managed backend; its message is passed through.

    The adapter raises these with status 400; routes re-raise with the status
    the endpoint calls for (e.g. 401 for sign-in and refresh).
    """

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Request failed"


class UnexpectedError(ApiError):
    """Anything unanticipated. The message is always generic."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Internal server error"

    def __init__(self, message: str = GENERIC_ERROR_MESSAGE, *, error: str | None = None) -> None:
        super().__init__(message, error=error)


def _envelope(status_code: int, error: str, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message}, headers=headers)


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return _envelope(exc.status_code, exc.error, exc.message, exc.headers)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Request body could not be parsed"
    return _envelope(status.HTTP_400_BAD_REQUEST, "Invalid request", message)


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _envelope(exc.status_code, detail, detail, getattr(exc, "headers", None))


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, UnexpectedError.error, GENERIC_ERROR_MESSAGE)


def install_error_handlers(app: FastAPI) -> None:
    """Register the envelope-producing exception handlers on an app."""
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
