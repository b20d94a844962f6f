"""
Global exception handlers for the FastAPI application.

Every error response carries an ``error`` message for clients plus an error
code and the request's correlation ID for log lookup.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from video_hub.exceptions import (
    VideoHubException,
    ValidationException,
    VideoNotFoundException,
    StorageException,
    ConfigurationException,
    ErrorCode,
)
from video_hub.schemas import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


def get_correlation_id(request: Request) -> str:
    """Extract the correlation ID the middleware stored on the request."""
    return getattr(request.state, "correlation_id", "unknown")


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    error_code: str,
    details: Optional[dict] = None,
    **extra
) -> JSONResponse:
    body = ErrorResponse(
        error=message,
        error_code=error_code,
        details=details or None,
        correlation_id=get_correlation_id(request),
        timestamp=datetime.now(timezone.utc),
        path=str(request.url.path),
        method=request.method,
        **extra
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


async def video_hub_exception_handler(
    request: Request,
    exc: VideoHubException
) -> JSONResponse:
    """Convert application exceptions to JSON responses with a matching status code."""
    status_code = _get_status_code_for_exception(exc)

    log_extra = {
        "error_data": exc.to_dict(),
        "request_path": str(request.url.path),
        "request_method": request.method,
        "status_code": status_code,
    }
    if status_code >= 500:
        logger.error(f"Application error: {exc.error_code.value}", extra=log_extra, exc_info=exc)
    else:
        logger.warning(f"Request rejected: {exc.error_code.value}", extra=log_extra)

    # Storage internals stay in the logs.
    details = None if isinstance(exc, StorageException) else exc.details
    return _error_response(request, status_code, exc.message, exc.error_code.value, details)


async def request_validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Malformed requests are client errors, reported as 400 with field detail."""
    validation_errors = [
        ErrorDetail(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            code=error["type"],
        )
        for error in exc.errors()
    ]

    logger.warning(
        "Validation error",
        extra={
            "validation_errors": [err.model_dump() for err in validation_errors],
            "request_path": str(request.url.path),
            "request_method": request.method,
        }
    )

    return _error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "Invalid request",
        ErrorCode.VALIDATION_ERROR.value,
        validation_errors=validation_errors,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException]
) -> JSONResponse:
    """Handle standard HTTP exceptions."""
    detail = exc.detail if hasattr(exc, 'detail') else str(exc)
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"HTTP {exc.status_code} error",
        extra={
            "status_code": exc.status_code,
            "detail": detail,
            "request_path": str(request.url.path),
            "request_method": request.method,
        }
    )

    response = _error_response(request, exc.status_code, str(detail), f"HTTP{exc.status_code}")
    if getattr(exc, "headers", None):
        response.headers.update(exc.headers)
    return response


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions with generic error response."""
    logger.error(
        "Unhandled exception",
        extra={
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
            "request_path": str(request.url.path),
            "request_method": request.method,
        },
        exc_info=exc
    )

    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred",
        ErrorCode.INTERNAL_SERVER_ERROR.value,
        details={"exception_type": type(exc).__name__},
    )


def _get_status_code_for_exception(exc: VideoHubException) -> int:
    """Map custom exceptions to appropriate HTTP status codes."""
    if isinstance(exc, ValidationException):
        return status.HTTP_400_BAD_REQUEST

    elif isinstance(exc, VideoNotFoundException):
        return status.HTTP_404_NOT_FOUND

    elif isinstance(exc, (StorageException, ConfigurationException)):
        return status.HTTP_500_INTERNAL_SERVER_ERROR

    else:
        return status.HTTP_500_INTERNAL_SERVER_ERROR


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI application."""
    app.add_exception_handler(VideoHubException, video_hub_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
