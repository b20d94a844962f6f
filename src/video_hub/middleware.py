"""
Middleware for correlation ID tracking, request logging and upload size
limits.

All of them only act on HTTP requests; WebSocket connections pass through
untouched.
"""

import time
import uuid
import logging
from typing import Callable, List, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from video_hub import metrics
from video_hub.exceptions import VideoTooLargeException
from video_hub.handlers import video_hub_exception_handler
from video_hub.utils import set_correlation_id, set_request_id

logger = logging.getLogger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to handle correlation ID generation and propagation.

    Ensures every request has a unique correlation ID for tracing
    across services and logs.
    """

    def __init__(self, app: ASGIApp, header_name: str = "x-correlation-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(self.header_name) or str(uuid.uuid4())

        request.state.correlation_id = correlation_id
        set_correlation_id(correlation_id)

        request_id = request.headers.get("x-request-id")
        if request_id:
            request.state.request_id = request_id
            set_request_id(request_id)

        response = await call_next(request)
        response.headers[self.header_name] = correlation_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for structured request/response logging.

    Logs request details, response status, and timing with the
    correlation ID for tracing.
    """

    def __init__(
        self,
        app: ASGIApp,
        exclude_paths: Optional[List[str]] = None
    ):
        super().__init__(app)
        self.exclude_paths = exclude_paths or ["/health", "/metrics"]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        start_time = time.time()
        correlation_id = getattr(request.state, "correlation_id", "unknown")

        logger.debug(
            "Request started",
            extra={
                "method": request.method,
                "path": str(request.url.path),
                "client_ip": request.client.host if request.client else None,
                "correlation_id": correlation_id,
                "user_agent": request.headers.get("user-agent"),
                "content_length": request.headers.get("content-length"),
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed with exception",
                extra={
                    "exception_type": type(e).__name__,
                    "process_time": round(time.time() - start_time, 4),
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "path": str(request.url.path),
                },
                exc_info=True
            )
            raise

        process_time = time.time() - start_time
        response_info = {
            "status_code": response.status_code,
            "process_time": round(process_time, 4),
            "correlation_id": correlation_id,
            "method": request.method,
            "path": str(request.url.path),
        }
        response.headers["x-process-time"] = str(process_time)

        if response.status_code >= 500:
            logger.error("Request completed with server error", extra=response_info)
        elif response.status_code >= 400:
            logger.warning("Request completed with client error", extra=response_info)
        else:
            logger.info("Request completed successfully", extra=response_info)

        return response


class UploadSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Rejects oversized uploads from their ``Content-Length`` before the body
    is read.

    The declared length covers the whole multipart body, so a small allowance
    is added for part headers and boundaries; the exact file size is still
    checked once the form has been parsed.
    """

    def __init__(
        self,
        app: ASGIApp,
        max_upload_bytes: int,
        upload_paths: Optional[List[str]] = None,
        multipart_overhead: int = 64 * 1024,
    ):
        super().__init__(app)
        self.max_upload_bytes = max_upload_bytes
        self.max_request_size = max_upload_bytes + multipart_overhead
        self.upload_paths = upload_paths or ["/api/upload-video"]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method != "POST" or request.url.path not in self.upload_paths:
            return await call_next(request)

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_request_size:
            metrics.VIDEO_UPLOADS.labels(outcome="rejected").inc()
            return await video_hub_exception_handler(
                request,
                VideoTooLargeException(int(content_length), self.max_upload_bytes),
            )

        return await call_next(request)
