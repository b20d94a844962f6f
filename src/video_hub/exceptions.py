"""
Custom exception hierarchy for the video hub.

Every exception carries an error code, a human-readable message (the text
clients see in the ``error`` field) and optional context for logging.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """Enumeration of error codes for consistent error identification."""

    # General errors (1000-1999)
    INTERNAL_SERVER_ERROR = "VH1000"
    VALIDATION_ERROR = "VH1001"
    CONFIGURATION_ERROR = "VH1002"

    # Upload validation errors (3000-3999)
    NO_VIDEO_UPLOADED = "VH3000"
    INVALID_VIDEO_FORMAT = "VH3001"
    VIDEO_TOO_LARGE = "VH3002"

    # Catalog errors (4000-4999)
    VIDEO_NOT_FOUND = "VH4000"

    # Storage errors (5000-5999)
    STORAGE_ERROR = "VH5000"
    STORAGE_TIMEOUT = "VH5001"

    # Live channel errors (6000-6999)
    CHANNEL_TRANSPORT_ERROR = "VH6000"


class VideoHubException(Exception):
    """
    Base exception class for all video hub exceptions.

    Provides structured error information including error codes,
    correlation IDs, and contextual metadata.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp,
            "exception_type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"


class ConfigurationException(VideoHubException):
    """Exception raised for configuration errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details=details,
            **kwargs
        )


# Upload validation
class ValidationException(VideoHubException):
    """Exception raised for client input that is rejected before storage."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["invalid_value"] = str(value)

        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            **kwargs
        )


class NoVideoUploadedException(ValidationException):
    """Exception raised when the upload form carries no file."""

    def __init__(self, **kwargs):
        super().__init__(
            message="No video file uploaded",
            field="video",
            error_code=ErrorCode.NO_VIDEO_UPLOADED,
            **kwargs
        )


class InvalidVideoFormatException(ValidationException):
    """Exception raised for non-video content types or disallowed extensions."""

    def __init__(
        self,
        format_provided: str,
        supported_formats: Optional[List[str]] = None,
        message: str = "Only video files are allowed",
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if supported_formats:
            details["supported_formats"] = supported_formats

        super().__init__(
            message=message,
            field="video",
            value=format_provided,
            error_code=ErrorCode.INVALID_VIDEO_FORMAT,
            details=details,
            **kwargs
        )


class VideoTooLargeException(ValidationException):
    """Exception raised when the video file exceeds the upload limit."""

    def __init__(self, file_size: int, max_size: int, **kwargs):
        super().__init__(
            message=f"File too large. Maximum size is {max_size // (1024 * 1024)}MB.",
            field="video",
            error_code=ErrorCode.VIDEO_TOO_LARGE,
            details={"file_size": file_size, "max_size": max_size},
            **kwargs
        )


# Catalog
class VideoNotFoundException(VideoHubException):
    """Exception raised when a video is not found."""

    def __init__(self, video_id: str, **kwargs):
        super().__init__(
            message="Video not found",
            error_code=ErrorCode.VIDEO_NOT_FOUND,
            details={"video_id": video_id},
            **kwargs
        )
        self.video_id = video_id


# Storage
class StorageException(VideoHubException):
    """Exception raised when the storage backend fails a read, write or delete."""

    def __init__(
        self,
        message: str = "Storage error",
        operation: Optional[str] = None,
        backend: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.STORAGE_ERROR,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if backend:
            details["backend"] = backend

        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            **kwargs
        )


class StorageTimeoutException(StorageException):
    """Exception raised when a storage call exceeds its time budget."""

    def __init__(self, operation: str, timeout: float, **kwargs):
        details = kwargs.pop("details", {})
        details["timeout_seconds"] = timeout

        super().__init__(
            message=f"Storage operation '{operation}' timed out after {timeout}s",
            operation=operation,
            error_code=ErrorCode.STORAGE_TIMEOUT,
            details=details,
            **kwargs
        )


# Live channels
class ChannelTransportException(VideoHubException):
    """Exception raised when a message cannot be delivered to a viewer channel."""

    def __init__(self, message: str = "Viewer channel send failed", **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.CHANNEL_TRANSPORT_ERROR,
            **kwargs
        )
