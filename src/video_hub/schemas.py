"""
Pydantic models for video metadata, live events and API responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


class VideoRecord(BaseModel):
    """Metadata for one uploaded video."""

    id: str = Field(..., description="Unique video identifier")
    name: str = Field(..., description="Original filename as supplied by the uploader")
    url: str = Field(..., description="Publicly fetchable address of the video")
    size: int = Field(..., ge=0, description="Size in bytes")
    mimetype: str = Field(..., description="Video MIME type")
    timestamp: datetime = Field(..., description="Upload time")
    storage_key: str = Field("", exclude=True, description="Handle the storage backend uses to locate the file")

    @field_validator("mimetype")
    @classmethod
    def must_be_video(cls, value: str) -> str:
        if not value.startswith("video/"):
            raise ValueError(f"mimetype must start with 'video/', got {value!r}")
        return value


# --- Live events ---

class NewVideoEvent(BaseModel):
    type: Literal["new_video"] = "new_video"
    video: VideoRecord


class VideoDeletedEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["video_deleted"] = "video_deleted"
    video_id: str = Field(..., alias="videoId")


LiveEvent = Union[NewVideoEvent, VideoDeletedEvent]


# --- API responses ---

class UploadResponse(BaseModel):
    success: bool = True
    message: str = "Video uploaded successfully"
    video: VideoRecord


class DeleteResponse(BaseModel):
    success: bool = True
    message: str = "Video deleted successfully"


class ErrorDetail(BaseModel):
    """Individual error detail for validation errors."""

    field: Optional[str] = Field(None, description="Field that caused the error")
    message: str = Field(..., description="Error message")
    code: Optional[str] = Field(None, description="Error code")


class ErrorResponse(BaseModel):
    """Standard error response model for all API errors."""

    error: str = Field(..., description="Human-readable error message")
    error_code: str = Field(..., description="Unique error code for identification")
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional error context and metadata"
    )
    correlation_id: str = Field(..., description="Unique correlation ID for request tracking")
    timestamp: datetime = Field(..., description="Error occurrence timestamp")
    path: Optional[str] = Field(None, description="API path where error occurred")
    method: Optional[str] = Field(None, description="HTTP method used")
    validation_errors: Optional[List[ErrorDetail]] = None


class HealthCheckResponse(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="Overall health status")
    timestamp: datetime = Field(..., description="Health check timestamp")
    version: str = Field(..., description="Application version")
    uptime: float = Field(..., description="Application uptime in seconds")
    storage: Dict[str, Any] = Field(default_factory=dict)
    viewers: int = Field(0, description="Connected live-update channels")
    event_sequence: int = Field(0, description="Sequence number of the last broadcast event")
