"""API endpoints for listing, uploading and deleting videos."""

import os
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from video_hub.api.dependencies import get_video_service
from video_hub.schemas import DeleteResponse, UploadResponse, VideoRecord
from video_hub.services.video_service import VideoService

router = APIRouter()

EVENT_SEQUENCE_HEADER = "X-Event-Sequence"


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    upload.file.seek(0, os.SEEK_END)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


@router.get(
    "/videos",
    response_model=List[VideoRecord],
    summary="List recent videos, newest first",
)
async def list_videos(
    response: Response,
    service: VideoService = Depends(get_video_service),
) -> List[VideoRecord]:
    """
    Returns the currently visible videos.

    The ``X-Event-Sequence`` header holds the live-event sequence number
    observed before the listing was taken; passing it as ``since`` when
    opening the live channel replays anything that happened in between.
    """
    sequence = service.event_sequence
    videos = await service.list_videos()
    response.headers[EVENT_SEQUENCE_HEADER] = str(sequence)
    return videos


@router.post(
    "/upload-video",
    response_model=UploadResponse,
    summary="Upload a video file",
)
async def upload_video(
    video: Optional[UploadFile] = File(None),
    timestamp: Optional[datetime] = Form(None),
    service: VideoService = Depends(get_video_service),
) -> UploadResponse:
    """
    Stores a multipart-uploaded video (form field ``video``) and notifies
    live viewers with a ``new_video`` event.
    """
    if video is None:
        record = await service.upload(None, None, 0, None)
    else:
        record = await service.upload(
            filename=video.filename,
            content_type=video.content_type,
            size=_upload_size(video),
            file=video.file,
            client_timestamp=timestamp,
        )
    return UploadResponse(video=record)


@router.delete(
    "/videos/{video_id:path}",
    response_model=DeleteResponse,
    summary="Delete a video",
)
async def delete_video(
    video_id: str,
    service: VideoService = Depends(get_video_service),
) -> DeleteResponse:
    """Deletes the video and notifies live viewers with ``video_deleted``."""
    await service.delete(video_id)
    return DeleteResponse()
