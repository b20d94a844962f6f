"""
Upload, listing and deletion of videos, with live notification of viewers.
"""
import logging
from datetime import datetime
from typing import BinaryIO, List, Optional

from video_hub import metrics
from video_hub.exceptions import (
    InvalidVideoFormatException,
    NoVideoUploadedException,
    StorageException,
    ValidationException,
    VideoNotFoundException,
    VideoTooLargeException,
)
from video_hub.schemas import NewVideoEvent, VideoDeletedEvent, VideoRecord
from video_hub.services.notifier import LiveNotifier
from video_hub.services.storage import IncomingVideo, VideoStore

logger = logging.getLogger(__name__)


class VideoService:
    """
    Coordinates the active video store with the live notifier.

    Storage always completes before anything is broadcast, so viewers never
    hear about a video that failed to persist.
    """

    def __init__(self, store: VideoStore, notifier: LiveNotifier, max_upload_bytes: int):
        self.store = store
        self.notifier = notifier
        self.max_upload_bytes = max_upload_bytes

    @property
    def event_sequence(self) -> int:
        return self.notifier.sequence

    async def list_videos(self) -> List[VideoRecord]:
        try:
            return await self.store.list_videos()
        except StorageException as e:
            raise StorageException(
                message="Failed to fetch videos",
                operation="list",
                backend=self.store.backend,
                details=dict(e.details),
            ) from e

    def validate_upload(
        self,
        filename: Optional[str],
        content_type: Optional[str],
        size: int,
    ) -> None:
        """Reject uploads before any bytes reach storage."""
        if not filename:
            raise NoVideoUploadedException()

        content_type = content_type or ""
        if not content_type.startswith("video/"):
            raise InvalidVideoFormatException(content_type or "unknown")

        if size > self.max_upload_bytes:
            raise VideoTooLargeException(size, self.max_upload_bytes)

        allowed = self.store.allowed_formats
        if allowed:
            extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
            if extension not in allowed:
                raise InvalidVideoFormatException(
                    extension or content_type,
                    supported_formats=allowed,
                    message=f"Unsupported video format. Allowed formats: {', '.join(allowed)}",
                )

    async def upload(
        self,
        filename: Optional[str],
        content_type: Optional[str],
        size: int,
        file: Optional[BinaryIO],
        client_timestamp: Optional[datetime] = None,
    ) -> VideoRecord:
        """
        Validate, store and announce a new video.

        Raises:
            ValidationException: for a missing file, non-video type or oversize upload.
            StorageException: if the backend could not persist the file.
        """
        try:
            self.validate_upload(filename if file is not None else None, content_type, size)
        except ValidationException:
            metrics.VIDEO_UPLOADS.labels(outcome="rejected").inc()
            raise

        upload = IncomingVideo(
            filename=filename,
            content_type=content_type,
            size=size,
            file=file,
            client_timestamp=client_timestamp,
        )

        try:
            record, evicted = await self.store.add_video(upload)
        except StorageException as e:
            metrics.VIDEO_UPLOADS.labels(outcome="failed").inc()
            raise StorageException(
                message="Failed to upload video",
                operation="upload",
                backend=self.store.backend,
                details=dict(e.details),
            ) from e

        metrics.VIDEO_UPLOADS.labels(outcome="stored").inc()
        logger.info(
            f"New video uploaded: {record.name}",
            extra={"video_id": record.id, "size_bytes": record.size, "backend": self.store.backend},
        )

        await self.notifier.broadcast(NewVideoEvent(video=record))
        for old in evicted:
            metrics.CATALOG_EVICTIONS.inc()
            await self.notifier.broadcast(VideoDeletedEvent(video_id=old.id))
        return record

    async def delete(self, video_id: str) -> None:
        """
        Remove a video and announce the deletion.

        Raises:
            VideoNotFoundException: if the local catalog has no such video.
            StorageException: if the backend failed to delete it.
        """
        logger.info(f"Attempting to delete video: {video_id}")
        try:
            await self.store.remove_video(video_id)
        except VideoNotFoundException:
            metrics.VIDEO_DELETES.labels(outcome="not_found").inc()
            raise
        except StorageException as e:
            metrics.VIDEO_DELETES.labels(outcome="failed").inc()
            raise StorageException(
                message="Failed to delete video",
                operation="delete",
                backend=self.store.backend,
                details=dict(e.details),
            ) from e

        metrics.VIDEO_DELETES.labels(outcome="deleted").inc()
        logger.info(f"Deleted video: {video_id}", extra={"video_id": video_id})
        await self.notifier.broadcast(VideoDeletedEvent(video_id=video_id))
