"""
Video stores: where uploaded bytes live and how the visible list is built.

``LocalVideoStore`` writes files to a directory on disk and keeps metadata in
the in-memory ``Catalog``. ``CloudVideoStore`` keeps everything in a Google
Cloud Storage bucket under a fixed folder and lists it from the provider.
Both expose the same ``list_videos`` / ``add_video`` / ``remove_video``
contract so the HTTP and broadcast layers do not care which one is active.
"""
import abc
import asyncio
import logging
import mimetypes
import random
import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote
from typing import Any, BinaryIO, Callable, Dict, List, Optional, Tuple

from google.api_core.exceptions import NotFound
from google.cloud import storage

from video_hub.exceptions import (
    ConfigurationException,
    StorageException,
    VideoNotFoundException,
)
from video_hub.schemas import VideoRecord
from video_hub.services.catalog import Catalog
from video_hub.timeouts import TimeoutConfig, with_timeout

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024

# Extensions are taken from client filenames, so only plain ones are kept.
SAFE_EXTENSION = re.compile(r"^\.[a-z0-9]{1,10}$")


@dataclass
class IncomingVideo:
    """An upload that passed validation and is ready to be stored."""

    filename: str
    content_type: str
    size: int
    file: BinaryIO
    client_timestamp: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        # Browsers on Windows may send the full client path.
        return Path(self.filename.replace("\\", "/")).name or "video"

    @property
    def extension(self) -> str:
        suffix = Path(self.display_name).suffix.lower()
        if SAFE_EXTENSION.match(suffix):
            return suffix
        guessed = mimetypes.guess_extension(self.content_type or "")
        if guessed and SAFE_EXTENSION.match(guessed):
            return guessed
        return ".bin"


def generate_storage_name(extension: str) -> str:
    """``<millisecond timestamp>-<random int>.<ext>``, unique enough per process."""
    return f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}{extension}"


class PendingWrite:
    """
    A file being written by a worker thread that the caller may give up on.

    ``commit`` (worker thread) and ``abandon`` (caller, after a timeout) take
    the same lock, so either the file is renamed into place and then removed
    by ``abandon``, or ``commit`` sees the abandonment and renames nothing.
    """

    def __init__(self, destination: Path):
        self.destination = destination
        self.partial = destination.with_name(destination.name + ".part")
        self._lock = threading.Lock()
        self._abandoned = False

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    def commit(self) -> None:
        with self._lock:
            if self._abandoned:
                raise OSError("write cancelled")
            self.partial.replace(self.destination)

    def abandon(self) -> None:
        with self._lock:
            self._abandoned = True
            self.destination.unlink(missing_ok=True)


class VideoStore(abc.ABC):
    """Common contract of the storage backends."""

    backend: str = ""
    list_limit: int = 0
    # Lower-case extensions without the dot; None accepts any video type.
    allowed_formats: Optional[List[str]] = None

    async def startup(self) -> None:
        """Prepare the backend; failures here abort application startup."""

    async def shutdown(self) -> None:
        """Release backend resources."""

    @abc.abstractmethod
    async def list_videos(self) -> List[VideoRecord]:
        """Newest-first list of visible videos, at most ``list_limit`` long."""

    @abc.abstractmethod
    async def add_video(self, upload: IncomingVideo) -> Tuple[VideoRecord, List[VideoRecord]]:
        """
        Persist an upload.

        Returns:
            The new record and any records removed to make room for it.
        """

    @abc.abstractmethod
    async def remove_video(self, video_id: str) -> None:
        """Delete a video and its stored bytes."""

    def describe(self) -> Dict[str, Any]:
        return {"backend": self.backend, "list_limit": self.list_limit}


class LocalVideoStore(VideoStore):
    """Files on local disk, metadata in a bounded in-memory catalog."""

    backend = "local"

    def __init__(
        self,
        upload_dir: str,
        catalog: Catalog,
        public_base_url: str = "",
        timeout: float = 30.0,
    ):
        self.upload_dir = Path(upload_dir)
        self.catalog = catalog
        self.public_base_url = public_base_url.rstrip("/")
        self.timeout_config = TimeoutConfig(total_timeout=timeout)
        self.list_limit = catalog.max_size
        # Serializes catalog changes that span an awaited file operation.
        self._mutation_lock = asyncio.Lock()

    async def startup(self) -> None:
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationException(
                f"Cannot create upload directory {self.upload_dir}: {e}",
                config_key="storage.upload_dir",
            ) from e
        logger.info(f"Local video store ready at: {self.upload_dir.resolve()}")

    async def list_videos(self) -> List[VideoRecord]:
        return self.catalog.list()

    def public_url(self, storage_name: str) -> str:
        return f"{self.public_base_url}/uploads/{quote(storage_name)}"

    async def add_video(self, upload: IncomingVideo) -> Tuple[VideoRecord, List[VideoRecord]]:
        storage_name = generate_storage_name(upload.extension)
        destination = self.upload_dir / storage_name
        pending = PendingWrite(destination)

        try:
            await with_timeout(
                self._write_file, "local_write", self.timeout_config, upload.file, pending
            )
        except StorageException:
            # The worker thread may still be running; make sure it commits nothing.
            await asyncio.to_thread(pending.abandon)
            raise
        except OSError as e:
            raise StorageException(
                message=f"Failed to write {storage_name}",
                operation="local_write",
                backend=self.backend,
                details={"original_error": str(e)},
            ) from e

        record = VideoRecord(
            id=Path(storage_name).stem,
            name=upload.display_name,
            url=self.public_url(storage_name),
            size=destination.stat().st_size,
            mimetype=upload.content_type,
            timestamp=upload.client_timestamp or datetime.now(timezone.utc),
            storage_key=storage_name,
        )

        async with self._mutation_lock:
            evicted = self.catalog.insert(record)
            if evicted is None:
                return record, []
            await self._discard_file(evicted.storage_key)
        return record, [evicted]

    async def remove_video(self, video_id: str) -> None:
        async with self._mutation_lock:
            record = self.catalog.get(video_id)
            if record is None:
                raise VideoNotFoundException(video_id)

            try:
                await with_timeout(
                    self._unlink, "local_delete", self.timeout_config, record.storage_key
                )
            except OSError as e:
                raise StorageException(
                    message=f"Failed to delete {record.storage_key}",
                    operation="local_delete",
                    backend=self.backend,
                    details={"video_id": video_id, "original_error": str(e)},
                ) from e

            self.catalog.remove(video_id)

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info.update({"catalog_size": len(self.catalog), "upload_dir": str(self.upload_dir)})
        return info

    def _write_file(self, source: BinaryIO, pending: "PendingWrite") -> None:
        partial = pending.partial
        source.seek(0)
        try:
            with open(partial, "wb") as out:
                while True:
                    if pending.abandoned:
                        raise OSError("write cancelled")
                    chunk = source.read(COPY_CHUNK_SIZE)
                    if not chunk:
                        break
                    out.write(chunk)
            pending.commit()
        except BaseException:
            partial.unlink(missing_ok=True)
            raise

    def _unlink(self, storage_name: str) -> None:
        (self.upload_dir / storage_name).unlink(missing_ok=True)

    async def _discard_file(self, storage_name: str) -> None:
        try:
            await with_timeout(self._unlink, "local_evict", self.timeout_config, storage_name)
        except (OSError, StorageException) as e:
            # The record is already out of the catalog; a leftover file only costs disk.
            logger.warning(
                f"Could not delete evicted file {storage_name}: {e}",
                extra={"storage_key": storage_name},
            )


def default_gcs_client_factory(
    project_id: Optional[str] = None,
    credentials_file: Optional[str] = None,
) -> Callable[[], storage.Client]:
    def factory() -> storage.Client:
        if credentials_file:
            return storage.Client.from_service_account_json(credentials_file, project=project_id)
        return storage.Client(project=project_id)
    return factory


class CloudVideoStore(VideoStore):
    """
    Videos stored in a Google Cloud Storage bucket under a fixed folder.

    Listing is a provider query sorted by creation time and capped at
    ``list_limit``; nothing is evicted locally.
    """

    backend = "gcs"

    def __init__(
        self,
        bucket_name: str,
        folder: str,
        client_factory: Callable[[], storage.Client],
        list_limit: int = 30,
        timeout: float = 30.0,
        allowed_formats: Optional[List[str]] = None,
    ):
        self.bucket_name = bucket_name
        self.folder = folder.strip("/")
        self.client_factory = client_factory
        self.list_limit = list_limit
        self.timeout = timeout
        self.timeout_config = TimeoutConfig(total_timeout=timeout)
        self.allowed_formats = [f.lower().lstrip(".") for f in allowed_formats] if allowed_formats else None
        self._client: Optional[storage.Client] = None

    async def startup(self) -> None:
        try:
            self._client = await with_timeout(self.client_factory, "gcs_connect", self.timeout_config)
        except Exception as e:
            raise ConfigurationException(
                f"Cannot create Google Cloud Storage client: {e}",
                config_key="gcs",
            ) from e
        logger.info(f"Cloud video store ready: gs://{self.bucket_name}/{self.folder}/")

    async def shutdown(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    @property
    def client(self) -> storage.Client:
        if self._client is None:
            self._client = self.client_factory()
        return self._client

    @property
    def prefix(self) -> str:
        return f"{self.folder}/"

    async def list_videos(self) -> List[VideoRecord]:
        try:
            blobs = await with_timeout(self._list_blobs, "gcs_list", self.timeout_config)
        except StorageException:
            raise
        except Exception as e:
            raise StorageException(
                message="Failed to list videos",
                operation="gcs_list",
                backend=self.backend,
                details={"original_error": str(e)},
            ) from e
        return [self._to_record(blob) for blob in blobs]

    async def add_video(self, upload: IncomingVideo) -> Tuple[VideoRecord, List[VideoRecord]]:
        object_name = self.prefix + generate_storage_name(upload.extension)
        try:
            blob = await with_timeout(self._upload, "gcs_upload", self.timeout_config, object_name, upload)
        except StorageException:
            raise
        except Exception as e:
            raise StorageException(
                message=f"Failed to upload {object_name}",
                operation="gcs_upload",
                backend=self.backend,
                details={"object_name": object_name, "original_error": str(e)},
            ) from e

        record = VideoRecord(
            id=object_name,
            name=upload.display_name,
            url=blob.public_url,
            size=upload.size,
            mimetype=upload.content_type,
            timestamp=datetime.now(timezone.utc),
            storage_key=object_name,
        )
        return record, []

    async def remove_video(self, video_id: str) -> None:
        if not video_id.startswith(self.prefix):
            logger.info(f"Ignoring delete outside {self.prefix}: {video_id}")
            return
        try:
            await with_timeout(self._delete, "gcs_delete", self.timeout_config, video_id)
        except StorageException:
            raise
        except Exception as e:
            raise StorageException(
                message=f"Failed to delete {video_id}",
                operation="gcs_delete",
                backend=self.backend,
                details={"video_id": video_id, "original_error": str(e)},
            ) from e

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info.update({"bucket": self.bucket_name, "folder": self.folder})
        return info

    def _list_blobs(self) -> list:
        blobs = self.client.list_blobs(self.bucket_name, prefix=self.prefix, timeout=self.timeout)
        videos = [b for b in blobs if (b.content_type or "").startswith("video/")]
        videos.sort(key=lambda b: b.time_created, reverse=True)
        return videos[: self.list_limit]

    def _upload(self, object_name: str, upload: IncomingVideo):
        blob = self.client.bucket(self.bucket_name).blob(object_name)
        blob.metadata = {"original_name": upload.display_name}
        upload.file.seek(0)
        blob.upload_from_file(
            upload.file,
            content_type=upload.content_type,
            size=upload.size,
            timeout=self.timeout,
        )
        return blob

    def _delete(self, object_name: str) -> None:
        try:
            self.client.bucket(self.bucket_name).blob(object_name).delete(timeout=self.timeout)
        except NotFound:
            logger.info(f"Video already absent from bucket: {object_name}")

    def _to_record(self, blob) -> VideoRecord:
        metadata = blob.metadata or {}
        return VideoRecord(
            id=blob.name,
            name=metadata.get("original_name") or blob.name.rsplit("/", 1)[-1],
            url=blob.public_url,
            size=blob.size or 0,
            mimetype=blob.content_type,
            timestamp=blob.time_created,
            storage_key=blob.name,
        )


def build_video_store(config) -> VideoStore:
    """Create the store selected by ``config.storage.backend``."""
    if config.storage.backend == "gcs":
        return CloudVideoStore(
            bucket_name=config.gcs.bucket_name,
            folder=config.gcs.folder,
            client_factory=default_gcs_client_factory(
                project_id=config.gcs.project_id,
                credentials_file=config.gcs.credentials_file,
            ),
            list_limit=config.gcs.list_limit,
            timeout=config.storage.timeout_seconds,
            allowed_formats=config.gcs.allowed_formats,
        )

    return LocalVideoStore(
        upload_dir=config.storage.upload_dir,
        catalog=Catalog(max_size=config.storage.max_catalog_size),
        public_base_url=config.storage.public_base_url,
        timeout=config.storage.timeout_seconds,
    )
