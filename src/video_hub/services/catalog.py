"""
Bounded, newest-first catalog of the videos currently visible to viewers.
"""
import logging
import threading
from collections import deque
from typing import Deque, Dict, List, Optional

from video_hub.exceptions import VideoNotFoundException
from video_hub.schemas import VideoRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 20


class Catalog:
    """
    Fixed-capacity, insertion-ordered collection of video records.

    New records go to the front; when the capacity is exceeded exactly one
    record is evicted from the back and handed to the caller, which owns the
    job of releasing the stored file.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._records: Deque[VideoRecord] = deque()
        self._index: Dict[str, VideoRecord] = {}
        self._lock = threading.Lock()

    def insert(self, record: VideoRecord) -> Optional[VideoRecord]:
        """
        Add a record at the head of the catalog.

        Returns:
            The evicted (oldest) record if the insert overflowed the
            capacity, otherwise None.
        """
        with self._lock:
            existing = self._index.pop(record.id, None)
            if existing is not None:
                # Same id uploaded again: the newer record replaces the old one.
                self._records.remove(existing)

            self._records.appendleft(record)
            self._index[record.id] = record

            evicted = None
            if len(self._records) > self.max_size:
                evicted = self._records.pop()
                del self._index[evicted.id]

        if evicted is not None:
            logger.info(
                "Catalog full, evicted oldest video",
                extra={"video_id": evicted.id, "catalog_size": self.max_size},
            )
        return evicted

    def remove(self, video_id: str) -> VideoRecord:
        """
        Remove a record by id.

        Raises:
            VideoNotFoundException: if no record has this id.
        """
        with self._lock:
            record = self._index.pop(video_id, None)
            if record is None:
                raise VideoNotFoundException(video_id)
            self._records.remove(record)
        return record

    def get(self, video_id: str) -> Optional[VideoRecord]:
        with self._lock:
            return self._index.get(video_id)

    def list(self) -> List[VideoRecord]:
        """Newest-first snapshot of the catalog."""
        with self._lock:
            return list(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._index.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, video_id: object) -> bool:
        return video_id in self._index
