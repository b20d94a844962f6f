import itertools
import os
from datetime import datetime, timezone
from typing import Callable, Generator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("LOGGING__LEVEL", "WARNING")

from video_hub.config import LiveSettings, Settings, StorageSettings
from video_hub.main import create_app
from video_hub.schemas import VideoRecord

from tests.utils import FAKE_VIDEO_BYTES


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def test_settings(tmp_path, upload_dir) -> Settings:
    """Local-backend settings writing into a temporary directory."""
    return Settings(
        ENVIRONMENT="test",
        STATIC_DIR=str(tmp_path / "no-static-dir"),
        storage=StorageSettings(upload_dir=str(upload_dir)),
        live=LiveSettings(send_timeout_seconds=2.0),
    )


@pytest.fixture
def client(test_settings) -> Generator[TestClient, None, None]:
    """A test client with the application lifespan running."""
    app = create_app(test_settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_record() -> Callable[..., VideoRecord]:
    """Factory for distinct video records."""
    counter = itertools.count(1)

    def _make(**overrides) -> VideoRecord:
        n = next(counter)
        data = {
            "id": f"video-{n}",
            "name": f"clip-{n}.mp4",
            "url": f"/uploads/video-{n}.mp4",
            "size": 10,
            "mimetype": "video/mp4",
            "timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "storage_key": f"video-{n}.mp4",
        }
        data.update(overrides)
        return VideoRecord(**data)

    return _make


@pytest.fixture
def fake_video():
    """Multipart ``files`` argument for a 10-byte mp4 upload."""
    return {"video": ("holiday.mp4", FAKE_VIDEO_BYTES, "video/mp4")}


@pytest.fixture
def mock_gcs_client():
    """Mocks the GCS client; blobs are MagicMocks with a public URL."""
    client = MagicMock()
    bucket = MagicMock()
    client.bucket.return_value = bucket

    def make_blob(name):
        blob = MagicMock()
        blob.name = name
        blob.public_url = f"https://storage.googleapis.com/test-bucket/{name}"
        return blob

    bucket.blob.side_effect = make_blob
    return client
