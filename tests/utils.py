"""
Test utilities and helpers for the video hub test suite.
"""

import asyncio
import json
import time
from typing import Any, Callable, Dict, List, Optional

from httpx import Response

from video_hub.services.notifier import ViewerChannel

FAKE_VIDEO_BYTES = b"0123456789"


def assert_response_success(response: Response, expected_status: int = 200) -> Any:
    """Assert response is successful and return JSON data."""
    assert response.status_code == expected_status, (
        f"Expected status {expected_status}, got {response.status_code}. "
        f"Response: {response.text}"
    )
    return response.json()


def assert_response_error(
    response: Response,
    expected_status: int,
    expected_message: Optional[str] = None,
    expected_error_code: Optional[str] = None,
) -> Dict[str, Any]:
    """Assert response is an error and return error data."""
    assert response.status_code == expected_status, (
        f"Expected error status {expected_status}, got {response.status_code}. "
        f"Response: {response.text}"
    )

    error_data = response.json()
    assert "error" in error_data, "Error response missing error"
    assert "error_code" in error_data, "Error response missing error_code"
    assert "correlation_id" in error_data, "Error response missing correlation_id"

    if expected_message is not None:
        assert error_data["error"] == expected_message
    if expected_error_code is not None:
        assert error_data["error_code"] == expected_error_code, (
            f"Expected error code {expected_error_code}, "
            f"got {error_data['error_code']}"
        )

    return error_data


async def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float = 2.0,
    interval: float = 0.01,
    error_message: str = "Condition not met within timeout"
) -> None:
    """Wait for a condition to become true within a timeout."""
    start_time = time.monotonic()
    while time.monotonic() - start_time < timeout:
        if condition():
            return
        await asyncio.sleep(interval)

    raise AssertionError(f"{error_message} (timeout: {timeout}s)")


class RecordingChannel(ViewerChannel):
    """Viewer channel that keeps every message it is sent."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.messages: List[str] = []
        self.aborted = False

    async def send(self, message: str) -> None:
        self.messages.append(message)

    async def abort(self) -> None:
        self.aborted = True

    @property
    def events(self) -> List[Dict[str, Any]]:
        return [json.loads(m) for m in self.messages]


class FailingChannel(RecordingChannel):
    """Viewer channel whose transport is broken."""

    async def send(self, message: str) -> None:
        raise ConnectionResetError("peer went away")


class StalledChannel(RecordingChannel):
    """Viewer channel that never finishes a send."""

    async def send(self, message: str) -> None:
        await asyncio.sleep(3600)


class ClosedTransportChannel(RecordingChannel):
    """Viewer channel whose transport reports itself closed."""

    def transport_open(self) -> bool:
        return False
