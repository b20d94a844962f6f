"""Accessors for the service objects owned by the running application."""
from fastapi.requests import HTTPConnection

from video_hub.config import Settings
from video_hub.services.notifier import LiveNotifier
from video_hub.services.video_service import VideoService


def get_settings(connection: HTTPConnection) -> Settings:
    return connection.app.state.settings


def get_video_service(connection: HTTPConnection) -> VideoService:
    return connection.app.state.services["video_service"]


def get_notifier(connection: HTTPConnection) -> LiveNotifier:
    return connection.app.state.services["notifier"]
