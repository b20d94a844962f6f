"""WebSocket endpoint for live gallery updates."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from video_hub.api.dependencies import get_notifier, get_settings
from video_hub.config import Settings
from video_hub.services.notifier import LiveNotifier, WebSocketChannel

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws")
@router.websocket("/")
async def live_updates(
    websocket: WebSocket,
    since: Optional[int] = None,
    notifier: LiveNotifier = Depends(get_notifier),
    config: Settings = Depends(get_settings),
):
    """
    Pushes ``new_video`` / ``video_deleted`` events to the viewer.

    Anything the client sends is ignored; the read loop only exists to
    notice the disconnect.
    """
    await websocket.accept()
    channel = WebSocketChannel(
        websocket,
        queue_size=config.live.channel_queue_size,
        send_timeout=config.live.send_timeout_seconds,
    )
    await notifier.register(channel, since=since)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        logger.debug("Viewer socket closed by client")
    finally:
        await notifier.unregister(channel)
