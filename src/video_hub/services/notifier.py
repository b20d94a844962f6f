"""
Live-update fan-out to connected viewers.

Each viewer channel owns a bounded outbound queue drained by its own sender
task, so a broadcast only enqueues and never waits on a slow viewer. A
channel whose send fails or times out is dropped from the registry.

Every broadcast event is stamped with a sequence number and kept in a short
replay buffer. A viewer that fetched the catalog at sequence ``n`` can
connect with ``since=n`` and receive whatever it missed in between.
"""
import asyncio
import json
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Tuple

from starlette.websockets import WebSocket, WebSocketState

from video_hub import metrics
from video_hub.exceptions import ChannelTransportException
from video_hub.schemas import LiveEvent

logger = logging.getLogger(__name__)

FailureCallback = Callable[["ViewerChannel"], Awaitable[None]]


class ViewerChannel:
    """
    One connected live-update subscriber.

    Subclasses implement ``send`` for their transport and may override
    ``transport_open`` and ``abort``.
    """

    def __init__(self, queue_size: int = 32, send_timeout: float = 5.0, close_timeout: float = 1.0):
        self.queue_size = queue_size
        self.send_timeout = send_timeout
        self.close_timeout = close_timeout
        self.dropped = 0
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed and self.transport_open()

    def transport_open(self) -> bool:
        return True

    async def send(self, message: str) -> None:
        raise NotImplementedError

    async def abort(self) -> None:
        """Tear down the transport after a failed send."""

    def offer(self, message: str) -> bool:
        """
        Queue a message without blocking.

        When the queue is full the oldest pending message is discarded.
        Returns False if the channel is already closed.
        """
        if self._closed:
            return False
        if self._put_dropping_oldest(message):
            self.dropped += 1
            metrics.LIVE_MESSAGES_DROPPED.inc()
        return True

    def _put_dropping_oldest(self, item: Optional[str]) -> bool:
        """Enqueue ``item``; returns True if an older entry had to go."""
        try:
            self._queue.put_nowait(item)
            return False
        except asyncio.QueueFull:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            self._queue.put_nowait(item)
            return True

    def pending(self) -> int:
        return self._queue.qsize()

    def start(self, on_failure: FailureCallback) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._pump(on_failure))

    async def _pump(self, on_failure: FailureCallback) -> None:
        while not self._closed:
            message = await self._queue.get()
            # None is the wake-up sentinel queued by close().
            if message is None or self._closed:
                return
            try:
                await asyncio.wait_for(self.send(message), timeout=self.send_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = ChannelTransportException(
                    details={"reason": type(e).__name__, "error": str(e)}
                )
                logger.info(
                    "Dropping viewer channel after failed send",
                    extra={"error_data": error.to_dict()},
                )
                self._closed = True
                await self.abort()
                await on_failure(self)
                return

    async def close(self) -> None:
        """
        Stop the sender task. Safe to call from inside the task itself.

        The task is woken with a sentinel and given ``close_timeout`` seconds
        to exit; a task stuck in ``send`` is cancelled instead. Returns within
        twice ``close_timeout`` either way.
        """
        self._closed = True
        task = self._task
        if task is None or task.done() or task is asyncio.current_task():
            return

        self._put_dropping_oldest(None)
        done, _ = await asyncio.wait({task}, timeout=self.close_timeout)
        if done:
            return

        task.cancel()
        done, _ = await asyncio.wait({task}, timeout=self.close_timeout)
        if not done:
            logger.warning(f"Sender task of {self!r} ignored cancellation")


class WebSocketChannel(ViewerChannel):
    """Viewer channel backed by a Starlette/FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket, **kwargs):
        super().__init__(**kwargs)
        self.websocket = websocket

    def transport_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, message: str) -> None:
        await self.websocket.send_text(message)

    async def abort(self) -> None:
        if self.websocket.application_state != WebSocketState.CONNECTED:
            return
        try:
            await self.websocket.close(code=1011)
        except (RuntimeError, OSError) as e:
            logger.debug(f"WebSocket already gone while closing: {e}")

    def __repr__(self) -> str:
        client = self.websocket.client
        return f"WebSocketChannel({client.host}:{client.port})" if client else "WebSocketChannel()"


class LiveNotifier:
    """Registry of connected viewer channels and the broadcast over them."""

    def __init__(self, replay_buffer_size: int = 100):
        self._channels: Dict[ViewerChannel, None] = {}
        self._lock = asyncio.Lock()
        self._sequence = 0
        self._history: Deque[Tuple[int, str]] = deque(maxlen=replay_buffer_size)

    @property
    def sequence(self) -> int:
        """Sequence number of the most recent broadcast (0 before any)."""
        return self._sequence

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, channel: object) -> bool:
        return channel in self._channels

    async def register(self, channel: ViewerChannel, since: Optional[int] = None) -> None:
        """
        Add a channel and start delivering to it.

        The channel first receives a ``connected`` greeting carrying the
        current sequence number. If ``since`` is given, buffered events newer
        than it are queued next; when they are no longer all available the
        greeting sets ``resync`` so the viewer refetches the catalog instead.
        """
        async with self._lock:
            missed, resync = self._missed_since(since, channel.queue_size)
            greeting = {"type": "connected", "seq": self._sequence, "resync": resync}
            channel.offer(json.dumps(greeting))
            for message in missed:
                channel.offer(message)
            self._channels[channel] = None
            channel.start(self.unregister)
            metrics.LIVE_VIEWERS.set(len(self._channels))

        logger.info(
            "Viewer connected",
            extra={"viewers": len(self._channels), "replayed": len(missed), "resync": resync},
        )

    async def unregister(self, channel: ViewerChannel) -> None:
        """Remove a channel. Removing an unknown channel is a no-op."""
        async with self._lock:
            removed = self._channels.pop(channel, None) is not None
            metrics.LIVE_VIEWERS.set(len(self._channels))
        await channel.close()
        if removed:
            logger.info("Viewer disconnected", extra={"viewers": len(self._channels)})

    async def broadcast(self, event: LiveEvent) -> int:
        """
        Serialize ``event`` once and queue it on every open channel.

        Channels that are no longer open are dropped. Per-channel failures
        are never raised to the caller.

        Returns:
            The sequence number assigned to the event.
        """
        payload = event.model_dump(mode="json", by_alias=True)

        async with self._lock:
            self._sequence += 1
            payload["seq"] = self._sequence
            message = json.dumps(payload)
            self._history.append((self._sequence, message))

            stale: List[ViewerChannel] = []
            for channel in self._channels:
                if not (channel.is_open and channel.offer(message)):
                    stale.append(channel)
            for channel in stale:
                del self._channels[channel]
            sequence = self._sequence
            delivered = len(self._channels)
            metrics.LIVE_VIEWERS.set(delivered)

        await asyncio.gather(*(channel.close() for channel in stale))

        metrics.LIVE_BROADCASTS.labels(event_type=payload["type"]).inc()
        logger.debug(
            "Broadcast event",
            extra={"event_type": payload["type"], "seq": sequence, "viewers": delivered, "dropped_channels": len(stale)},
        )
        return sequence

    async def close(self) -> None:
        """Drop every channel; used on application shutdown."""
        async with self._lock:
            channels = list(self._channels)
            self._channels.clear()
            metrics.LIVE_VIEWERS.set(0)
        for channel in channels:
            await channel.abort()
        await asyncio.gather(*(channel.close() for channel in channels))

    def _missed_since(self, since: Optional[int], limit: int) -> Tuple[List[str], bool]:
        if since is None or since == self._sequence:
            return [], False
        if since > self._sequence or since < 0:
            # The viewer saw a sequence this process never issued (e.g. a restart).
            return [], True
        missed = [message for seq, message in self._history if seq > since]
        complete = len(missed) == self._sequence - since
        # One queue slot is taken by the greeting.
        if not complete or len(missed) >= limit:
            return [], True
        return missed, False
