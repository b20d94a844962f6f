"""
Tests for the live notifier: registration, fan-out, replay and dropping of
broken viewer channels.
"""

import asyncio
import json

import pytest

from tests.utils import (
    ClosedTransportChannel,
    FailingChannel,
    RecordingChannel,
    StalledChannel,
    wait_for_condition,
)
from video_hub.schemas import NewVideoEvent, VideoDeletedEvent
from video_hub.services.notifier import LiveNotifier


class TestRegistration:

    @pytest.mark.asyncio
    async def test_greeting_carries_current_sequence(self, make_record):
        notifier = LiveNotifier()
        await notifier.broadcast(NewVideoEvent(video=make_record()))
        channel = RecordingChannel()

        await notifier.register(channel)
        await wait_for_condition(lambda: len(channel.messages) == 1)

        assert channel.events[0] == {"type": "connected", "seq": 1, "resync": False}
        assert channel in notifier
        assert len(notifier) == 1
        await notifier.close()

    @pytest.mark.asyncio
    async def test_unregister_is_idempotent(self):
        notifier = LiveNotifier()
        channel = RecordingChannel()
        await notifier.register(channel)

        await notifier.unregister(channel)
        await notifier.unregister(channel)
        await notifier.unregister(RecordingChannel())

        assert len(notifier) == 0
        assert not channel.is_open

    @pytest.mark.asyncio
    async def test_close_drops_every_channel(self):
        notifier = LiveNotifier()
        channels = [RecordingChannel(), RecordingChannel()]
        for channel in channels:
            await notifier.register(channel)

        await notifier.close()

        assert len(notifier) == 0
        assert all(channel.aborted for channel in channels)


class TestBroadcast:

    @pytest.mark.asyncio
    async def test_broadcast_without_channels(self, make_record):
        notifier = LiveNotifier()

        seq = await notifier.broadcast(NewVideoEvent(video=make_record()))

        assert seq == 1
        assert notifier.sequence == 1

    @pytest.mark.asyncio
    async def test_every_channel_receives_the_event(self, make_record):
        notifier = LiveNotifier()
        channels = [RecordingChannel(), RecordingChannel()]
        for channel in channels:
            await notifier.register(channel)
        record = make_record()

        await notifier.broadcast(NewVideoEvent(video=record))
        for channel in channels:
            await wait_for_condition(lambda: len(channel.messages) == 2)

        for channel in channels:
            event = channel.events[1]
            assert event["type"] == "new_video"
            assert event["seq"] == 1
            assert event["video"]["id"] == record.id
            assert event["video"]["url"] == record.url
            assert "storage_key" not in event["video"]
        # Serialized once, shared by every channel.
        assert channels[0].messages[1] == channels[1].messages[1]
        await notifier.close()

    @pytest.mark.asyncio
    async def test_deleted_event_uses_camel_case_id(self):
        notifier = LiveNotifier()
        channel = RecordingChannel()
        await notifier.register(channel)

        await notifier.broadcast(VideoDeletedEvent(video_id="abc"))
        await wait_for_condition(lambda: len(channel.messages) == 2)

        assert channel.events[1] == {"type": "video_deleted", "videoId": "abc", "seq": 1}
        await notifier.close()

    @pytest.mark.asyncio
    async def test_failing_channel_is_dropped(self, make_record):
        notifier = LiveNotifier()
        healthy = RecordingChannel()
        broken = FailingChannel()
        await notifier.register(healthy)
        await notifier.register(broken)

        await notifier.broadcast(NewVideoEvent(video=make_record()))
        await wait_for_condition(lambda: broken not in notifier)

        assert broken.aborted
        assert healthy in notifier
        # Later broadcasts still reach the healthy channel.
        await notifier.broadcast(VideoDeletedEvent(video_id="x"))
        await wait_for_condition(lambda: len(healthy.messages) == 3)
        await notifier.close()

    @pytest.mark.asyncio
    async def test_stalled_channel_times_out(self):
        notifier = LiveNotifier()
        stalled = StalledChannel(send_timeout=0.05)

        await notifier.register(stalled)
        await wait_for_condition(lambda: len(notifier) == 0)

        assert stalled.aborted

    @pytest.mark.asyncio
    async def test_closed_transport_removed_on_broadcast(self, make_record):
        notifier = LiveNotifier()
        channel = ClosedTransportChannel()
        await notifier.register(channel)

        await notifier.broadcast(NewVideoEvent(video=make_record()))

        assert channel not in notifier
        assert len(notifier) == 0


class TestBackpressure:

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        channel = RecordingChannel(queue_size=2)

        for message in ("a", "b", "c"):
            assert channel.offer(message)

        assert channel.pending() == 2
        assert channel.dropped == 1

        async def on_failure(_):
            raise AssertionError("channel should not fail")

        channel.start(on_failure)
        await wait_for_condition(lambda: len(channel.messages) == 2)
        assert channel.messages == ["b", "c"]
        await channel.close()

    @pytest.mark.asyncio
    async def test_offer_after_close_is_refused(self):
        channel = RecordingChannel()
        await channel.close()

        assert channel.offer("late") is False
        assert channel.pending() == 0


class TestShutdown:

    @pytest.mark.asyncio
    async def test_close_returns_promptly_for_idle_channels(self):
        notifier = LiveNotifier()
        channels = [RecordingChannel(), RecordingChannel()]
        for channel in channels:
            await notifier.register(channel)
        await wait_for_condition(lambda: all(c.messages for c in channels))

        await asyncio.wait_for(notifier.close(), timeout=0.5)

        assert all(c._task.done() for c in channels)

    @pytest.mark.asyncio
    async def test_unregister_right_after_register(self):
        notifier = LiveNotifier()
        channel = RecordingChannel()
        await notifier.register(channel)

        await asyncio.wait_for(notifier.unregister(channel), timeout=0.5)

        assert channel._task.done()

    @pytest.mark.asyncio
    async def test_channel_stuck_in_send_is_cancelled(self):
        notifier = LiveNotifier()
        channel = StalledChannel(send_timeout=60, close_timeout=0.05)
        await notifier.register(channel)
        await wait_for_condition(lambda: channel.pending() == 0)

        await asyncio.wait_for(notifier.unregister(channel), timeout=1.0)

        assert channel._task.done()
        assert channel not in notifier

    @pytest.mark.asyncio
    async def test_cancelling_the_caller_is_not_swallowed(self):
        notifier = LiveNotifier()
        channel = StalledChannel(send_timeout=60, close_timeout=10)
        await notifier.register(channel)
        await wait_for_condition(lambda: channel.pending() == 0)

        caller = asyncio.create_task(notifier.unregister(channel))
        await asyncio.sleep(0.05)
        caller.cancel()

        with pytest.raises(asyncio.CancelledError):
            await caller

        channel._task.cancel()
        await asyncio.wait({channel._task}, timeout=1.0)
        assert channel._task.done()


class TestReplay:

    @pytest.mark.asyncio
    async def test_missed_events_are_replayed(self):
        notifier = LiveNotifier()
        for video_id in ("a", "b", "c"):
            await notifier.broadcast(VideoDeletedEvent(video_id=video_id))

        channel = RecordingChannel()
        await notifier.register(channel, since=1)
        await wait_for_condition(lambda: len(channel.messages) == 3)

        greeting, *replayed = channel.events
        assert greeting == {"type": "connected", "seq": 3, "resync": False}
        assert [(e["seq"], e["videoId"]) for e in replayed] == [(2, "b"), (3, "c")]
        await notifier.close()

    @pytest.mark.asyncio
    async def test_up_to_date_viewer_gets_only_greeting(self):
        notifier = LiveNotifier()
        await notifier.broadcast(VideoDeletedEvent(video_id="a"))

        channel = RecordingChannel()
        await notifier.register(channel, since=1)
        await asyncio.sleep(0.05)

        assert channel.events == [{"type": "connected", "seq": 1, "resync": False}]
        await notifier.close()

    @pytest.mark.asyncio
    async def test_resync_when_history_is_gone(self):
        notifier = LiveNotifier(replay_buffer_size=2)
        for n in range(5):
            await notifier.broadcast(VideoDeletedEvent(video_id=str(n)))

        channel = RecordingChannel()
        await notifier.register(channel, since=1)
        await asyncio.sleep(0.05)

        assert channel.events == [{"type": "connected", "seq": 5, "resync": True}]
        await notifier.close()

    @pytest.mark.asyncio
    async def test_resync_when_replay_exceeds_queue(self):
        notifier = LiveNotifier()
        for n in range(4):
            await notifier.broadcast(VideoDeletedEvent(video_id=str(n)))

        channel = RecordingChannel(queue_size=3)
        await notifier.register(channel, since=0)
        await asyncio.sleep(0.05)

        assert json.loads(channel.messages[0])["resync"] is True
        assert len(channel.messages) == 1
        await notifier.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("since", [-1, 99])
    async def test_resync_for_unknown_sequence(self, since):
        notifier = LiveNotifier()
        await notifier.broadcast(VideoDeletedEvent(video_id="a"))

        channel = RecordingChannel()
        await notifier.register(channel, since=since)
        await wait_for_condition(lambda: len(channel.messages) == 1)

        assert channel.events[0]["resync"] is True
        await notifier.close()
