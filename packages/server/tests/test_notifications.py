"""
Tests for the in-process room broadcaster.
"""

from __future__ import annotations

import uuid

import pytest
from structlog.testing import capture_logs

from solacedesk.core import notifications
from solacedesk.core.notifications import NullNotificationSink, RoomBroadcaster, publish_safely


class TestRoomBroadcaster:
    @pytest.fixture
    def broadcaster(self):
        return RoomBroadcaster()

    @pytest.mark.asyncio
    async def test_publish_reaches_room_subscribers_only(self, broadcaster):
        room_a, room_b = uuid.uuid4(), uuid.uuid4()
        sub_a = broadcaster.subscribe(room_a)
        sub_b = broadcaster.subscribe(room_b)

        await broadcaster.publish(room_a, "member.joined", {"user_id": "u1"})

        event = sub_a.queue.get_nowait()
        assert event["type"] == "member.joined"
        assert event["room_id"] == str(room_a)
        assert event["payload"] == {"user_id": "u1"}
        assert "timestamp" in event
        assert sub_b.queue.empty()

    @pytest.mark.asyncio
    async def test_unsubscribe(self, broadcaster):
        room_id = uuid.uuid4()
        sub = broadcaster.subscribe(room_id, uuid.uuid4())
        assert broadcaster.subscriber_count(room_id) == 1

        broadcaster.unsubscribe(sub)
        broadcaster.unsubscribe(sub)

        assert broadcaster.subscriber_count(room_id) == 0
        await broadcaster.publish(room_id, "member.left", {})
        assert sub.queue.empty()

    @pytest.mark.asyncio
    async def test_stalled_subscriber_dropped(self, broadcaster, monkeypatch):
        monkeypatch.setattr(notifications, "SUBSCRIBER_QUEUE_SIZE", 1)
        room_id = uuid.uuid4()
        slow = broadcaster.subscribe(room_id)
        await broadcaster.publish(room_id, "e1", {})

        with capture_logs() as logs:
            await broadcaster.publish(room_id, "e2", {})

        assert broadcaster.subscriber_count(room_id) == 0
        assert slow.queue.get_nowait()["type"] == "e1"
        assert logs[0]["event"] == "notifications.subscriber_dropped"


class TestPublishSafely:
    @pytest.mark.asyncio
    async def test_failure_swallowed(self):
        class Broken:
            async def publish(self, room_id, event_type, payload):
                raise ConnectionError("gone")

        with capture_logs() as logs:
            await publish_safely(Broken(), uuid.uuid4(), "member.joined", {})
        assert logs[0]["event"] == "notifications.publish_failed"

    @pytest.mark.asyncio
    async def test_null_sink(self):
        await publish_safely(NullNotificationSink(), uuid.uuid4(), "member.joined", {})
