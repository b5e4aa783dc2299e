"""
Room membership notifications.

Lifecycle services receive a ``NotificationSink`` and call ``publish`` only
after their transaction has committed. ``RoomBroadcaster`` is the in-process
implementation: it fans events out to per-room subscriber queues, which a
transport layer (WebSocket, SSE) can drain.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import structlog

log = structlog.get_logger()

SUBSCRIBER_QUEUE_SIZE = 100


class NotificationSink(Protocol):
    async def publish(self, room_id: uuid.UUID, event_type: str, payload: dict[str, Any]) -> None: ...


class NullNotificationSink:
    async def publish(self, room_id: uuid.UUID, event_type: str, payload: dict[str, Any]) -> None:
        return None


class Subscription:
    """One listener's queue of room events."""

    __slots__ = ("room_id", "user_id", "queue")

    def __init__(self, room_id: uuid.UUID, user_id: Optional[uuid.UUID]):
        self.room_id = room_id
        self.user_id = user_id
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)


class RoomBroadcaster:
    """In-process fan-out of room events to subscribers."""

    def __init__(self) -> None:
        # room_id -> list[Subscription]
        self._subscriptions: dict[uuid.UUID, list[Subscription]] = {}

    def subscribe(self, room_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> Subscription:
        sub = Subscription(room_id, user_id)
        self._subscriptions.setdefault(room_id, []).append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.room_id)
        if not subs:
            return
        if sub in subs:
            subs.remove(sub)
        if not subs:
            del self._subscriptions[sub.room_id]

    def subscriber_count(self, room_id: uuid.UUID) -> int:
        return len(self._subscriptions.get(room_id, []))

    async def publish(self, room_id: uuid.UUID, event_type: str, payload: dict[str, Any]) -> None:
        event = {
            "type": event_type,
            "room_id": str(room_id),
            "payload": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        stalled = []
        for sub in list(self._subscriptions.get(room_id, [])):
            try:
                sub.queue.put_nowait(event)
            except asyncio.QueueFull:
                stalled.append(sub)

        # Drop listeners that stopped draining their queue
        for sub in stalled:
            log.warning("notifications.subscriber_dropped", room_id=str(room_id), user_id=str(sub.user_id))
            self.unsubscribe(sub)


async def publish_safely(
    sink: NotificationSink, room_id: uuid.UUID, event_type: str, payload: dict[str, Any]
) -> None:
    """Publish after commit; a delivery failure never affects the committed change."""
    try:
        await sink.publish(room_id, event_type, payload)
    except Exception as exc:
        log.error("notifications.publish_failed", room_id=str(room_id), event_type=event_type, error=str(exc))
