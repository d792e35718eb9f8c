"""
Outbound events for collaborators outside this service.

NotificationDispatcher - pushes notification events to the Redis list
`events:p2p`; delivery workers (push/email/SMS) consume it.

RealtimeEmitter - publishes socket events on `realtime:<room>`; the
WebSocket gateway relays them to connected clients. Personal rooms are
named `user_<id>`.

Both are fire-and-forget: failures are logged and never raised, so the
business operation that triggered them is never rolled back. Without a
Redis URL they only log.
"""

import json
import logging
import time

from redis import Redis

from ..redis_client import build_redis

logger = logging.getLogger(__name__)

NOTIFICATION_QUEUE = "events:p2p"
REALTIME_CHANNEL_PREFIX = "realtime:"

NEW_MESSAGE = "newMessage"
CONVERSATION_UPDATED = "conversationUpdated"


def user_room(user_id: int) -> str:
    return f"user_{user_id}"


class _RedisPublisher:
    def __init__(self, url: str = "", socket_timeout: float = 2.0):
        self.url = url
        self.socket_timeout = socket_timeout
        self.redis: Redis | None = None

    def connect(self) -> None:
        if self.url:
            self.redis = build_redis(self.url, self.socket_timeout)

    def close(self) -> None:
        if self.redis is not None:
            self.redis.close()
            self.redis = None


class NotificationDispatcher(_RedisPublisher):
    def notify(
        self,
        user_id: int,
        title: str,
        message: str,
        channels: tuple[str, ...] = ("in_app", "push"),
        data: dict | None = None,
    ) -> dict:
        """Queue a notification for user_id. Returns the event as queued."""
        event = {
            "type": "notification",
            "user_id": user_id,
            "title": title,
            "message": message,
            "channels": list(channels),
            "data": data or {},
            "ts": int(time.time()),
        }
        if self.redis is None:
            logger.info(f"Notification (not queued): user={user_id} title={title!r}")
            return event

        try:
            self.redis.rpush(NOTIFICATION_QUEUE, json.dumps(event))
            logger.info(f"Notification queued: user={user_id} title={title!r} → {NOTIFICATION_QUEUE}")
        except Exception as e:
            logger.error(f"Failed to queue notification for user {user_id}: {e}")
        return event


class RealtimeEmitter(_RedisPublisher):
    def emit(self, room: str, event: str, payload: dict) -> None:
        message = {"event": event, "payload": payload, "ts": int(time.time())}
        if self.redis is None:
            logger.debug(f"Realtime event (not published): {event} → {room}")
            return

        try:
            self.redis.publish(f"{REALTIME_CHANNEL_PREFIX}{room}", json.dumps(message, default=str))
        except Exception as e:
            logger.error(f"Failed to emit {event} to {room}: {e}")

    def emit_to_users(self, user_ids, event: str, payload: dict) -> None:
        for user_id in user_ids:
            self.emit(user_room(user_id), event, payload)
