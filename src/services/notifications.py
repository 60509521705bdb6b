"""
Notification fan-out
====================

Lifecycle managers hand events to a ``NotificationDispatcher`` after their
transaction commits.  The dispatcher schedules delivery as a background
task and returns immediately; a failing sink is logged and never reaches
the caller, so a committed transition is never reported as failed.

Sinks
-----
* ``LogNotificationSink``   -- writes each notification to the log.
* ``RedisNotificationSink`` -- publishes JSON on ``<prefix>:<user_id>`` for
  the push / SMS / e-mail gateways subscribed to it.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Optional

import redis.asyncio as aioredis

from src.domain.enums import NotificationType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    type: NotificationType
    data: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(
            {
                "title": self.title,
                "body": self.body,
                "type": self.type.value,
                "data": self.data,
            },
            default=str,
        )


class NotificationSink:
    """Delivery backend.  ``send`` may raise; the dispatcher absorbs it."""

    async def send(self, user_id: int, notification: Notification) -> None:
        raise NotImplementedError


class LogNotificationSink(NotificationSink):
    async def send(self, user_id: int, notification: Notification) -> None:
        logger.info(
            "Notify user=%s type=%s title=%r",
            user_id,
            notification.type.value,
            notification.title,
        )


class RedisNotificationSink(NotificationSink):
    def __init__(self, client: aioredis.Redis, channel_prefix: str = "notifications"):
        self.redis = client
        self.channel_prefix = channel_prefix

    async def send(self, user_id: int, notification: Notification) -> None:
        await self.redis.publish(
            f"{self.channel_prefix}:{user_id}", notification.to_json()
        )


def build_sink(backend: str, channel_prefix: str = "notifications") -> NotificationSink:
    if backend == "redis":
        from src.infrastructure.redis_client import redis_client

        return RedisNotificationSink(redis_client(), channel_prefix)
    if backend == "log":
        return LogNotificationSink()
    raise ValueError(f"Unknown notification backend: {backend}")


class NotificationDispatcher:
    """Fire-and-forget scheduler for post-commit side effects."""

    def __init__(self, sink: NotificationSink):
        self.sink = sink
        self._pending: set[asyncio.Task] = set()

    def notify(self, user_id: Optional[int], notification: Notification) -> None:
        if user_id is None:
            return
        self.spawn(
            self.sink.send(user_id, notification),
            f"{notification.type.value} -> user {user_id}",
        )

    def spawn(self, work: Awaitable[Any], label: str) -> None:
        """Run *work* in the background; failures are logged and dropped."""
        task = asyncio.ensure_future(self._guard(work, label))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every side effect scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    @property
    def pending(self) -> int:
        return len(self._pending)

    @staticmethod
    async def _guard(work: Awaitable[Any], label: str) -> None:
        try:
            await work
        except Exception:
            logger.exception("Side effect failed: %s", label)
