"""
Tests for the notification dispatcher and sinks.

A failing sink must never surface to the caller: side effects run after
the transaction has committed.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from src.domain.enums import NotificationType
from src.services.notifications import (
    LogNotificationSink,
    Notification,
    NotificationDispatcher,
    NotificationSink,
    RedisNotificationSink,
    build_sink,
)
from tests.conftest import RecordingSink

NOTE = Notification(
    title="New bid received",
    body="USD 600.00 offered for Maize bags",
    type=NotificationType.BID_RECEIVED,
    data={"load_id": 1, "bid_id": 2},
)


class _FailingSink(NotificationSink):
    async def send(self, user_id, notification):
        raise ConnectionError("gateway down")


class TestDispatcher:
    @pytest.mark.asyncio
    async def test_notify_is_fire_and_forget(self):
        sink = RecordingSink()
        dispatcher = NotificationDispatcher(sink)

        dispatcher.notify(7, NOTE)
        assert dispatcher.pending == 1
        assert sink.sent == []

        await dispatcher.drain()
        assert sink.sent == [(7, NOTE)]
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_none_recipient_is_ignored(self):
        dispatcher = NotificationDispatcher(RecordingSink())
        dispatcher.notify(None, NOTE)
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_sink_failure_is_logged_not_raised(self, caplog):
        dispatcher = NotificationDispatcher(_FailingSink())

        dispatcher.notify(7, NOTE)
        await dispatcher.drain()

        assert "Side effect failed: BID_RECEIVED -> user 7" in caplog.text

    @pytest.mark.asyncio
    async def test_drain_waits_for_work_spawned_by_work(self):
        sink = RecordingSink()
        dispatcher = NotificationDispatcher(sink)

        async def fan_out():
            await asyncio.sleep(0)
            for user_id in (1, 2, 3):
                dispatcher.notify(user_id, NOTE)

        dispatcher.spawn(fan_out(), "fan-out")
        await dispatcher.drain()
        assert sorted(uid for uid, _ in sink.sent) == [1, 2, 3]


class TestSinks:
    @pytest.mark.asyncio
    async def test_redis_sink_publishes_json_per_user(self):
        client = AsyncMock()
        sink = RedisNotificationSink(client, channel_prefix="freight:notify")

        await sink.send(42, NOTE)

        channel, payload = client.publish.call_args.args
        assert channel == "freight:notify:42"
        assert json.loads(payload) == {
            "title": NOTE.title,
            "body": NOTE.body,
            "type": "BID_RECEIVED",
            "data": {"load_id": 1, "bid_id": 2},
        }

    @pytest.mark.asyncio
    async def test_log_sink(self, caplog):
        caplog.set_level("INFO")
        await LogNotificationSink().send(3, NOTE)
        assert "Notify user=3 type=BID_RECEIVED" in caplog.text

    def test_build_sink(self):
        assert isinstance(build_sink("log"), LogNotificationSink)
        with pytest.raises(ValueError):
            build_sink("carrier-pigeon")
