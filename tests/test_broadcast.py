"""
Tests for the real-time fan-out
"""

import asyncio

import pytest

from conftest import FakeSocket
from trailsense.broadcast import EVENT_ALERT, EVENT_DEVICE_STATUS, Broadcaster, NullBroadcaster


class TestBroadcaster:

    @pytest.mark.asyncio
    async def test_publish_reaches_every_subscriber(self):
        hub = Broadcaster()
        a, b = FakeSocket(), FakeSocket()
        await hub.register(a)
        await hub.register(b)

        delivered = await hub.publish_alert({"id": "alert-1"})

        assert delivered == 2
        assert a.sent == [{"event": EVENT_ALERT, "data": {"id": "alert-1"}}]
        assert b.sent == a.sent

    @pytest.mark.asyncio
    async def test_publish_without_subscribers(self):
        hub = Broadcaster()
        assert await hub.publish_device_status({"deviceId": "d"}) == 0

    @pytest.mark.asyncio
    async def test_failed_subscriber_is_dropped(self):
        hub = Broadcaster()
        good, bad = FakeSocket(), FakeSocket(fail=True)
        await hub.register(good)
        await hub.register(bad)

        delivered = await hub.publish(EVENT_DEVICE_STATUS, {"deviceId": "d"})

        assert delivered == 1
        assert hub.subscriber_count == 1
        assert await hub.publish(EVENT_DEVICE_STATUS, {"deviceId": "d"}) == 1
        assert len(good.sent) == 2

    @pytest.mark.asyncio
    async def test_unregister(self):
        hub = Broadcaster()
        sock = FakeSocket()
        await hub.register(sock)
        await hub.unregister(sock)
        await hub.unregister(sock)
        assert hub.subscriber_count == 0
        await hub.publish_alert({"id": "x"})
        assert sock.sent == []

    @pytest.mark.asyncio
    async def test_concurrent_register_and_publish(self):
        hub = Broadcaster()
        sockets = [FakeSocket() for _ in range(20)]

        await asyncio.gather(*(hub.register(s) for s in sockets))
        results = await asyncio.gather(*(hub.publish_alert({"n": i}) for i in range(5)))

        assert results == [20] * 5
        assert all(len(s.sent) == 5 for s in sockets)


class TestNullBroadcaster:

    @pytest.mark.asyncio
    async def test_drops_everything(self):
        hub = NullBroadcaster()
        sock = FakeSocket()
        await hub.register(sock)
        assert await hub.publish_alert({"id": "x"}) == 0
        assert sock.sent == []


class TestSlowSubscribers:

    @pytest.mark.asyncio
    async def test_stalled_socket_does_not_delay_others(self):
        hub = Broadcaster(send_timeout=0.05)
        fast, stalled = FakeSocket(), FakeSocket(delay=5.0)
        await hub.register(fast)
        await hub.register(stalled)

        loop = asyncio.get_running_loop()
        started = loop.time()
        delivered = await hub.publish_alert({"id": "a-1"})
        elapsed = loop.time() - started

        assert delivered == 1
        assert elapsed < 1.0
        assert fast.sent == [{"event": EVENT_ALERT, "data": {"id": "a-1"}}]
        assert hub.subscriber_count == 1

    @pytest.mark.asyncio
    async def test_sends_run_concurrently(self):
        hub = Broadcaster(send_timeout=2.0)
        sockets = [FakeSocket(delay=0.2) for _ in range(5)]
        for s in sockets:
            await hub.register(s)

        loop = asyncio.get_running_loop()
        started = loop.time()
        assert await hub.publish_alert({"id": "a-2"}) == 5
        assert loop.time() - started < 0.9
