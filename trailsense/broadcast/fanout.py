"""
Real-time fan-out of alerts and device status to connected WebSocket clients.
Best-effort: no retry, no queueing for absent subscribers, no acknowledgement.
"""

import asyncio
import logging
from typing import Any, Protocol, Set

from ..ingest.errors import BroadcastFailure

logger = logging.getLogger("trailsense.broadcast")

EVENT_ALERT = "alert"
EVENT_DEVICE_STATUS = "deviceStatus"


class Subscriber(Protocol):
    async def send_json(self, data: Any) -> None: ...


class Broadcaster:
    """Subscriber registry plus publish; the registry is guarded by one asyncio lock."""

    def __init__(self, send_timeout: float = 5.0):
        self._subscribers: Set[Subscriber] = set()
        self._lock = asyncio.Lock()
        # per-subscriber send deadline, seconds
        self._send_timeout = send_timeout

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def register(self, subscriber: Subscriber) -> None:
        async with self._lock:
            self._subscribers.add(subscriber)
        logger.info("subscriber connected (%d total)", self.subscriber_count)

    async def unregister(self, subscriber: Subscriber) -> None:
        async with self._lock:
            self._subscribers.discard(subscriber)
        logger.info("subscriber disconnected (%d total)", self.subscriber_count)

    async def publish(self, event: str, data: dict) -> int:
        """Send one frame to every subscriber concurrently; returns how many accepted it."""
        async with self._lock:
            targets = list(self._subscribers)

        frame = {"event": event, "data": data}
        results = await asyncio.gather(*(self._send(subscriber, event, frame) for subscriber in targets))
        dead = [subscriber for subscriber, ok in zip(targets, results) if not ok]
        delivered = len(targets) - len(dead)

        if dead:
            async with self._lock:
                for subscriber in dead:
                    self._subscribers.discard(subscriber)
        logger.debug("broadcast %s to %d/%d subscribers", event, delivered, len(targets))
        return delivered

    async def _send(self, subscriber: Subscriber, event: str, frame: dict) -> bool:
        try:
            await asyncio.wait_for(subscriber.send_json(frame), timeout=self._send_timeout)
            return True
        except Exception as e:
            failure = BroadcastFailure(f"{event} not delivered: {e!r}")
            logger.warning("%s; dropping subscriber", failure)
            return False

    async def publish_alert(self, alert: dict) -> int:
        return await self.publish(EVENT_ALERT, alert)

    async def publish_device_status(self, status: dict) -> int:
        return await self.publish(EVENT_DEVICE_STATUS, status)


class NullBroadcaster(Broadcaster):
    """No transport wired: every publish is dropped."""

    async def publish(self, event: str, data: dict) -> int:
        logger.debug("no broadcast transport; dropped %s", event)
        return 0
