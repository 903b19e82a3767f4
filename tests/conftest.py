"""
Shared fixtures: in-memory SQLite per test, pipeline components, and an app
wired to a broadcaster that records instead of sending.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from trailsense.alerts import AlertStore
from trailsense.api import create_app
from trailsense.broadcast import Broadcaster
from trailsense.config import Settings
from trailsense.db import create_tables, make_engine, make_session_factory
from trailsense.devices import DeviceStateManager
from trailsense.pipeline import IngestionPipeline


class RecordingBroadcaster(Broadcaster):
    """Keeps every published frame for assertions."""

    def __init__(self):
        super().__init__()
        self.frames = []

    async def publish(self, event, data):
        self.frames.append((event, data))
        return await super().publish(event, data)

    def events(self):
        return [event for event, _ in self.frames]


class FakeSocket:
    def __init__(self, fail=False, delay=0.0):
        self.fail = fail
        self.delay = delay
        self.sent = []

    async def send_json(self, data):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append(data)


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def devices(session_factory):
    return DeviceStateManager(session_factory)


@pytest.fixture
def alert_store(session_factory):
    return AlertStore(session_factory)


@pytest.fixture
def pipeline(devices, alert_store):
    return IngestionPipeline(devices=devices, alerts=alert_store)


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def settings():
    return Settings(webhook_secret="")


@pytest.fixture
def app(settings, session_factory, broadcaster):
    return create_app(settings, session_factory=session_factory, broadcaster=broadcaster)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def detection_payload(device_id="dev-1", ts=1733000000, **det):
    body = {"t": "w", "mac": "A1B2C3D4", "r": -60, "zone": 1, "dist": 5.5}
    body.update(det)
    return {"path": "/detections", "data": {"did": device_id, "ts": ts, "det": body}}


def heartbeat_payload(device_id="dev-1", ts=1733000000, **health):
    body = {"heap": 120000, "uptime": 3600}
    body.update(health)
    return {"path": "/heartbeat", "data": {"did": device_id, "ts": ts, "health": body}}
