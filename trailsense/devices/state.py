"""
Device state manager: one row per physical sensor, upserted by detection and
health events. First contact from either kind of event creates the record.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..db.models import Device, isoformat_utc, utc_now
from ..ingest.errors import PersistenceFailure

logger = logging.getLogger("trailsense.devices")

_NATIVE_UPSERT = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}


def signal_quality(lte_rssi: Optional[int]) -> Optional[str]:
    """Map LTE RSSI (dBm) to a coarse category; None when not reported."""
    if lte_rssi is None:
        return None
    if lte_rssi > -50:
        return "excellent"
    if lte_rssi > -70:
        return "good"
    if lte_rssi > -85:
        return "fair"
    return "poor"


@dataclass
class DeviceStatus:
    """Compact status delta pushed to subscribers after every upsert."""

    device_id: str
    online: bool
    last_seen: Optional[datetime]
    battery_percent: Optional[int] = None
    signal_quality: Optional[str] = None

    @classmethod
    def from_device(cls, device: Device) -> "DeviceStatus":
        return cls(
            device_id=device.id,
            online=device.online,
            last_seen=device.last_seen,
            battery_percent=device.battery_percent,
            signal_quality=device.signal_quality,
        )

    def to_dict(self) -> dict:
        data = {"deviceId": self.device_id, "online": self.online, "lastSeen": isoformat_utc(self.last_seen)}
        if self.battery_percent is not None:
            data["batteryPercent"] = self.battery_percent
        if self.signal_quality is not None:
            data["signalQuality"] = self.signal_quality
        return data


class DeviceStateManager:
    """
    Idempotent upserts keyed by device id. Each call is its own atomic
    statement; ordering across concurrent requests for one device is
    last-write-wins.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def apply_detection(self, device_id: str, timestamp: datetime) -> Device:
        create = {"id": device_id, "name": device_id, "online": True, "last_seen": timestamp, "detection_count": 1}
        update = {"online": True, "last_seen": timestamp, "detection_count": Device.detection_count + 1}
        return self._upsert(device_id, create, update)

    def apply_health(
        self,
        device_id: str,
        timestamp: datetime,
        battery_percent: Optional[int] = None,
        lte_rssi: Optional[int] = None,
    ) -> Device:
        update = {"online": True, "last_seen": timestamp}
        if battery_percent is not None:
            update["battery_percent"] = battery_percent
        quality = signal_quality(lte_rssi)
        if quality is not None:
            update["signal_quality"] = quality
        create = {"id": device_id, "name": device_id, "detection_count": 0, **update}
        return self._upsert(device_id, create, update)

    def get(self, device_id: str) -> Optional[Device]:
        with self._session_factory() as session:
            return session.get(Device, device_id)

    def _upsert(self, device_id: str, create: dict, update: dict) -> Device:
        update = {**update, "updated_at": utc_now()}
        with self._session_factory() as session:
            try:
                insert = _NATIVE_UPSERT.get(session.get_bind().dialect.name)
                if insert is not None:
                    stmt = insert(Device).values(**create)
                    stmt = stmt.on_conflict_do_update(index_elements=[Device.id], set_=update)
                    session.execute(stmt)
                    session.commit()
                else:
                    self._upsert_portable(session, device_id, create, update)
                device = session.get(Device, device_id, populate_existing=True)
            except PersistenceFailure:
                raise
            except Exception as e:
                session.rollback()
                logger.exception("device upsert failed for %s", device_id)
                raise PersistenceFailure(f"device upsert failed for {device_id}") from e
        logger.debug("device %s upserted (count=%s)", device_id, device.detection_count)
        return device

    @staticmethod
    def _upsert_portable(session, device_id: str, create: dict, update: dict) -> None:
        """select-then-write for dialects without ON CONFLICT; retries once on a create race."""
        for _ in range(2):
            device = session.get(Device, device_id, with_for_update=True)
            if device is None:
                session.add(Device(**create))
            else:
                for key, value in update.items():
                    if key == "detection_count":
                        value = device.detection_count + 1
                    setattr(device, key, value)
            try:
                session.commit()
                return
            except IntegrityError:
                session.rollback()
        raise PersistenceFailure(f"device upsert kept conflicting for {device_id}")
