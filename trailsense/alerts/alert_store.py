"""
Alert store: append-only log of classified detections.
"""

import logging

from sqlalchemy.orm import sessionmaker

from ..db.models import Alert, Device, isoformat_utc
from ..ingest.errors import PersistenceFailure
from ..ingest.normalizer import DetectionEvent
from ..severity.scoring import ThreatResult

logger = logging.getLogger("trailsense.alerts")


def alert_to_dict(alert: Alert) -> dict:
    return {
        "id": alert.id,
        "deviceId": alert.device_id,
        "timestamp": isoformat_utc(alert.timestamp),
        "threatLevel": alert.threat_level,
        "detectionType": alert.detection_type,
        "rssi": alert.rssi,
        "macAddress": alert.mac_address,
        "cellularStrength": alert.cellular_strength,
        "isReviewed": alert.is_reviewed,
        "isFalsePositive": alert.is_false_positive,
        "metadata": alert.metadata_,
        "createdAt": isoformat_utc(alert.created_at),
    }


class AlertStore:
    """
    Inserts one Alert per accepted detection. The owning device must already
    exist; callers upsert it through DeviceStateManager first.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def append(self, event: DetectionEvent, threat: ThreatResult) -> Alert:
        with self._session_factory() as session:
            try:
                if session.get(Device, event.device_id) is None:
                    raise PersistenceFailure(f"alert references unknown device {event.device_id}")
                alert = Alert(
                    device_id=event.device_id,
                    timestamp=event.timestamp,
                    threat_level=threat.threat_level.value,
                    detection_type=event.detection_type,
                    rssi=threat.signal_strength,
                    mac_address=event.mac_address,
                    cellular_strength=event.cellular_peak,
                    is_reviewed=False,
                    is_false_positive=False,
                    metadata_=event.metadata(),
                )
                session.add(alert)
                session.commit()
            except PersistenceFailure:
                raise
            except Exception as e:
                # driver errors such as OverflowError on bind are not SQLAlchemyError
                session.rollback()
                logger.exception("alert insert failed for %s", event.device_id)
                raise PersistenceFailure(f"alert insert failed for {event.device_id}") from e

        logger.info(
            "Alert created: %s (%s - %s) device=%s",
            alert.id,
            alert.threat_level,
            alert.detection_type,
            alert.device_id,
        )
        return alert

    def count_for_device(self, device_id: str) -> int:
        with self._session_factory() as session:
            return session.query(Alert).filter(Alert.device_id == device_id).count()
