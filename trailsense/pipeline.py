"""
Ingestion pipeline: envelope -> canonical event -> device upsert -> alert
insert (detections only). Broadcast frames are returned, not sent, so the
caller can answer the relay before fan-out completes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from .alerts.alert_store import AlertStore, alert_to_dict
from .broadcast.fanout import EVENT_ALERT, EVENT_DEVICE_STATUS
from .devices.state import DeviceStateManager, DeviceStatus
from .ingest.errors import MissingSubobject
from .ingest.normalizer import ROUTE_DETECTION, ROUTE_HEARTBEAT, DetectionEvent, HealthEvent, parse_envelope
from .severity.scoring import ThreatClassifier

logger = logging.getLogger("trailsense.ingest")


@dataclass
class IngestResult:
    route: Optional[str] = None
    alert: Optional[dict] = None
    device_status: Optional[dict] = None
    dropped: bool = False
    notes: List[str] = field(default_factory=list)

    def broadcasts(self) -> List[Tuple[str, dict]]:
        frames = []
        if self.alert is not None:
            frames.append((EVENT_ALERT, self.alert))
        if self.device_status is not None:
            frames.append((EVENT_DEVICE_STATUS, self.device_status))
        return frames


class IngestionPipeline:
    def __init__(
        self,
        devices: DeviceStateManager,
        alerts: AlertStore,
        classifier: Optional[ThreatClassifier] = None,
    ):
        self._devices = devices
        self._alerts = alerts
        self._classifier = classifier or ThreatClassifier()

    def process(self, envelope: Any) -> IngestResult:
        """
        Run one relay delivery through the pipeline.

        MalformedPayload / UnroutablePayload / PersistenceFailure propagate.
        MissingSubobject is logged and acknowledged as a dropped event.
        """
        try:
            event = parse_envelope(envelope)
        except MissingSubobject as e:
            logger.warning("dropping relay event: %s", e.message)
            return IngestResult(dropped=True, notes=[e.message])

        if isinstance(event, DetectionEvent):
            return self._process_detection(event)
        return self._process_health(event)

    def _process_detection(self, event: DetectionEvent) -> IngestResult:
        threat = self._classifier.score(event.signal_strength, event.zone, event.kind)

        # device first so a first-contact detection never orphans its alert
        device = self._devices.apply_detection(event.device_id, event.timestamp)
        alert = self._alerts.append(event, threat)

        return IngestResult(
            route=ROUTE_DETECTION,
            alert=alert_to_dict(alert),
            device_status=DeviceStatus.from_device(device).to_dict(),
        )

    def _process_health(self, event: HealthEvent) -> IngestResult:
        device = self._devices.apply_health(
            event.device_id,
            event.timestamp,
            battery_percent=event.battery_percent,
            lte_rssi=event.lte_rssi,
        )
        logger.info(
            "Heartbeat processed: %s (battery: %s%%, signal: %s)",
            device.id,
            device.battery_percent,
            device.signal_quality,
        )
        return IngestResult(route=ROUTE_HEARTBEAT, device_status=DeviceStatus.from_device(device).to_dict())
