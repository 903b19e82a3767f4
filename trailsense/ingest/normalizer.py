"""
Payload normalizer for relayed sensor telemetry.

The IoT relay emits the same logical event in several envelope shapes:

    {"path": "/detections", "data": {...}}
    {"path": "heartbeat", "value": {...}}
    {"device_id": "...", "timestamp": {"seconds": ..., "nanos": ...}, "data": {...}}

Everything here is pure: envelopes in, canonical events out (or an IngestError).
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, NamedTuple, Optional, Union

from .errors import IngestError, MalformedPayload, MissingSubobject, UnroutablePayload

ROUTE_DETECTION = "detections"
ROUTE_HEARTBEAT = "heartbeat"
ROUTES = (ROUTE_DETECTION, ROUTE_HEARTBEAT)

KIND_WIFI = "w"
KIND_BLUETOOTH = "b"
KIND_CELLULAR = "c"
KIND_NAMES = {KIND_WIFI: "wifi", KIND_BLUETOOTH: "bluetooth", KIND_CELLULAR: "cellular"}

SIGNAL_FLOOR = -100
DBM_MIN = -150
DBM_MAX = 0
LOWEST_CONFIDENCE_ZONE = 3
UNKNOWN_MAC = "UNKNOWN"
MAC_PADDING = "XXXX"

# device or envelope timestamps above this are milliseconds
_MILLIS_THRESHOLD = 10 ** 11


@dataclass
class DetectionEvent:
    device_id: str
    epoch_seconds: int
    kind: str
    signal_strength: int
    zone: int
    distance: Optional[float] = None
    raw_mac: Optional[str] = None
    kind_fields: dict = field(default_factory=dict)

    @property
    def detection_type(self) -> str:
        return KIND_NAMES[self.kind]

    @property
    def mac_address(self) -> str:
        return pad_mac_address(self.raw_mac)

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.epoch_seconds, tz=timezone.utc)

    @property
    def cellular_peak(self) -> Optional[int]:
        return self.kind_fields.get("cellularPeak")

    def metadata(self) -> dict:
        return {"zone": self.zone, "distance": self.distance, **self.kind_fields}


@dataclass
class HealthEvent:
    device_id: str
    epoch_seconds: int
    battery_percent: Optional[int] = None
    lte_rssi: Optional[int] = None

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.epoch_seconds, tz=timezone.utc)


CanonicalEvent = Union[DetectionEvent, HealthEvent]


class ParseResult(NamedTuple):
    event: Optional[CanonicalEvent]
    error: Optional[IngestError]


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def as_int(value: Any) -> Optional[int]:
    """Coerce a relay field to int; None for absent, non-numeric or NaN values."""
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not _is_number(value):
        return None
    return int(value)


def as_float(value: Any) -> Optional[float]:
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not _is_number(value):
        return None
    return float(value)


def pad_mac_address(mac: Optional[str]) -> str:
    """Sensors only send the first 4 bytes; the rest is masked."""
    if not mac:
        return UNKNOWN_MAC
    return f"{mac}{MAC_PADDING}"


def normalize_path(path: Optional[str]) -> str:
    """'/detections', 'detections' and '/.s/detections' all become 'detections'."""
    if not path:
        return ""
    return str(path).lstrip("/").split("/")[-1]


def select_inner_payload(envelope: dict) -> dict:
    for key in ("data", "value"):
        inner = envelope.get(key)
        if isinstance(inner, dict):
            return inner
    raise MalformedPayload("no data/value object in payload")


def resolve_route(envelope: dict, inner: dict) -> str:
    raw_path = envelope.get("path")
    if raw_path:
        route = normalize_path(raw_path)
        if route not in ROUTES:
            raise UnroutablePayload(f"unknown path {raw_path!r}")
        return route

    has_detection = isinstance(inner.get("det"), dict)
    has_health = isinstance(inner.get("health"), dict)
    if has_detection == has_health:
        raise UnroutablePayload("cannot infer route: need exactly one of det/health")
    return ROUTE_DETECTION if has_detection else ROUTE_HEARTBEAT


def resolve_device_id(envelope: dict, inner: dict) -> str:
    for candidate in (inner.get("did"), envelope.get("device_id"), envelope.get("deviceId")):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    raise MalformedPayload("missing device identifier")


def _epoch_from_number(number: int) -> int:
    seconds = number // 1000 if number > _MILLIS_THRESHOLD else number
    try:
        datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (ValueError, OverflowError, OSError) as e:
        raise MalformedPayload(f"device timestamp {number} out of range") from e
    return seconds


def resolve_epoch_seconds(envelope: dict, inner: dict) -> int:
    """Inner 'ts', then envelope 'timestamp'; numbers above 10^11 are milliseconds."""
    ts = as_int(inner.get("ts"))
    if ts is not None:
        return _epoch_from_number(ts)

    stamp = envelope.get("timestamp")
    if isinstance(stamp, dict):
        seconds = as_int(stamp.get("seconds"))
        if seconds is not None:
            return _epoch_from_number(seconds)
    else:
        number = as_int(stamp)
        if number is not None:
            return _epoch_from_number(number)
    raise MalformedPayload("missing device timestamp")


def as_dbm(value: Any) -> Optional[int]:
    """Signal reading in dBm; None when absent or outside what a radio can report."""
    value = as_int(value)
    if value is None or not DBM_MIN <= value <= DBM_MAX:
        return None
    return value


def select_signal_strength(det: dict, kind: str) -> int:
    """Cellular sensing reports burst statistics: peak, then average, then the floor."""
    if kind == KIND_CELLULAR:
        candidates = (det.get("peak"), det.get("avg"))
    else:
        candidates = (det.get("r"),)
    for candidate in candidates:
        value = as_dbm(candidate)
        if value is not None:
            return value
    return SIGNAL_FLOOR


def _kind_fields(det: dict) -> dict:
    fields = {}
    channel = as_int(det.get("ch"))
    if channel is not None and 0 <= channel <= 255:
        fields["channel"] = channel
    if det.get("name"):
        fields["deviceName"] = str(det["name"])
    for src, dst in (("avg", "cellularAvg"), ("peak", "cellularPeak")):
        value = as_dbm(det.get(src))
        if value is not None:
            fields[dst] = value
    delta = as_int(det.get("delta"))
    if delta is not None and abs(delta) <= DBM_MAX - DBM_MIN:
        fields["cellularDelta"] = delta
    return fields


def _build_detection(device_id: str, epoch_seconds: int, det: dict) -> DetectionEvent:
    kind = det.get("t")
    if kind not in KIND_NAMES:
        raise MalformedPayload(f"unknown detection kind {kind!r}")

    zone = as_int(det.get("zone"))
    if zone is None or not 0 <= zone <= LOWEST_CONFIDENCE_ZONE:
        zone = LOWEST_CONFIDENCE_ZONE

    mac = det.get("mac")
    return DetectionEvent(
        device_id=device_id,
        epoch_seconds=epoch_seconds,
        kind=kind,
        signal_strength=select_signal_strength(det, kind),
        zone=zone,
        distance=as_float(det.get("dist")),
        raw_mac=str(mac) if mac else None,
        kind_fields=_kind_fields(det),
    )


def _build_health(device_id: str, epoch_seconds: int, health: dict) -> HealthEvent:
    battery = as_int(health.get("bat"))
    if battery is not None:
        battery = max(0, min(100, battery))
    return HealthEvent(
        device_id=device_id,
        epoch_seconds=epoch_seconds,
        battery_percent=battery,
        lte_rssi=as_dbm(health.get("rssi")),
    )


def parse_envelope(envelope: Any) -> CanonicalEvent:
    """
    Turn one relay envelope into a canonical event.

    Resolution order: inner payload ('data', then 'value'), route (explicit
    path, else inferred from det/health), device id, device timestamp.
    Raises MalformedPayload, UnroutablePayload or MissingSubobject.
    """
    if not isinstance(envelope, dict):
        raise MalformedPayload("payload is not a JSON object")

    inner = select_inner_payload(envelope)
    route = resolve_route(envelope, inner)
    block_key = "det" if route == ROUTE_DETECTION else "health"
    block = inner.get(block_key)
    if not isinstance(block, dict):
        raise MissingSubobject(f"no {block_key} data in {route} payload")

    device_id = resolve_device_id(envelope, inner)
    epoch_seconds = resolve_epoch_seconds(envelope, inner)

    if route == ROUTE_DETECTION:
        return _build_detection(device_id, epoch_seconds, block)
    return _build_health(device_id, epoch_seconds, block)


def try_parse_envelope(envelope: Any) -> ParseResult:
    try:
        return ParseResult(parse_envelope(envelope), None)
    except IngestError as e:
        return ParseResult(None, e)
