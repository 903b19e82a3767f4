from .errors import (
    BroadcastFailure,
    IngestError,
    MalformedPayload,
    MissingSubobject,
    PersistenceFailure,
    Unauthorized,
    UnroutablePayload,
)
from .normalizer import DetectionEvent, HealthEvent, ParseResult, parse_envelope, try_parse_envelope

__all__ = [
    "BroadcastFailure",
    "DetectionEvent",
    "HealthEvent",
    "IngestError",
    "MalformedPayload",
    "MissingSubobject",
    "ParseResult",
    "PersistenceFailure",
    "Unauthorized",
    "UnroutablePayload",
    "parse_envelope",
    "try_parse_envelope",
]
