"""
Threat scoring for detection events.
Outputs an additive score and a level: low / medium / high / critical.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..ingest.normalizer import KIND_CELLULAR, KIND_NAMES, LOWEST_CONFIDENCE_ZONE, SIGNAL_FLOOR, as_int


class ThreatLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """low < medium < high < critical"""
        return _RANKS[self]


_RANKS = {ThreatLevel.LOW: 0, ThreatLevel.MEDIUM: 1, ThreatLevel.HIGH: 2, ThreatLevel.CRITICAL: 3}


@dataclass
class ThreatResult:
    score: int
    threat_level: ThreatLevel
    signal_strength: int
    zone: int
    kind: str


class ThreatClassifier:
    """
    Scoring (starts at 0):
      cellular-only detection      +40  (WiFi/BLE radios disabled)
      signal > -50 dBm             +30  very close
      signal > -70 dBm             +15  moderately close
      zone 0 (immediate, ~0-3m)    +20
      zone 1 (near, ~3-15m)        +10
    Levels: >= 70 critical, >= 50 high, >= 30 medium, else low.
    """

    CELLULAR_POINTS = 40
    VERY_CLOSE_DBM = -50
    VERY_CLOSE_POINTS = 30
    CLOSE_DBM = -70
    CLOSE_POINTS = 15
    ZONE_POINTS = {0: 20, 1: 10}

    CRITICAL_THRESHOLD = 70
    HIGH_THRESHOLD = 50
    MEDIUM_THRESHOLD = 30

    def score(self, signal_strength: Any, zone: Any, kind: str) -> ThreatResult:
        rssi = as_int(signal_strength)
        if rssi is None:
            rssi = SIGNAL_FLOOR
        zone_value = as_int(zone)
        if zone_value is None:
            zone_value = LOWEST_CONFIDENCE_ZONE
        code = _kind_code(kind)

        score = 0
        if code == KIND_CELLULAR:
            score += self.CELLULAR_POINTS

        if rssi > self.VERY_CLOSE_DBM:
            score += self.VERY_CLOSE_POINTS
        elif rssi > self.CLOSE_DBM:
            score += self.CLOSE_POINTS

        score += self.ZONE_POINTS.get(zone_value, 0)

        if score >= self.CRITICAL_THRESHOLD:
            level = ThreatLevel.CRITICAL
        elif score >= self.HIGH_THRESHOLD:
            level = ThreatLevel.HIGH
        elif score >= self.MEDIUM_THRESHOLD:
            level = ThreatLevel.MEDIUM
        else:
            level = ThreatLevel.LOW

        return ThreatResult(
            score=score,
            threat_level=level,
            signal_strength=rssi,
            zone=zone_value,
            kind=code,
        )


def _kind_code(kind: str) -> str:
    for code, name in KIND_NAMES.items():
        if kind == name:
            return code
    return kind


_default = ThreatClassifier()


def classify(signal_strength: Any, zone: Any, kind: str) -> ThreatLevel:
    """Threat level for one detection; accepts kind codes ('c') or names ('cellular')."""
    return _default.score(signal_strength, zone, kind).threat_level
