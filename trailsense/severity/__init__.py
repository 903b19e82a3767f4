from .scoring import ThreatClassifier, ThreatLevel, ThreatResult, classify

__all__ = ["ThreatClassifier", "ThreatLevel", "ThreatResult", "classify"]
