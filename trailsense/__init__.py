"""TrailSense: detection telemetry ingestion, threat scoring and real-time fan-out."""

__version__ = "1.0.0"
