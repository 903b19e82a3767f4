"""SQLAlchemy ORM models for TrailSense.
Compatible with both SQLite (local) and PostgreSQL (Docker/production).
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


def utc_now():
    return datetime.now(timezone.utc)


def isoformat_utc(value):
    # SQLite hands back naive datetimes; everything stored here is UTC
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class Device(Base):
    __tablename__ = "devices"

    id = Column(String, primary_key=True)  # assigned by the sensor itself
    name = Column(String, nullable=False)
    online = Column(Boolean, default=False, nullable=False)
    battery_percent = Column(Integer, nullable=True)
    signal_quality = Column(String, nullable=True)  # excellent|good|fair|poor
    detection_count = Column(Integer, default=0, nullable=False)
    last_seen = Column(DateTime(timezone=True), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    firmware_version = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    device_id = Column(String, ForeignKey("devices.id"), index=True, nullable=False)
    timestamp = Column(DateTime(timezone=True), index=True, nullable=False)
    threat_level = Column(String, nullable=False)
    detection_type = Column(String, nullable=False)
    rssi = Column(Integer, nullable=False)
    mac_address = Column(String, nullable=False)
    cellular_strength = Column(Integer, nullable=True)
    is_reviewed = Column(Boolean, default=False, nullable=False)
    is_false_positive = Column(Boolean, default=False, nullable=False)
    metadata_ = Column("metadata", JSON, default=dict, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
