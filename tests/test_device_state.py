"""
Tests for device state reconciliation
"""

from datetime import datetime, timedelta, timezone

import pytest

from trailsense.devices import DeviceStatus, signal_quality

T0 = datetime(2025, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


def _domain_fields(device):
    return (
        device.id,
        device.name,
        device.online,
        device.battery_percent,
        device.signal_quality,
        device.detection_count,
    )


@pytest.mark.parametrize(
    "rssi, expected",
    [(-45, "excellent"), (-55, "good"), (-60, "good"), (-80, "fair"), (-90, "poor"), (-50, "good"), (-85, "poor"), (None, None)],
)
def test_signal_quality_bands(rssi, expected):
    assert signal_quality(rssi) == expected


class TestApplyDetection:

    def test_first_contact_creates_shell(self, devices):
        device = devices.apply_detection("dev-1", T0)
        assert device.id == "dev-1"
        assert device.name == "dev-1"
        assert device.detection_count == 1
        assert device.online is True
        assert device.battery_percent is None
        assert device.signal_quality is None

    def test_counter_equals_event_count(self, devices):
        for i in range(5):
            device = devices.apply_detection("dev-1", T0 + timedelta(seconds=i))
        assert device.detection_count == 5

    def test_detection_keeps_health_fields(self, devices):
        devices.apply_health("dev-1", T0, battery_percent=77, lte_rssi=-60)
        device = devices.apply_detection("dev-1", T0 + timedelta(minutes=1))
        assert device.battery_percent == 77
        assert device.signal_quality == "good"
        assert device.detection_count == 1

    def test_devices_are_independent(self, devices):
        devices.apply_detection("dev-1", T0)
        devices.apply_detection("dev-1", T0)
        other = devices.apply_detection("dev-2", T0)
        assert other.detection_count == 1
        assert devices.get("dev-1").detection_count == 2


class TestApplyHealth:

    def test_first_contact_heartbeat(self, devices):
        device = devices.apply_health("dev-7", T0, battery_percent=90)
        assert device.name == "dev-7"
        assert device.online is True
        assert device.battery_percent == 90
        assert device.signal_quality is None
        assert device.detection_count == 0

    def test_partial_update_preserves_fields(self, devices):
        devices.apply_health("dev-1", T0, battery_percent=64, lte_rssi=-80)
        device = devices.apply_health("dev-1", T0 + timedelta(minutes=5))
        assert device.battery_percent == 64
        assert device.signal_quality == "fair"

    def test_health_does_not_touch_counter(self, devices):
        devices.apply_detection("dev-1", T0)
        device = devices.apply_health("dev-1", T0, battery_percent=10)
        assert device.detection_count == 1

    def test_idempotent(self, devices):
        once = _domain_fields(devices.apply_health("dev-1", T0, battery_percent=55, lte_rssi=-66))
        twice = _domain_fields(devices.apply_health("dev-1", T0 + timedelta(seconds=30), battery_percent=55, lte_rssi=-66))
        assert once == twice

    def test_last_seen_tracks_latest_applied(self, devices):
        devices.apply_health("dev-1", T0 + timedelta(hours=1))
        device = devices.apply_health("dev-1", T0)
        # last write wins, even when it carries an older device clock
        assert device.last_seen.replace(tzinfo=timezone.utc) == T0


class TestDeviceStatus:

    def test_status_delta_omits_absent_fields(self, devices):
        device = devices.apply_detection("dev-1", T0)
        status = DeviceStatus.from_device(device).to_dict()
        assert status == {"deviceId": "dev-1", "online": True, "lastSeen": "2025-01-15T10:30:00+00:00"}

    def test_status_delta_with_health(self, devices):
        device = devices.apply_health("dev-1", T0, battery_percent=42, lte_rssi=-45)
        status = DeviceStatus.from_device(device).to_dict()
        assert status["batteryPercent"] == 42
        assert status["signalQuality"] == "excellent"
