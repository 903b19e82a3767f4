from .state import DeviceStateManager, DeviceStatus, signal_quality

__all__ = ["DeviceStateManager", "DeviceStatus", "signal_quality"]
