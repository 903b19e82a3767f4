from .fanout import EVENT_ALERT, EVENT_DEVICE_STATUS, Broadcaster, NullBroadcaster

__all__ = ["EVENT_ALERT", "EVENT_DEVICE_STATUS", "Broadcaster", "NullBroadcaster"]
