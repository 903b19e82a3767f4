from .server import WEBHOOK_PATH, create_app, fan_out

__all__ = ["WEBHOOK_PATH", "create_app", "fan_out"]
