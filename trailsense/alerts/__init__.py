from .alert_store import AlertStore, alert_to_dict

__all__ = ["AlertStore", "alert_to_dict"]
