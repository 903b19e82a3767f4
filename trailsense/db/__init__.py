from .models import Alert, Base, Device
from .session import create_tables, make_engine, make_session_factory

__all__ = ["Alert", "Base", "Device", "create_tables", "make_engine", "make_session_factory"]
