"""
Service configuration: config.yaml, then environment overrides.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional, Union

import yaml

logger = logging.getLogger("trailsense.config")

DEFAULT_CORS_ORIGINS = ["http://localhost:19006", "http://localhost:8081"]


@dataclass
class Settings:
    database_url: str = ""  # empty: derived from DATABASE_URL / POSTGRES_* / local SQLite
    webhook_secret: str = ""  # empty: webhook accepts unauthenticated deliveries
    webhook_header: str = "x-api-key"
    ws_token: str = ""
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    version: str = "1.0.0"


_ENV_OVERRIDES = {
    "DATABASE_URL": "database_url",
    "WEBHOOK_SECRET": "webhook_secret",
    "WS_TOKEN": "ws_token",
    "CORS_ORIGINS": "cors_origins",
    "HOST": "host",
    "PORT": "port",
    "LOG_LEVEL": "log_level",
}


def _coerce(name: str, value):
    if name == "port":
        return int(value)
    if name == "cors_origins" and isinstance(value, str):
        return [origin.strip() for origin in value.split(",") if origin.strip()]
    if name == "cors_origins":
        return [str(origin) for origin in value]
    return str(value)


def load_settings(path: Optional[Union[str, Path]] = "config.yaml", environ=None) -> Settings:
    environ = os.environ if environ is None else environ
    values = {}

    cfg_path = Path(path) if path else None
    if cfg_path is not None and cfg_path.is_file():
        with open(cfg_path, "r") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"{cfg_path} must contain a mapping")
        known = {item.name for item in fields(Settings)}
        for key, value in raw.items():
            if key in known and value is not None:
                values[key] = _coerce(key, value)
            elif key not in known:
                logger.debug("ignoring unknown config key %r", key)
    else:
        logger.warning("%s not found; using defaults", path)

    for env_name, attr in _ENV_OVERRIDES.items():
        if environ.get(env_name):
            values[attr] = _coerce(attr, environ[env_name])

    return Settings(**values)
