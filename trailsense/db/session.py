"""Database engine and session management with retry logic.
Local deployment: defaults to SQLite (no PostgreSQL required).
Docker / production: set DATABASE_URL or POSTGRES_* to use PostgreSQL.
"""
import logging
import os
import time
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger("trailsense.db")


def default_database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    if os.getenv("USE_POSTGRES", "").lower() in ("1", "true", "yes"):
        user = os.getenv("POSTGRES_USER", "admin")
        pwd = os.getenv("POSTGRES_PASSWORD", "password")
        db = os.getenv("POSTGRES_DB", "trailsense")
        host = os.getenv("POSTGRES_HOST", "localhost")
        port = os.getenv("POSTGRES_PORT", "5432")
        return f"postgresql://{user}:{pwd}@{host}:{port}/{db}"
    db_path = Path.cwd() / "trailsense.db"
    logger.info("Using SQLite for local deployment: %s", db_path)
    return f"sqlite:///{db_path}"


def _enable_sqlite_foreign_keys(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(database_url: Optional[str] = None, attempts: int = 3) -> Engine:
    url = database_url or default_database_url()
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        kwargs["pool_pre_ping"] = False
        if url in ("sqlite://", "sqlite:///:memory:"):
            # a single shared connection so every session sees the same database
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True

    engine = None
    for i in range(attempts):
        try:
            engine = create_engine(url, **kwargs)
            if url.startswith("sqlite"):
                event.listen(engine, "connect", _enable_sqlite_foreign_keys)
            with engine.connect():
                pass
            break
        except OperationalError as e:
            logger.warning("Database connection failed (attempt %s): %s", i + 1, e)
            engine = None
            time.sleep(2)
    if engine is None:
        raise RuntimeError("Could not create database engine")
    return engine


def create_tables(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)
