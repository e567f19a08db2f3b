"""
SQLAlchemy engine for the audit trail.

One engine per process, created on first use from ``DATABASE_URL``.
SQLite (the default) gets its parent directory created and is opened for
use from the request thread pool.
"""

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

from bastion.config import Settings, get_settings
from bastion.core import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def _engine_options(database_url: str, echo: bool) -> dict[str, Any]:
    url = make_url(database_url)
    options: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if url.get_backend_name() != "sqlite":
        options.update(pool_size=5, max_overflow=10)
        return options

    options["connect_args"] = {"check_same_thread": False}
    if url.database and url.database != ":memory:":
        directory = Path(url.database).parent
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            logger.info("Created audit database directory", data={"path": str(directory)})
    return options


def get_engine(settings: Settings | None = None) -> Engine:
    """Return the process engine, creating it on first call."""
    global _engine

    if _engine is None:
        settings = settings or get_settings()
        _engine = create_engine(settings.database_url, **_engine_options(settings.database_url, settings.debug))
        logger.info("Audit database engine created", data={"dialect": _engine.dialect.name})
    return _engine


def verify_database_connection() -> bool:
    """True when the audit database answers ``SELECT 1``."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Audit database unreachable", data={"error": str(exc)})
        return False
    return True


def dispose_engine() -> None:
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
        logger.info("Audit database engine disposed")
