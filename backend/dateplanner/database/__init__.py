"""
Database wiring for the scheduling core.

Engines and session factories are built from an explicit Settings
instance; there is no module-level engine.
"""

import logging
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all scheduling tables."""


def create_db_engine(settings: Settings) -> Engine:
    """Create an engine for settings.database_url."""
    url = settings.database_url
    if settings.is_sqlite:
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so every session sees the same in-memory db
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=settings.database_echo, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    else:
        engine = create_engine(
            url,
            echo=settings.database_echo,
            pool_size=10,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=3600,
            pool_pre_ping=True,
        )
    logger.debug(f"Database engine created for dialect {engine.dialect.name}")
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables known to the metadata (development and tests)."""
    from .. import models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=engine)


__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "init_db",
]
