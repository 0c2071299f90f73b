"""Engine and session lifecycle for the SQLAlchemy persistence layer.

One ``Database`` is built lazily from settings and torn down with
``dispose_engine()``; request handlers get a transaction per request through
``get_session_dependency``.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

IN_MEMORY_SQLITE_URLS = frozenset({"sqlite://", "sqlite:///:memory:"})


def _engine_options(settings: Settings) -> Dict[str, Any]:
    url = settings.database_url
    if url.startswith("sqlite"):
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in IN_MEMORY_SQLITE_URLS:
            # Every connection must see the same in-memory database.
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_pre_ping": True,
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
    }


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """An engine plus the session factory bound to it."""

    def __init__(self, settings: Settings) -> None:
        if not settings.database_url:
            raise RuntimeError("CODEHELPER_DATABASE_URL must be configured before using the database.")
        self.engine: Engine = create_engine(
            settings.database_url,
            echo=settings.database_echo,
            **_engine_options(settings),
        )
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.sessions: sessionmaker[Session] = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )
        logger.debug("Database engine ready (%s)", self.engine.dialect.name)

    def dispose(self) -> None:
        self.engine.dispose()


_database: Optional[Database] = None


def get_database() -> Database:
    global _database
    if _database is None:
        _database = Database(get_settings())
    return _database


def get_engine() -> Engine:
    return get_database().engine


@contextmanager
def session_scope(*, commit: bool = True) -> Generator[Session, None, None]:
    """Yield a session; commit on success unless ``commit`` is False, roll back on error."""
    with get_database().sessions() as session:
        try:
            yield session
            if commit:
                session.commit()
        except Exception:
            session.rollback()
            raise


def get_session_dependency() -> Generator[Session, None, None]:
    with session_scope() as session:
        yield session


def init_schema() -> None:
    """Create any missing tables. Migrations remain the source of truth outside development."""
    from . import models  # noqa: F401  (registers tables on Base.metadata)
    from .base import Base

    Base.metadata.create_all(get_engine())


def dispose_engine() -> None:
    global _database
    if _database is not None:
        _database.dispose()
    _database = None


__all__ = [
    "Database",
    "dispose_engine",
    "get_database",
    "get_engine",
    "get_session_dependency",
    "init_schema",
    "session_scope",
]
