"""Database utilities for the Code Helper API."""

from .base import Base
from .session import (
    Database,
    dispose_engine,
    get_database,
    get_engine,
    get_session_dependency,
    init_schema,
    session_scope,
)

__all__ = [
    "Base",
    "Database",
    "dispose_engine",
    "get_database",
    "get_engine",
    "get_session_dependency",
    "init_schema",
    "session_scope",
]
