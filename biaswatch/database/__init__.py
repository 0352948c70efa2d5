"""Database module: SQLAlchemy async engine, sessions and ORM models."""

from .connection import (
    close_database,
    create_engine_for,
    create_tables,
    get_async_database_url,
    get_session,
    get_session_factory,
    init_database,
    make_session_factory,
)
from .orm import Base, BiasScoreRow, ChangeDetectionCursorRow, FundamentalSnapshotRow


__all__ = [
    "Base",
    "BiasScoreRow",
    "ChangeDetectionCursorRow",
    "FundamentalSnapshotRow",
    "close_database",
    "create_engine_for",
    "create_tables",
    "get_async_database_url",
    "get_session",
    "get_session_factory",
    "init_database",
    "make_session_factory",
]
