"""Storage implementations.

- base: the Storage protocol consumed by the engines
- memory: dict-backed storage for development and tests
- storage_orm: SQLAlchemy ORM storage for PostgreSQL
"""

from .base import Storage
from .memory import InMemoryStorage
from .storage_orm import SqlAlchemyStorage


__all__ = [
    "InMemoryStorage",
    "SqlAlchemyStorage",
    "Storage",
]
