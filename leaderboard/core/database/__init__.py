"""
Database infrastructure: async engine, sessions and declarative base.
"""

from leaderboard.core.database.base import Base, TimestampMixin
from leaderboard.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
