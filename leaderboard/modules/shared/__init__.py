"""Shared building blocks for domain modules."""

from leaderboard.modules.shared.base_repository import BaseRepository
from leaderboard.modules.shared.base_service import BaseService
from leaderboard.modules.shared.exceptions import (
    ConflictError,
    ErrorSeverity,
    ForbiddenError,
    LeaderboardDomainException,
    NotFoundError,
    RankIndexUnavailableError,
    StoreUnavailableError,
    UnauthorizedError,
    ValidationError,
)

__all__ = [
    "BaseRepository",
    "BaseService",
    "ErrorSeverity",
    "LeaderboardDomainException",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "StoreUnavailableError",
    "RankIndexUnavailableError",
    "UnauthorizedError",
    "ForbiddenError",
]
