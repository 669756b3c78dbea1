"""
Immutable player snapshot handed across the service boundary.

ORM instances stay inside PlayerStore; everything above it (RankingService,
AdminGateway, scripts) works with ``PlayerRecord``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from leaderboard.database.models.player import Player


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite drops tzinfo; everything is stored as UTC
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


@dataclass(frozen=True)
class PlayerRecord:
    id: uuid.UUID
    username: str
    total_score: int
    level: int
    games_played: int
    games_won: int
    status: str
    avatar_url: Optional[str]
    country: Optional[str]
    last_played: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, player: Player) -> "PlayerRecord":
        return cls(
            id=player.id,
            username=player.username,
            total_score=player.total_score,
            level=player.level,
            games_played=player.games_played,
            games_won=player.games_won,
            status=player.status,
            avatar_url=player.avatar_url,
            country=player.country,
            last_played=player.last_played,
            created_at=player.created_at,
            updated_at=player.updated_at,
        )

    @property
    def win_rate(self) -> float:
        """Percentage of games won, rounded to one decimal; 0 with no games."""
        if self.games_played <= 0:
            return 0.0
        return round(self.games_won / self.games_played * 100.0, 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "username": self.username,
            "total_score": self.total_score,
            "level": self.level,
            "games_played": self.games_played,
            "games_won": self.games_won,
            "win_rate": self.win_rate,
            "status": self.status,
            "avatar_url": self.avatar_url,
            "country": self.country,
            "last_played": _iso(self.last_played),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
