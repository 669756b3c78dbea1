"""
Player Model
============

Durable player record for the leaderboard.

Schema-only representation of:
- Identity (UUID primary key, unique immutable username)
- Score and progression counters (total_score, level, games)
- Profile metadata (status, avatar_url, country, last_played)
- Timestamps (created_at, updated_at)

All behavior and ranking rules live in service layers.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from leaderboard.core.database.base import Base, TimestampMixin

# Upper bound of the signed 32-bit INTEGER columns below
INTEGER_COLUMN_MAX = 2_147_483_647


class PlayerStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    BANNED = "banned"


class Player(Base, TimestampMixin):
    """
    A player record. PlayerStore is the only writer.
    """

    # ========================================================================
    # TABLE CONFIGURATION
    # ========================================================================

    __tablename__ = "players"
    __table_args__ = (
        Index("ix_players_total_score", "total_score"),
        Index("ix_players_created_at", "created_at"),
        CheckConstraint("total_score >= 0", name="ck_players_total_score_nonneg"),
        CheckConstraint("level >= 1", name="ck_players_level_positive"),
        CheckConstraint("games_played >= 0", name="ck_players_games_played_nonneg"),
        CheckConstraint("games_won >= 0", name="ck_players_games_won_nonneg"),
    )

    # ========================================================================
    # PRIMARY KEY & IDENTITY
    # ========================================================================

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        doc="Opaque unique identifier, generated on creation",
    )

    username: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        doc="Unique, case-sensitive, immutable after creation",
    )

    # ========================================================================
    # SCORE & PROGRESSION
    # ========================================================================

    total_score: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Ranking score mirrored into the rank index",
    )

    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    games_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    games_won: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Not validated against games_played",
    )

    # ========================================================================
    # PROFILE
    # ========================================================================

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=PlayerStatus.ACTIVE.value,
        doc="One of active, inactive, banned",
    )

    avatar_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)

    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    last_played: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Player(id={self.id}, username='{self.username}', "
            f"total_score={self.total_score})>"
        )
