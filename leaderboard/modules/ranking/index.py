"""
Rank index: an ordered id -> score mirror of the durable store.

Purpose
-------
Answer "top K by descending score" without scanning the players table.
The index is derived state: it can be flushed, rebuilt or missing entirely
without data loss.

Contract
--------
- ``set(player_id, score)``: insert or overwrite; at most one entry per id
- ``remove(player_id)``: delete if present, no-op otherwise
- ``top_desc(limit)``: up to ``limit`` entries, highest score first
- ``rebuild(entries)``: atomically replace the whole index

Every operation either succeeds or raises ``RankIndexUnavailableError``.
An empty ``top_desc`` result means "empty", never "unreachable".

Persisted Layout (RedisRankIndex)
---------------------------------
One sorted set at ``RANKING_KEY`` (default ``leaderboard:global``);
members are player id strings, scores are ``total_score``.
"""

from __future__ import annotations

import abc
import asyncio
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, List, Optional

from redis.exceptions import RedisError

from leaderboard.core.config.config import Config
from leaderboard.core.logging.logger import get_logger
from leaderboard.core.redis.resilience import CircuitBreakerOpenError
from leaderboard.modules.shared.exceptions import RankIndexUnavailableError

if TYPE_CHECKING:
    from leaderboard.core.redis.service import RedisService

logger = get_logger(__name__)

# Everything the Redis layer can raise for "could not serve this call"
_UNAVAILABLE_ERRORS = (RedisError, CircuitBreakerOpenError, asyncio.TimeoutError, OSError)

# Bulk replace is exempt from the per-operation timeout
_REBUILD_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class RankEntry:
    player_id: uuid.UUID
    score: int


class RankIndex(abc.ABC):
    """Ordered mapping from player id to score."""

    @abc.abstractmethod
    async def set(self, player_id: uuid.UUID, score: int) -> None:
        ...

    @abc.abstractmethod
    async def remove(self, player_id: uuid.UUID) -> None:
        ...

    @abc.abstractmethod
    async def top_desc(self, limit: int) -> List[RankEntry]:
        ...

    @abc.abstractmethod
    async def rebuild(self, entries: Iterable[RankEntry]) -> int:
        """Replace the whole index with ``entries``; returns the entry count."""


def _to_score(raw: float) -> int:
    return int(raw) if float(raw).is_integer() else int(round(raw))


class RedisRankIndex(RankIndex):
    """
    RankIndex backed by a Redis sorted set.

    Equal scores come back in reverse-lexicographic member order, which is
    what ``PlayerStore.top_by_score`` reproduces with ``id DESC``.

    Args:
        redis: Connected (or connecting) RedisService
        key: Sorted-set key; defaults to ``Config.RANKING_KEY``
    """

    def __init__(self, redis: RedisService, key: Optional[str] = None) -> None:
        self._redis = redis
        self._key = key or Config.RANKING_KEY

    @property
    def key(self) -> str:
        return self._key

    def _unavailable(self, operation: str, exc: BaseException) -> RankIndexUnavailableError:
        return RankIndexUnavailableError(operation, f"{type(exc).__name__}: {exc}")

    async def set(self, player_id: uuid.UUID, score: int) -> None:
        try:
            await self._redis.zadd(self._key, str(player_id), score)
        except _UNAVAILABLE_ERRORS as exc:
            raise self._unavailable("set", exc) from exc

    async def remove(self, player_id: uuid.UUID) -> None:
        try:
            await self._redis.zrem(self._key, str(player_id))
        except _UNAVAILABLE_ERRORS as exc:
            raise self._unavailable("remove", exc) from exc

    async def top_desc(self, limit: int) -> List[RankEntry]:
        try:
            rows = await self._redis.zrevrange_with_scores(self._key, limit)
        except _UNAVAILABLE_ERRORS as exc:
            raise self._unavailable("top_desc", exc) from exc

        entries: List[RankEntry] = []
        for member, score in rows:
            try:
                player_id = uuid.UUID(member)
            except ValueError:
                logger.warning(
                    "Ignoring malformed rank index member",
                    extra={"key": self._key, "member": member},
                )
                continue
            entries.append(RankEntry(player_id, _to_score(score)))
        return entries

    async def rebuild(self, entries: Iterable[RankEntry]) -> int:
        members = {str(entry.player_id): entry.score for entry in entries}
        try:
            return await self._redis.replace_sorted_set(
                self._key, members, timeout=_REBUILD_TIMEOUT_SECONDS
            )
        except _UNAVAILABLE_ERRORS as exc:
            raise self._unavailable("rebuild", exc) from exc
