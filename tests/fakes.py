"""
In-memory stand-ins for PlayerStore and RankIndex.

Both fakes share an optional ``journal`` list so tests can assert the order
in which the durable store and the index were touched. Each can be switched
to an unavailable mode, per operation, to exercise the degradation paths.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from leaderboard.modules.players.record import PlayerRecord
from leaderboard.modules.players.sorting import DEFAULT_SORT, SortSpec
from leaderboard.modules.players.validation import PlayerPayload
from leaderboard.modules.ranking.index import RankEntry, RankIndex
from leaderboard.modules.shared.exceptions import (
    ConflictError,
    NotFoundError,
    RankIndexUnavailableError,
    StoreUnavailableError,
)

_EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)


class InMemoryPlayerStore:
    def __init__(self, journal: Optional[List[str]] = None) -> None:
        self.rows: Dict[uuid.UUID, PlayerRecord] = {}
        self.journal = journal if journal is not None else []
        self.available = True
        self._tick = 0

    def _check(self, operation: str) -> None:
        self.journal.append(f"store.{operation}")
        if not self.available:
            raise StoreUnavailableError(operation, "store offline")

    def _now(self) -> datetime:
        self._tick += 1
        return _EPOCH + timedelta(seconds=self._tick)

    async def upsert(
        self, player_id: Optional[uuid.UUID], payload: PlayerPayload
    ) -> PlayerRecord:
        self._check("upsert")

        if player_id is None:
            values = payload.as_dict()
            if any(r.username == values["username"] for r in self.rows.values()):
                raise ConflictError("Player", "username", values["username"])
            now = self._now()
            record = PlayerRecord(
                id=uuid.uuid4(),
                username=values["username"],
                total_score=values["total_score"],
                level=values["level"],
                games_played=values["games_played"],
                games_won=values["games_won"],
                status=values["status"],
                avatar_url=values.get("avatar_url"),
                country=values.get("country"),
                last_played=values.get("last_played"),
                created_at=now,
                updated_at=now,
            )
        else:
            existing = self.rows.get(player_id)
            if existing is None:
                raise NotFoundError("Player", player_id)
            record = replace(existing, updated_at=self._now(), **payload.as_dict())

        self.rows[record.id] = record
        return record

    async def delete_by_id(self, player_id: uuid.UUID) -> None:
        self._check("delete_by_id")
        if player_id not in self.rows:
            raise NotFoundError("Player", player_id)
        del self.rows[player_id]

    async def find_by_id(self, player_id: uuid.UUID) -> Optional[PlayerRecord]:
        self._check("find_by_id")
        return self.rows.get(player_id)

    async def find_by_username(self, username: str) -> Optional[PlayerRecord]:
        self._check("find_by_username")
        return next((r for r in self.rows.values() if r.username == username), None)

    async def find_by_ids(self, ids: Sequence[uuid.UUID]) -> List[PlayerRecord]:
        self._check("find_by_ids")
        # Deliberately unordered
        return [self.rows[i] for i in sorted(set(ids), key=str) if i in self.rows]

    async def list_ordered_by(self, sort: SortSpec = DEFAULT_SORT) -> List[PlayerRecord]:
        self._check("list_ordered_by")
        present = [r for r in self.rows.values() if getattr(r, sort.key) is not None]
        missing = [r for r in self.rows.values() if getattr(r, sort.key) is None]
        present.sort(key=lambda r: (getattr(r, sort.key), str(r.id)), reverse=sort.descending)
        missing.sort(key=lambda r: str(r.id), reverse=True)
        return present + missing

    async def top_by_score(self, limit: int) -> List[PlayerRecord]:
        self._check("top_by_score")
        ordered = sorted(
            self.rows.values(),
            key=lambda r: (r.total_score, str(r.id)),
            reverse=True,
        )
        return ordered[:max(limit, 0)]

    async def iter_scores(self, batch_size: int = 1000) -> AsyncIterator[Tuple[uuid.UUID, int]]:
        self._check("iter_scores")
        for record in sorted(self.rows.values(), key=lambda r: str(r.id)):
            yield record.id, record.total_score

    async def ids_updated_since(self, since: datetime) -> List[uuid.UUID]:
        self._check("ids_updated_since")
        return sorted((r.id for r in self.rows.values() if r.updated_at >= since), key=str)


class InMemoryRankIndex(RankIndex):
    """
    Sorted-set semantics: ties come back in reverse-lexicographic id order,
    the same as Redis ZREVRANGE.
    """

    def __init__(self, journal: Optional[List[str]] = None) -> None:
        self.scores: Dict[uuid.UUID, int] = {}
        self.journal = journal if journal is not None else []
        self.failing: Set[str] = set()

    def fail(self, *operations: str) -> None:
        """Make the named operations (or all, if none given) unavailable."""
        self.failing.update(operations or ("set", "remove", "top_desc", "rebuild"))

    def recover(self) -> None:
        self.failing.clear()

    def _check(self, operation: str) -> None:
        self.journal.append(f"index.{operation}")
        if operation in self.failing:
            raise RankIndexUnavailableError(operation, "ConnectionError: simulated outage")

    async def set(self, player_id: uuid.UUID, score: int) -> None:
        self._check("set")
        self.scores[player_id] = score

    async def remove(self, player_id: uuid.UUID) -> None:
        self._check("remove")
        self.scores.pop(player_id, None)

    async def top_desc(self, limit: int) -> List[RankEntry]:
        self._check("top_desc")
        ordered = sorted(
            self.scores.items(),
            key=lambda item: (item[1], str(item[0])),
            reverse=True,
        )
        return [RankEntry(pid, score) for pid, score in ordered[:limit]]

    async def rebuild(self, entries: Iterable[RankEntry]) -> int:
        self._check("rebuild")
        self.scores = {entry.player_id: entry.score for entry in entries}
        return len(self.scores)
