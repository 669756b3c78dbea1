"""
RankingService - keeps the rank index in step with the player store.

Purpose
-------
The single choke point for every score-affecting mutation and every ranked
read. The durable PlayerStore is the source of truth; the RankIndex is a
derived cache that may be stale, empty or absent.

Write-through Protocol
----------------------
1. Mutate PlayerStore. Any failure here aborts the request and the index is
   not touched.
2. Mirror the result into the RankIndex (``set`` on create/update, ``remove``
   on delete).
3. A failing mirror step is logged as cache degradation and absorbed. The
   mutation has succeeded; the index stays stale for that id until the next
   successful write-through or a rebuild.

Ranked-read Protocol
--------------------
1. Clamp ``limit`` to ``[1, RANKING_MAX_LIMIT]``.
2. Ask the RankIndex for the top ``limit`` ids.
3. Non-empty: hydrate by id-set from PlayerStore, re-project into index
   order, and drop ids with no record (deleted but not yet evicted). The
   result may be shorter than ``limit``.
4. Index unavailable, absent or empty: ``PlayerStore.top_by_score(limit)``.

No operation is retried here. No lock serializes requests; each one awaits
its store call and then its index call, never overlapping them. Only
rebuilds are serialized, and writes landing during one are replayed once
the bulk replace is done.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from leaderboard.core.config.config import Config
from leaderboard.core.database.base import utcnow
from leaderboard.core.logging.logger import get_logger
from leaderboard.core.validation.input_validator import InputValidator
from leaderboard.modules.players.record import PlayerRecord
from leaderboard.modules.players.sorting import resolve_sort
from leaderboard.modules.players.validation import PlayerPayload
from leaderboard.modules.ranking.index import RankEntry
from leaderboard.modules.ranking.metrics import RankingMetrics
from leaderboard.modules.shared.base_service import BaseService
from leaderboard.modules.shared.exceptions import (
    NotFoundError,
    RankIndexUnavailableError,
)

if TYPE_CHECKING:
    from leaderboard.modules.players.store import PlayerStore
    from leaderboard.modules.ranking.index import RankIndex

logger = get_logger(__name__)

PlayerId = Union[uuid.UUID, str]

# Writers in other processes stamp updated_at with their own clocks
REBUILD_CLOCK_SLACK = timedelta(seconds=5)
REBUILD_MAX_REPLAY_PASSES = 5


class RankingService(BaseService):
    """
    Orchestrates PlayerStore writes, RankIndex mirroring and ranked reads.

    Args:
        store: Durable player store
        rank_index: Rank index, or None to run without one
        config: Configuration source (``Config`` by default)
        metrics: Counters; a fresh RankingMetrics by default
    """

    def __init__(
        self,
        store: PlayerStore,
        rank_index: Optional[RankIndex] = None,
        config: Any = Config,
        metrics: Optional[RankingMetrics] = None,
    ) -> None:
        super().__init__(config, logger)
        self._store = store
        self._index = rank_index
        self.metrics = metrics or RankingMetrics()

        self._rebuild_lock = asyncio.Lock()
        # Ids written through while a rebuild is running; None otherwise
        self._written_during_rebuild: Optional[Set[uuid.UUID]] = None

    # =========================================================================
    # Helpers
    # =========================================================================

    def clamp_limit(self, limit: Optional[int]) -> int:
        """
        Bound a requested ranked-read size.

        ``None`` or non-positive gives ``RANKING_DEFAULT_LIMIT``; anything
        above ``RANKING_MAX_LIMIT`` is cut down to it.
        """
        max_limit = int(self.get_config("RANKING_MAX_LIMIT", 500))
        default_limit = min(int(self.get_config("RANKING_DEFAULT_LIMIT", 100)), max_limit)

        if limit is None or limit <= 0:
            return default_limit
        return min(limit, max_limit)

    @staticmethod
    def _parse_id(player_id: PlayerId) -> uuid.UUID:
        return InputValidator.validate_uuid(player_id, "id")

    def _log_degraded(
        self, operation: str, exc: RankIndexUnavailableError, **context: Any
    ) -> None:
        self.log.warning(
            "Rank index degraded; continuing without it",
            extra={
                "operation_name": operation,
                "error_type": type(exc).__name__,
                "reason": exc.reason,
                **context,
            },
        )

    def _note_write(self, player_id: uuid.UUID) -> None:
        if self._written_during_rebuild is not None:
            self._written_during_rebuild.add(player_id)

    async def _mirror_set(self, record: PlayerRecord) -> None:
        if self._index is None:
            return
        self._note_write(record.id)
        try:
            await self._index.set(record.id, record.total_score)
        except RankIndexUnavailableError as exc:
            await self.metrics.record_index_write_failure()
            self._log_degraded("set", exc, player_id=str(record.id))
            return
        await self.metrics.record_index_write()

    async def _mirror_remove(self, player_id: uuid.UUID) -> None:
        if self._index is None:
            return
        self._note_write(player_id)
        try:
            await self._index.remove(player_id)
        except RankIndexUnavailableError as exc:
            await self.metrics.record_index_write_failure()
            self._log_degraded("remove", exc, player_id=str(player_id))
            return
        await self.metrics.record_index_write()

    # =========================================================================
    # Mutations (write-through)
    # =========================================================================

    async def create_player(self, fields: Mapping[str, Any]) -> PlayerRecord:
        """
        Create a player and mirror its score.

        Raises:
            ValidationError: Malformed fields
            ConflictError: Username already taken
            StoreUnavailableError: Durable store failure
        """
        payload = PlayerPayload.for_create(fields)
        record = await self._store.upsert(None, payload)
        await self._mirror_set(record)

        self.log_operation(
            "create_player",
            player_id=str(record.id),
            total_score=record.total_score,
        )
        return record

    async def update_player(
        self, player_id: PlayerId, fields: Mapping[str, Any]
    ) -> PlayerRecord:
        """
        Apply a partial update and mirror the resulting score.

        Raises:
            ValidationError: Malformed id or fields, or a username change
            NotFoundError: No such player
            StoreUnavailableError: Durable store failure
        """
        pid = self._parse_id(player_id)
        payload = PlayerPayload.for_update(fields)
        record = await self._store.upsert(pid, payload)
        await self._mirror_set(record)

        self.log_operation(
            "update_player",
            player_id=str(pid),
            fields=sorted(payload.values.keys()),
            total_score=record.total_score,
        )
        return record

    async def delete_player(self, player_id: PlayerId) -> None:
        """
        Delete a player from the store, then from the index.

        Raises:
            ValidationError: Malformed id
            NotFoundError: No such player (the index is not touched)
            StoreUnavailableError: Durable store failure
        """
        pid = self._parse_id(player_id)
        await self._store.delete_by_id(pid)
        await self._mirror_remove(pid)

        self.log_operation("delete_player", player_id=str(pid))

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_player(self, player_id: PlayerId) -> PlayerRecord:
        """
        Raises:
            ValidationError: Malformed id
            NotFoundError: No such player
        """
        pid = self._parse_id(player_id)
        record = await self._store.find_by_id(pid)
        if record is None:
            raise NotFoundError("Player", pid)
        return record

    async def list_players(
        self,
        sort_key: Optional[str] = None,
        descending: bool = True,
    ) -> List[PlayerRecord]:
        """Full snapshot for admin browsing; unknown sort keys use the default."""
        return await self._store.list_ordered_by(resolve_sort(sort_key, descending))

    async def top_ranked(self, limit: Optional[int] = None) -> List[PlayerRecord]:
        """
        Top players by score, served from the index when it can.

        Never fails because of the index; durable-store errors propagate.
        """
        clamped = self.clamp_limit(limit)

        entries = await self._read_index(clamped)
        if not entries:
            await self.metrics.record_fallback()
            return await self._store.top_by_score(clamped)

        records = await self._hydrate(entries)
        await self.metrics.record_index_read()
        return records

    async def _read_index(self, limit: int) -> List[RankEntry]:
        if self._index is None:
            return []

        try:
            entries = await self._index.top_desc(limit)
        except RankIndexUnavailableError as exc:
            await self.metrics.record_index_read_failure()
            self._log_degraded("top_desc", exc, limit=limit)
            return []

        if not entries:
            await self.metrics.record_index_empty()
            self.log.debug("Rank index empty; using store ordering", extra={"limit": limit})

        return entries[:limit]

    async def _hydrate(self, entries: List[RankEntry]) -> List[PlayerRecord]:
        ordered_ids = [entry.player_id for entry in entries]
        found = {record.id: record for record in await self._store.find_by_ids(ordered_ids)}

        results: List[PlayerRecord] = []
        dangling = 0
        for player_id in ordered_ids:
            record = found.get(player_id)
            if record is None:
                dangling += 1
                self.log.warning(
                    "Dropping ranked id with no player record",
                    extra={"player_id": str(player_id)},
                )
                continue
            results.append(record)

        await self.metrics.record_dangling(dangling)
        return results

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def rebuild_index(self) -> int:
        """
        Reload the rank index from the player store.

        The replace is built from a snapshot, so any player written while
        the snapshot was in flight is re-read and mirrored again afterwards:
        ids written through by this service, plus any row whose
        ``updated_at`` falls inside the rebuild window (other writers).
        Players deleted elsewhere during the window are left for the next
        rebuild.

        Returns:
            Number of entries written by the bulk replace

        Raises:
            RankIndexUnavailableError: No index configured, or it failed
            StoreUnavailableError: Durable store failure
        """
        if self._index is None:
            raise RankIndexUnavailableError("rebuild", "no rank index configured")

        async with self._rebuild_lock:
            window_start = utcnow() - REBUILD_CLOCK_SLACK
            self._written_during_rebuild = set()
            try:
                entries = [
                    RankEntry(player_id, score)
                    async for player_id, score in self._store.iter_scores()
                ]
                try:
                    count = await self._index.rebuild(entries)
                    pending = self._drain_written()
                    pending.update(await self._store.ids_updated_since(window_start))
                    replayed = await self._replay_until_quiet(pending)
                except RankIndexUnavailableError as exc:
                    self.log_error("rebuild_index", exc, entries=len(entries))
                    raise
            finally:
                self._written_during_rebuild = None

        await self.metrics.record_rebuild()
        self.log_operation("rebuild_index", entries=count, replayed=replayed)
        return count

    def _drain_written(self) -> Set[uuid.UUID]:
        written = self._written_during_rebuild or set()
        self._written_during_rebuild = set()
        return written

    async def _replay_until_quiet(self, pending: Set[uuid.UUID]) -> int:
        """Re-mirror ``pending`` from the store until no new write-through lands."""
        replayed = 0
        for _ in range(REBUILD_MAX_REPLAY_PASSES):
            if not pending:
                return replayed
            await self._replay(pending)
            replayed += len(pending)
            pending = self._drain_written()

        if pending:
            self.log.warning(
                "Rank index still receiving writes after rebuild replay",
                extra={"operation_name": "rebuild_index", "unreplayed": len(pending)},
            )
        return replayed

    async def _replay(self, player_ids: Iterable[uuid.UUID]) -> None:
        ids = list(player_ids)
        scores = {record.id: record.total_score for record in await self._store.find_by_ids(ids)}
        for player_id in ids:
            if player_id in scores:
                await self._index.set(player_id, scores[player_id])
            else:
                await self._index.remove(player_id)

    async def get_status(self) -> Dict[str, Any]:
        return {
            "rank_index_configured": self._index is not None,
            "max_limit": self.clamp_limit(10**9),
            "default_limit": self.clamp_limit(None),
            "metrics": await self.metrics.get_metrics(),
        }
