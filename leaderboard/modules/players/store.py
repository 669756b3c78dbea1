"""
PlayerStore - durable source of truth for player records.

Purpose
-------
Data access for the ``players`` table on top of DatabaseService. Every
method opens its own session or transaction, so each call is one atomic
unit of work, and returns immutable ``PlayerRecord`` snapshots rather than
live ORM objects.

Responsibilities
----------------
- Create / partial-update players (``upsert``), with username uniqueness
- Lookup by id and by id-set (unordered)
- Delete by id
- Ordered listing for the admin view (allow-listed SortSpec)
- Authoritative top-N by score, ties broken by ``id DESC``
- Stream ``(id, total_score)`` pairs for rebuilding the rank index
- List ids modified since a point in time (rebuild reconciliation)

Error Mapping
-------------
- Duplicate username                 -> ConflictError
- Missing row on update/delete       -> NotFoundError
- Any other database failure/timeout -> StoreUnavailableError

Domain exceptions raised inside a transaction propagate unchanged (the
transaction is rolled back by DatabaseService).

Tie-break Note
--------------
Equal scores are ordered by ``id DESC``. UUIDs compare the same way as their
lowercase hex strings, so this matches the reverse-lexicographic member order
of a Redis ``ZREVRANGE`` over the same scores.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from contextlib import asynccontextmanager
from typing import (
    TYPE_CHECKING,
    AsyncGenerator,
    AsyncIterator,
    List,
    Optional,
    Sequence,
    Tuple,
)

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from leaderboard.core.logging.logger import get_logger
from leaderboard.database.models.player import Player
from leaderboard.modules.players.record import PlayerRecord
from leaderboard.modules.players.sorting import DEFAULT_SORT, SortSpec
from leaderboard.modules.players.validation import PlayerPayload
from leaderboard.modules.shared.base_repository import BaseRepository
from leaderboard.modules.shared.exceptions import (
    ConflictError,
    LeaderboardDomainException,
    NotFoundError,
    StoreUnavailableError,
)

if TYPE_CHECKING:
    from leaderboard.core.database.service import DatabaseService

logger = get_logger(__name__)

_SORT_COLUMNS = {
    "created_at": Player.created_at,
    "total_score": Player.total_score,
    "last_played": Player.last_played,
    "level": Player.level,
    "username": Player.username,
}


class PlayerStore(BaseRepository[Player]):
    """
    Durable player repository.

    Args:
        db: Initialized DatabaseService
    """

    def __init__(self, db: DatabaseService) -> None:
        super().__init__(Player, logger)
        self._db = db

    # =========================================================================
    # Error translation
    # =========================================================================

    @asynccontextmanager
    async def _translate_errors(self, operation: str) -> AsyncGenerator[None, None]:
        try:
            yield
        except LeaderboardDomainException:
            raise
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            self.log.error(
                "Player store operation failed",
                extra={
                    "operation_name": operation,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            raise StoreUnavailableError(operation, type(exc).__name__) from exc

    # =========================================================================
    # Mutations
    # =========================================================================

    async def upsert(
        self,
        player_id: Optional[uuid.UUID],
        payload: PlayerPayload,
    ) -> PlayerRecord:
        """
        Create a player (``player_id is None``) or partially update one.

        Raises:
            ConflictError: Username already taken (create)
            NotFoundError: No player with ``player_id`` (update)
            StoreUnavailableError: Database failure
        """
        if player_id is None:
            return await self._create(payload)
        return await self._update(player_id, payload)

    async def _create(self, payload: PlayerPayload) -> PlayerRecord:
        username = payload.username
        if not username:
            raise ValueError("create payload must carry a username")

        async with self._translate_errors("create"):
            async with self._db.get_transaction() as session:
                if await self.exists(session, Player.username == username):
                    raise ConflictError("Player", "username", username)

                player = self.add(session, Player(**payload.as_dict()))
                try:
                    await self.flush(session)
                except IntegrityError as exc:
                    # Concurrent create won the race for this username
                    raise ConflictError("Player", "username", username) from exc

                await self.refresh(session, player)
                record = PlayerRecord.from_model(player)

        self.log.info(
            "Player created",
            extra={
                "player_id": str(record.id),
                "username": record.username,
                "total_score": record.total_score,
            },
        )
        return record

    async def _update(self, player_id: uuid.UUID, payload: PlayerPayload) -> PlayerRecord:
        async with self._translate_errors("update"):
            async with self._db.get_transaction() as session:
                player = await self.find_one_where(
                    session, Player.id == player_id, for_update=True
                )
                if player is None:
                    raise NotFoundError("Player", player_id)

                for name, value in payload.as_dict().items():
                    setattr(player, name, value)

                await self.flush(session)
                await self.refresh(session, player)
                record = PlayerRecord.from_model(player)

        self.log.info(
            "Player updated",
            extra={
                "player_id": str(player_id),
                "fields": sorted(payload.values.keys()),
                "total_score": record.total_score,
            },
        )
        return record

    async def delete_by_id(self, player_id: uuid.UUID) -> None:
        """
        Raises:
            NotFoundError: No player with ``player_id``
        """
        async with self._translate_errors("delete"):
            async with self._db.get_transaction() as session:
                if not await self.delete_by_pk(session, player_id):
                    raise NotFoundError("Player", player_id)

        self.log.info("Player deleted", extra={"player_id": str(player_id)})

    # =========================================================================
    # Reads
    # =========================================================================

    async def find_by_id(self, player_id: uuid.UUID) -> Optional[PlayerRecord]:
        async with self._translate_errors("find_by_id"):
            async with self._db.get_session() as session:
                player = await self.get(session, player_id)
                return PlayerRecord.from_model(player) if player else None

    async def find_by_username(self, username: str) -> Optional[PlayerRecord]:
        async with self._translate_errors("find_by_username"):
            async with self._db.get_session() as session:
                player = await self.find_one_where(session, Player.username == username)
                return PlayerRecord.from_model(player) if player else None

    async def find_by_ids(self, ids: Sequence[uuid.UUID]) -> List[PlayerRecord]:
        """Unordered fetch; ids with no row are simply absent from the result."""
        if not ids:
            return []

        async with self._translate_errors("find_by_ids"):
            async with self._db.get_session() as session:
                players = await self.get_many(session, list(dict.fromkeys(ids)))
                return [PlayerRecord.from_model(p) for p in players]

    async def list_ordered_by(self, sort: SortSpec = DEFAULT_SORT) -> List[PlayerRecord]:
        """Full-table snapshot in the requested order. NULL last_played sorts last."""
        column = _SORT_COLUMNS.get(sort.key, _SORT_COLUMNS[DEFAULT_SORT.key])
        ordering = column.desc() if sort.descending else column.asc()
        if sort.key == "last_played":
            ordering = ordering.nulls_last()

        stmt = select(Player).order_by(ordering, Player.id.desc())

        async with self._translate_errors("list_ordered_by"):
            async with self._db.get_session() as session:
                result = await session.execute(stmt)
                players = result.scalars().all()

        self.log.debug(
            "Players listed",
            extra={"sort": sort.to_param(), "count": len(players)},
        )
        return [PlayerRecord.from_model(p) for p in players]

    async def top_by_score(self, limit: int) -> List[PlayerRecord]:
        """Authoritative ranking: ``total_score DESC, id DESC``, at most ``limit`` rows."""
        if limit <= 0:
            return []

        stmt = (
            select(Player)
            .order_by(Player.total_score.desc(), Player.id.desc())
            .limit(limit)
        )

        async with self._translate_errors("top_by_score"):
            async with self._db.get_session() as session:
                result = await session.execute(stmt)
                return [PlayerRecord.from_model(p) for p in result.scalars().all()]

    async def count_players(self) -> int:
        async with self._translate_errors("count"):
            async with self._db.get_session() as session:
                return await self.count(session)

    async def iter_scores(
        self, batch_size: int = 1000
    ) -> AsyncIterator[Tuple[uuid.UUID, int]]:
        """Yield every ``(id, total_score)`` pair, paged by id."""
        last_id: Optional[uuid.UUID] = None

        while True:
            stmt = (
                select(Player.id, Player.total_score)
                .order_by(Player.id)
                .limit(batch_size)
            )
            if last_id is not None:
                stmt = stmt.where(Player.id > last_id)

            async with self._translate_errors("iter_scores"):
                async with self._db.get_session() as session:
                    rows = (await session.execute(stmt)).all()

            for row in rows:
                yield row.id, row.total_score

            if len(rows) < batch_size:
                return
            last_id = rows[-1].id

    async def ids_updated_since(self, since: datetime) -> List[uuid.UUID]:
        """Ids of players created or modified at or after ``since``."""
        stmt = select(Player.id).where(Player.updated_at >= since).order_by(Player.id)

        async with self._translate_errors("ids_updated_since"):
            async with self._db.get_session() as session:
                return list((await session.scalars(stmt)).all())
