"""
AdminGateway - authorization and raw-input parsing in front of RankingService.

Purpose
-------
The boundary an HTTP (or any other) front end calls. It receives an already
authenticated ``Actor`` (token issuance and verification happen upstream)
plus raw request values, and forwards typed arguments to RankingService.

Responsibilities
----------------
- Reject requests without an actor (UnauthorizedError)
- Reject mutations from non-admin actors (ForbiddenError)
- Parse raw ids, ``sort`` parameters (``-total_score``) and ``limit`` strings
- Scope every call in a LogContext carrying the actor and operation

Non-Responsibilities
--------------------
- Field validation (PlayerPayload owns that)
- Cache protocol (RankingService owns that)
- Rendering responses
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from leaderboard.core.logging.logger import LogContext, get_logger
from leaderboard.core.validation.input_validator import InputValidator
from leaderboard.modules.players.record import PlayerRecord
from leaderboard.modules.players.sorting import parse_sort_param
from leaderboard.modules.ranking.service import RankingService
from leaderboard.modules.shared.exceptions import ForbiddenError, UnauthorizedError

logger = get_logger(__name__)

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as asserted by the upstream token check."""

    actor_id: str
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


class AdminGateway:
    """
    Guarded entrypoints for player administration and leaderboard reads.

    Args:
        ranking_service: The service every call is forwarded to
    """

    def __init__(self, ranking_service: RankingService) -> None:
        self._ranking = ranking_service

    # ========================================================================
    # GUARDS & PARSING
    # ========================================================================

    @staticmethod
    def _require_actor(actor: Optional[Actor]) -> Actor:
        if actor is None or not actor.actor_id:
            raise UnauthorizedError()
        return actor

    def _require_admin(self, actor: Optional[Actor], action: str) -> Actor:
        actor = self._require_actor(actor)
        if not actor.is_admin:
            logger.warning(
                "Admin action denied",
                extra={"actor_id": actor.actor_id, "role": actor.role, "action": action},
            )
            raise ForbiddenError(action, ADMIN_ROLE)
        return actor

    @staticmethod
    def parse_limit(raw: Union[str, int, None]) -> Optional[int]:
        """
        Parse a ``limit`` query value.

        Missing or blank gives None (the service default applies). Anything
        non-integer is a ValidationError; range clamping is the service's job.
        """
        if raw is None:
            return None
        if isinstance(raw, str) and not raw.strip():
            return None
        return InputValidator.validate_integer(raw, "limit")

    # ========================================================================
    # READS
    # ========================================================================

    async def leaderboard(
        self,
        actor: Optional[Actor],
        limit: Union[str, int, None] = None,
    ) -> List[Dict[str, Any]]:
        actor = self._require_actor(actor)
        parsed = self.parse_limit(limit)

        async with LogContext(actor_id=actor.actor_id, role=actor.role, operation="leaderboard"):
            records = await self._ranking.top_ranked(parsed)
            logger.debug("Leaderboard served", extra={"returned": len(records)})
            return [record.to_dict() for record in records]

    async def list_players(
        self,
        actor: Optional[Actor],
        sort: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        actor = self._require_actor(actor)
        spec = parse_sort_param(sort)

        async with LogContext(actor_id=actor.actor_id, role=actor.role, operation="list_players"):
            records = await self._ranking.list_players(spec.key, spec.descending)
            return [record.to_dict() for record in records]

    async def get_player(self, actor: Optional[Actor], player_id: str) -> Dict[str, Any]:
        actor = self._require_actor(actor)

        async with LogContext(actor_id=actor.actor_id, role=actor.role, operation="get_player"):
            record = await self._ranking.get_player(player_id)
            return record.to_dict()

    # ========================================================================
    # MUTATIONS (ADMIN ONLY)
    # ========================================================================

    async def create_player(
        self,
        actor: Optional[Actor],
        fields: Mapping[str, Any],
    ) -> Dict[str, Any]:
        actor = self._require_admin(actor, "create_player")

        async with LogContext(actor_id=actor.actor_id, role=actor.role, operation="create_player"):
            record: PlayerRecord = await self._ranking.create_player(fields)
            logger.info("Player created", extra={"player_id": str(record.id)})
            return record.to_dict()

    async def update_player(
        self,
        actor: Optional[Actor],
        player_id: str,
        fields: Mapping[str, Any],
    ) -> Dict[str, Any]:
        actor = self._require_admin(actor, "update_player")

        async with LogContext(actor_id=actor.actor_id, role=actor.role, operation="update_player"):
            record = await self._ranking.update_player(player_id, fields)
            logger.info("Player updated", extra={"player_id": str(record.id)})
            return record.to_dict()

    async def delete_player(self, actor: Optional[Actor], player_id: str) -> Dict[str, Any]:
        actor = self._require_admin(actor, "delete_player")

        async with LogContext(actor_id=actor.actor_id, role=actor.role, operation="delete_player"):
            await self._ranking.delete_player(player_id)
            logger.info("Player deleted", extra={"player_id": player_id})
            return {"ok": True}

    async def rebuild_index(self, actor: Optional[Actor]) -> Dict[str, Any]:
        actor = self._require_admin(actor, "rebuild_index")

        async with LogContext(actor_id=actor.actor_id, role=actor.role, operation="rebuild_index"):
            count = await self._ranking.rebuild_index()
            return {"ok": True, "entries": count}
