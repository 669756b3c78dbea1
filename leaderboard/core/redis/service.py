"""
RedisService: async Redis client with explicit lifecycle

Purpose
-------
Provide an injected, observable Redis abstraction for the ranking cache:
- One async client per service instance, created by ``connect()`` and
  released by ``close()``
- Circuit breaker and per-operation timeout wrapping all Redis I/O
- Reachability state driven by connection and health-check outcomes
- Sorted-set primitives used by the rank index

Responsibilities
----------------
- Build the client from ``REDIS_URL`` (``redis://`` or ``rediss://``)
- Verify connectivity at startup without aborting startup on failure
- Expose ZADD / ZREM / ZREVRANGE WITHSCORES and an atomic whole-set replace
- Route every operation through RedisResilience
- Report status for monitoring

Non-Responsibilities
--------------------
- Business logic of any kind
- Retries (operations are attempted exactly once)
- Deciding whether to fall back (the rank index and RankingService own that)

Configuration Keys
------------------
- REDIS_URL                   : str (unset => service is not constructed)
- REDIS_SOCKET_TIMEOUT        : int seconds (default 5)
- REDIS_MAX_CONNECTIONS       : int (default 50)
- REDIS_OPERATION_TIMEOUT_MS  : int (default 500)
- REDIS_TLS_VERIFY            : bool (default False; applies to rediss:// only)

Architecture Notes
------------------
- Uses the redis-py asyncio client with connection pooling
- ``retry_on_timeout`` is off: a timeout surfaces to the caller immediately
- A failed connect leaves the client in place and the state DISCONNECTED;
  the pool reconnects lazily and the health monitor flips the state back
- Reachability state is for status reporting only; every operation is
  independently fallible regardless of the last known state
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from leaderboard.core.config.config import Config
from leaderboard.core.logging.logger import get_logger
from leaderboard.core.redis.resilience import RedisResilience

logger = get_logger(__name__)

# Members per ZADD inside a replace pipeline
_REPLACE_CHUNK_SIZE = 1000


class ReachabilityState(Enum):
    """Last known reachability of the Redis server."""

    UNKNOWN = "UNKNOWN"  # Not yet connected
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"


class RedisNotConnectedError(RedisConnectionError):
    """Raised when an operation is attempted without a client."""


def _url_scheme(url: str) -> str:
    return url.split("://")[0] if "://" in url else "unknown"


class RedisService:
    """
    Async Redis infrastructure service for the ranking cache.

    Args:
        url: Redis URL; defaults to ``Config.REDIS_URL``
        client: Pre-built client (tests); ``connect()`` then only pings it
        resilience: Circuit breaker; a default one is built from Config
    """

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[AsyncRedis] = None,
        resilience: Optional[RedisResilience] = None,
    ) -> None:
        self._url = url if url is not None else Config.REDIS_URL
        self._client: Optional[AsyncRedis] = client
        self._resilience = resilience or RedisResilience()
        self._state = ReachabilityState.UNKNOWN
        self._last_state_change: Optional[float] = None
        self._lock = asyncio.Lock()

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE MANAGEMENT
    # ═══════════════════════════════════════════════════════════════════════

    def _build_client(self) -> AsyncRedis:
        kwargs: Dict[str, Any] = {
            "socket_timeout": Config.REDIS_SOCKET_TIMEOUT,
            "socket_connect_timeout": Config.REDIS_SOCKET_TIMEOUT,
            "encoding": "utf-8",
            "decode_responses": True,
            "max_connections": Config.REDIS_MAX_CONNECTIONS,
            "retry_on_timeout": False,
        }
        if self._url.lower().startswith("rediss://") and not Config.REDIS_TLS_VERIFY:
            # Managed providers commonly present certificates we cannot verify
            kwargs["ssl_cert_reqs"] = "none"

        return AsyncRedis.from_url(self._url, **kwargs)

    async def connect(self) -> bool:
        """
        Create the client and verify connectivity with PING.

        Never raises on an unreachable server: the service stays usable (every
        operation fails fast into the caller's fallback) and the state is
        DISCONNECTED until a health check succeeds.

        Returns
        -------
        bool
            True if the initial PING succeeded.
        """
        async with self._lock:
            if self._client is None:
                self._client = self._build_client()

            start_time = time.monotonic()
            try:
                await asyncio.wait_for(
                    self._client.ping(),  # type: ignore[misc]
                    timeout=Config.REDIS_SOCKET_TIMEOUT,
                )
            except (RedisError, OSError, asyncio.TimeoutError) as exc:
                self._set_state(ReachabilityState.DISCONNECTED)
                logger.warning(
                    "Redis unreachable at startup; ranking cache degraded",
                    extra={
                        "url_scheme": _url_scheme(self._url),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                return False

            self._set_state(ReachabilityState.CONNECTED)
            logger.info(
                "RedisService connected",
                extra={
                    "url_scheme": _url_scheme(self._url),
                    "max_connections": Config.REDIS_MAX_CONNECTIONS,
                    "connect_time_ms": round((time.monotonic() - start_time) * 1000, 2),
                },
            )
            return True

    async def close(self) -> None:
        """Close the client. Safe to call when never connected."""
        async with self._lock:
            client = self._client
            self._client = None

            if client is None:
                logger.debug("RedisService not connected, nothing to close")
                return

            try:
                await client.aclose()
                logger.info("RedisService closed")
            except (RedisError, OSError) as exc:
                logger.error(
                    "Error during RedisService shutdown",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                )
            finally:
                self._set_state(ReachabilityState.DISCONNECTED)

    # ═══════════════════════════════════════════════════════════════════════
    # HEALTH & STATUS
    # ═══════════════════════════════════════════════════════════════════════

    def _set_state(self, new_state: ReachabilityState) -> None:
        old_state = self._state
        if new_state == old_state:
            return

        self._state = new_state
        self._last_state_change = time.time()

        log = logger.info if new_state == ReachabilityState.CONNECTED else logger.warning
        log(
            "Redis reachability changed",
            extra={"old_state": old_state.value, "new_state": new_state.value},
        )

    async def health_check(self) -> bool:
        """
        PING Redis and update the reachability state. Never raises.

        Bypasses the circuit breaker so that a recovered server is noticed
        while the circuit is still OPEN.
        """
        if self._client is None:
            self._set_state(ReachabilityState.DISCONNECTED)
            return False

        try:
            start_time = time.monotonic()
            pong = await asyncio.wait_for(
                self._client.ping(),  # type: ignore[misc]
                timeout=Config.REDIS_SOCKET_TIMEOUT,
            )
            latency_ms = (time.monotonic() - start_time) * 1000

        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            self._set_state(ReachabilityState.DISCONNECTED)
            logger.warning(
                "Redis health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

        if not pong:
            self._set_state(ReachabilityState.DISCONNECTED)
            logger.warning("Redis health check failed: PING returned False")
            return False

        self._set_state(ReachabilityState.CONNECTED)
        logger.debug(
            "Redis health check passed",
            extra={"latency_ms": round(latency_ms, 2)},
        )
        return True

    @property
    def state(self) -> ReachabilityState:
        return self._state

    @property
    def resilience(self) -> RedisResilience:
        return self._resilience

    def get_status(self) -> Dict[str, Any]:
        return {
            "configured": bool(self._url),
            "url_scheme": _url_scheme(self._url),
            "client_open": self._client is not None,
            "reachability": self._state.value,
            "last_state_change": self._last_state_change,
            "resilience": self._resilience.get_status(),
        }

    # ═══════════════════════════════════════════════════════════════════════
    # CLIENT ACCESS
    # ═══════════════════════════════════════════════════════════════════════

    def client(self) -> AsyncRedis:
        """
        Return the active client.

        Raises
        ------
        RedisNotConnectedError
            If ``connect()`` has not been called or the service was closed.
        """
        if self._client is None:
            raise RedisNotConnectedError(
                "RedisService not connected. Call `await redis.connect()` first."
            )
        return self._client

    # ═══════════════════════════════════════════════════════════════════════
    # SORTED-SET OPERATIONS (RESILIENCE)
    # ═══════════════════════════════════════════════════════════════════════

    async def zadd(self, key: str, member: str, score: float) -> int:
        """Insert or overwrite ``member`` with ``score``."""
        client = self.client()
        result = await self._resilience.execute(
            operation=lambda: client.zadd(key, {member: score}),
            operation_name="zadd",
        )
        logger.debug(
            "Redis ZADD completed",
            extra={"key": key, "member": member, "score": score},
        )
        return int(result)

    async def zrem(self, key: str, member: str) -> int:
        """Remove ``member``; returns 0 if it was absent."""
        client = self.client()
        result = await self._resilience.execute(
            operation=lambda: client.zrem(key, member),
            operation_name="zrem",
        )
        logger.debug(
            "Redis ZREM completed",
            extra={"key": key, "member": member, "removed": result},
        )
        return int(result)

    async def zrevrange_with_scores(self, key: str, limit: int) -> List[Tuple[str, float]]:
        """Top ``limit`` members by descending score, with scores."""
        if limit <= 0:
            return []

        client = self.client()
        rows = await self._resilience.execute(
            operation=lambda: client.zrevrange(key, 0, limit - 1, withscores=True),
            operation_name="zrevrange",
        )
        logger.debug(
            "Redis ZREVRANGE completed",
            extra={"key": key, "limit": limit, "returned": len(rows)},
        )
        return [(str(member), float(score)) for member, score in rows]

    async def zcard(self, key: str) -> int:
        client = self.client()
        result = await self._resilience.execute(
            operation=lambda: client.zcard(key),
            operation_name="zcard",
        )
        return int(result)

    async def replace_sorted_set(
        self,
        key: str,
        members: Mapping[str, float],
        timeout: Optional[float] = None,
    ) -> int:
        """
        Atomically replace the whole sorted set at ``key`` (MULTI/EXEC).

        Readers see either the old set or the new one, never a partial set.

        Returns
        -------
        int
            Number of members written.
        """
        client = self.client()
        items = list(members.items())

        async def _replace() -> Any:
            async with client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                for start in range(0, len(items), _REPLACE_CHUNK_SIZE):
                    pipe.zadd(key, dict(items[start:start + _REPLACE_CHUNK_SIZE]))
                return await pipe.execute()

        await self._resilience.execute(
            operation=_replace,
            operation_name="replace_sorted_set",
            timeout=timeout,
        )
        logger.info(
            "Redis sorted set replaced",
            extra={"key": key, "members": len(items)},
        )
        return len(items)
