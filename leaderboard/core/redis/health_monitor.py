"""
Background PING loop for the rank index connection.

``RedisService.health_check()`` is what flips reachability between CONNECTED
and DISCONNECTED; this monitor just calls it on a timer
(``REDIS_HEALTH_CHECK_INTERVAL`` seconds) so recovery after an outage is
noticed without waiting for a request. It never touches leaderboard data.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Deque, Dict, Optional

from leaderboard.core.config.config import Config
from leaderboard.core.logging.logger import get_logger

if TYPE_CHECKING:
    from leaderboard.core.redis.service import RedisService

logger = get_logger(__name__)

SLOW_PING_MS = 50.0
HISTORY_SIZE = 100
STATUS_WINDOW = 20


@dataclass(frozen=True)
class HealthCheckResult:
    passed: bool
    latency_ms: float
    timestamp: float
    state: str


class RedisHealthMonitor:
    def __init__(self, redis_service: RedisService, check_interval: Optional[float] = None) -> None:
        self._redis = redis_service
        self._interval = float(
            Config.REDIS_HEALTH_CHECK_INTERVAL if check_interval is None else check_interval
        )
        self._task: Optional[asyncio.Task] = None
        self._history: Deque[HealthCheckResult] = deque(maxlen=HISTORY_SIZE)
        self._failure_streak = 0
        self._success_streak = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if self._task is not None:
            logger.warning("RedisHealthMonitor already running")
            return
        self._task = asyncio.create_task(self._run(), name="redis-health-monitor")
        logger.info("RedisHealthMonitor started", extra={"check_interval_seconds": self._interval})

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("RedisHealthMonitor stopped", extra={"total_checks": len(self._history)})

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.check_now()
            except Exception as exc:
                # The loop outlives any single bad check
                logger.error(
                    "Redis health check raised",
                    extra={"error_type": type(exc).__name__, "error": str(exc)},
                    exc_info=True,
                )

    async def check_now(self) -> Dict[str, Any]:
        """PING once, record the outcome and return it as a dict."""
        started = time.monotonic()
        passed = await self._redis.health_check()
        latency_ms = round((time.monotonic() - started) * 1000.0, 2)

        if passed:
            self._success_streak += 1
            self._failure_streak = 0
            if latency_ms >= SLOW_PING_MS:
                logger.warning("Redis health check slow", extra={"latency_ms": latency_ms})
        else:
            self._failure_streak += 1
            self._success_streak = 0

        result = HealthCheckResult(
            passed=passed,
            latency_ms=latency_ms,
            timestamp=time.time(),
            state=self._redis.state.value,
        )
        self._history.append(result)
        return asdict(result)

    def get_status(self) -> Dict[str, Any]:
        window = list(self._history)[-STATUS_WINDOW:]
        failed = sum(1 for check in window if not check.passed)
        latency = sum(check.latency_ms for check in window)

        return {
            "state": self._redis.state.value,
            "is_running": self.is_running,
            "check_interval_seconds": self._interval,
            "consecutive_failures": self._failure_streak,
            "consecutive_successes": self._success_streak,
            "last_check_time": self._history[-1].timestamp if self._history else None,
            "total_checks": len(self._history),
            "error_rate": round(failed / len(window), 3) if window else 0.0,
            "avg_latency_ms": round(latency / len(window), 2) if window else 0.0,
        }
