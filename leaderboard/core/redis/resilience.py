"""
Circuit breaker for rank-index traffic.

Every Redis call made by ``RedisService`` goes through
``RedisResilience.execute``. It is attempted once, bounded by a timeout, and
its outcome feeds the breaker:

    CLOSED --(failure_threshold consecutive failures)--> OPEN
    OPEN   --(recovery_timeout elapsed, next call)-----> HALF_OPEN
    HALF_OPEN admits one trial call at a time; other calls are refused
    HALF_OPEN --(success_threshold successes)----------> CLOSED
    HALF_OPEN --(any failure)--------------------------> OPEN

While OPEN, calls are refused with ``CircuitBreakerOpenError`` without
touching the socket, so ranking reads fall back to the player store at once.
There are no retries here.

Defaults come from ``CIRCUIT_BREAKER_FAILURE_THRESHOLD``,
``CIRCUIT_BREAKER_RECOVERY_TIMEOUT`` and ``REDIS_OPERATION_TIMEOUT_MS``.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from leaderboard.core.config.config import Config
from leaderboard.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreakerOpenError(Exception):
    """The breaker refused the call; the operation was not attempted."""


def _pick(value: Any, fallback: Any) -> Any:
    return fallback if value is None else value


class RedisResilience:
    """
    Args:
        failure_threshold: Consecutive failures that open the circuit
        recovery_timeout: Seconds to stay OPEN before allowing a trial call
        success_threshold: Trial successes needed to close again
        operation_timeout: Seconds allowed per call
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        failure_threshold: Optional[int] = None,
        recovery_timeout: Optional[float] = None,
        success_threshold: int = 1,
        operation_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = int(_pick(failure_threshold, Config.CIRCUIT_BREAKER_FAILURE_THRESHOLD))
        self._recovery_timeout = float(_pick(recovery_timeout, Config.CIRCUIT_BREAKER_RECOVERY_TIMEOUT))
        self._success_threshold = max(1, success_threshold)
        self._operation_timeout = float(
            _pick(operation_timeout, Config.REDIS_OPERATION_TIMEOUT_MS / 1000.0)
        )
        self._clock = clock
        self._lock = asyncio.Lock()

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
        timeout: Optional[float] = None,
    ) -> T:
        """
        Run ``operation()`` once under the breaker.

        ``timeout`` replaces the per-call limit (used by bulk rebuilds).

        Raises:
            CircuitBreakerOpenError: Circuit is OPEN, or HALF_OPEN with its
                trial call still running
            asyncio.TimeoutError: The call ran past its limit
            Exception: Anything the operation itself raised
        """
        admitted, trial = await self._admit()
        if not admitted:
            raise CircuitBreakerOpenError(
                f"Redis circuit breaker is {self._state.value}, operation '{operation_name}' rejected"
            )

        limit = self._operation_timeout if timeout is None else timeout
        try:
            result = await asyncio.wait_for(operation(), timeout=limit)
        except asyncio.CancelledError:
            if trial:
                self._trial_in_flight = False
            raise
        except Exception as exc:
            await self._on_failure(trial)
            logger.debug(
                "Redis operation failed",
                extra={
                    "operation_name": operation_name,
                    "circuit_state": self._state.value,
                    "failure_count": self._failures,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            raise

        await self._on_success(trial)
        return result

    async def reset(self) -> None:
        """Force the breaker CLOSED (operator action)."""
        async with self._lock:
            self._move_to(CircuitState.CLOSED, "manual reset")

    # ========================================================================
    # State machine
    # ========================================================================

    async def _admit(self) -> Tuple[bool, bool]:
        """Returns ``(admitted, is_trial)``."""
        async with self._lock:
            if self._state is CircuitState.CLOSED:
                return True, False
            if self._state is CircuitState.OPEN:
                if self._seconds_until_trial() > 0:
                    return False, False
                self._move_to(CircuitState.HALF_OPEN, "recovery timeout elapsed")
            if self._trial_in_flight:
                return False, False
            self._trial_in_flight = True
            return True, True

    async def _on_success(self, trial: bool) -> None:
        async with self._lock:
            if trial:
                self._trial_in_flight = False
            self._failures = 0
            self._successes += 1
            if self._state is CircuitState.HALF_OPEN and self._successes >= self._success_threshold:
                self._move_to(CircuitState.CLOSED, "trial call succeeded")

    async def _on_failure(self, trial: bool) -> None:
        async with self._lock:
            if trial:
                self._trial_in_flight = False
            self._successes = 0
            self._failures += 1
            if self._state is CircuitState.HALF_OPEN:
                self._move_to(CircuitState.OPEN, "trial call failed")
            elif self._state is CircuitState.CLOSED and self._failures >= self._failure_threshold:
                self._move_to(CircuitState.OPEN, "failure threshold reached")

    def _move_to(self, new_state: CircuitState, reason: str) -> None:
        previous = self._state
        failures = self._failures

        self._state = new_state
        self._successes = 0
        self._trial_in_flight = False
        if new_state is CircuitState.OPEN:
            self._opened_at = self._clock()
        else:
            self._failures = 0
            if new_state is CircuitState.CLOSED:
                self._opened_at = None

        log = logger.warning if new_state is CircuitState.OPEN else logger.info
        log(
            f"Redis circuit {previous.value} -> {new_state.value}",
            extra={
                "previous_state": previous.value,
                "circuit_state": new_state.value,
                "reason": reason,
                "failure_count": failures,
            },
        )

    def _seconds_until_trial(self) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self._recovery_timeout - (self._clock() - self._opened_at))

    # ========================================================================
    # Status
    # ========================================================================

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is CircuitState.OPEN

    def get_status(self) -> Dict[str, Any]:
        return {
            "circuit_state": self._state.value,
            "trial_in_flight": self._trial_in_flight,
            "failure_count": self._failures,
            "success_count": self._successes,
            "failure_threshold": self._failure_threshold,
            "success_threshold": self._success_threshold,
            "recovery_timeout_seconds": self._recovery_timeout,
            "operation_timeout_seconds": self._operation_timeout,
            "time_until_half_open": (
                round(self._seconds_until_trial(), 3) if self._state is CircuitState.OPEN else None
            ),
        }
