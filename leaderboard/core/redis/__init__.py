"""
Redis infrastructure for the ranking cache: client lifecycle, circuit
breaker and background health monitoring.
"""

from leaderboard.core.redis.health_monitor import RedisHealthMonitor
from leaderboard.core.redis.resilience import (
    CircuitBreakerOpenError,
    CircuitState,
    RedisResilience,
)
from leaderboard.core.redis.service import (
    ReachabilityState,
    RedisNotConnectedError,
    RedisService,
)

__all__ = [
    "RedisService",
    "RedisHealthMonitor",
    "RedisResilience",
    "ReachabilityState",
    "RedisNotConnectedError",
    "CircuitState",
    "CircuitBreakerOpenError",
]
