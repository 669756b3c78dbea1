"""
Leaderboard - Application Entry Point
=====================================

Bootstrap
---------
- Config validation
- Logging pipeline
- Database initialization and schema
- Optional Redis ranking cache (+ background health monitor)
- Store / index / service / gateway wiring
- Graceful shutdown

The HTTP surface is not part of this package; a front end owns an
``Application``, calls ``startup()`` once, and routes requests to
``app.gateway``.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from dataclasses import asdict
from typing import Any, Dict, Optional

from leaderboard.core.config.config import Config
from leaderboard.core.database.service import DatabaseService
from leaderboard.core.logging.logger import (
    get_logger,
    get_logging_health,
    setup_logging,
    shutdown_logging,
)
from leaderboard.core.redis.health_monitor import RedisHealthMonitor
from leaderboard.core.redis.service import RedisService
from leaderboard.modules.admin.gateway import AdminGateway
from leaderboard.modules.players.store import PlayerStore
from leaderboard.modules.ranking.index import RankIndex, RedisRankIndex
from leaderboard.modules.ranking.service import RankingService

logger = get_logger(__name__)


# ============================================================================
# Application Container
# ============================================================================


class Application:
    """
    Owns every long-lived component and its lifecycle.

    Args:
        database: Pre-built DatabaseService (tests); built from Config otherwise
        redis: Pre-built RedisService (tests); built from Config when
            ``REDIS_URL`` is a redis:// or rediss:// URL
        start_health_monitor: Run the periodic Redis PING task
    """

    def __init__(
        self,
        database: Optional[DatabaseService] = None,
        redis: Optional[RedisService] = None,
        start_health_monitor: bool = True,
    ) -> None:
        self.database = database
        self.redis = redis
        self.health_monitor: Optional[RedisHealthMonitor] = None
        self.store: Optional[PlayerStore] = None
        self.rank_index: Optional[RankIndex] = None
        self.ranking: Optional[RankingService] = None
        self.gateway: Optional[AdminGateway] = None

        self._start_health_monitor = start_health_monitor
        self._started = False

    @property
    def is_started(self) -> bool:
        return self._started

    async def startup(self) -> None:
        """Initialize all infrastructure components before serving requests."""
        if self._started:
            return

        logger.info("========== LEADERBOARD INITIALIZATION START ==========")

        # Step 1: Validate configuration early
        try:
            Config.validate()
            logger.info("✓ Configuration validated")
        except Exception as exc:
            logger.critical(f"Configuration validation failed: {exc}")
            raise

        # Step 2: Initialize database service and schema
        try:
            if self.database is None:
                self.database = DatabaseService()
            await self.database.initialize()
            await self.database.create_schema()
            logger.info("✓ Database service initialized")
        except Exception as exc:
            logger.critical(f"Database initialization failed: {exc}", exc_info=True)
            raise

        # Step 3: Ranking cache (optional, never fatal)
        if self.redis is None and Config.redis_enabled():
            self.redis = RedisService()

        if self.redis is not None:
            await self.redis.connect()
            self.rank_index = RedisRankIndex(self.redis)

            if self._start_health_monitor:
                self.health_monitor = RedisHealthMonitor(self.redis)
                await self.health_monitor.start()

            logger.info(
                "✓ Ranking cache initialized",
                extra={"reachability": self.redis.state.value},
            )
        else:
            logger.warning("Ranking cache disabled; serving ranked reads from the database")

        # Step 4: Store, ranking service and gateway
        self.store = PlayerStore(self.database)
        self.ranking = RankingService(self.store, self.rank_index)
        self.gateway = AdminGateway(self.ranking)
        logger.info("✓ Ranking service initialized")

        self._started = True
        logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========")

    async def shutdown(self) -> None:
        """Stop background tasks and release connections."""
        logger.info("========== LEADERBOARD SHUTDOWN START ==========")

        # Step 1: Health monitor
        if self.health_monitor is not None:
            await self.health_monitor.stop()
            self.health_monitor = None
            logger.info("✓ Health monitor stopped")

        # Step 2: Redis
        if self.redis is not None:
            await self.redis.close()
            logger.info("✓ Redis service closed")

        # Step 3: Database
        if self.database is not None:
            try:
                await self.database.shutdown()
                logger.info("✓ Database service shut down")
            except Exception as exc:
                logger.error(f"Database service shutdown error: {exc}", exc_info=True)

        self._started = False
        logger.info("========== SHUTDOWN COMPLETE ==========")

    async def status(self) -> Dict[str, Any]:
        """Aggregate health of every component for monitoring."""
        database_healthy = (
            await self.database.health_check() if self.database is not None else False
        )

        status: Dict[str, Any] = {
            "service": Config.SERVICE_NAME,
            "version": Config.SERVICE_VERSION,
            "environment": Config.ENVIRONMENT,
            "started": self._started,
            "database": {
                "healthy": database_healthy,
                **(self.database.get_status() if self.database is not None else {}),
            },
            "redis": self.redis.get_status() if self.redis is not None else {"configured": False},
            "logging": asdict(get_logging_health()),
        }

        if self.health_monitor is not None:
            status["redis_monitor"] = self.health_monitor.get_status()
        if self.ranking is not None:
            status["ranking"] = await self.ranking.get_status()

        return status


# ============================================================================
# Application Entrypoint
# ============================================================================


async def main() -> None:
    """
    Start the application and keep it alive until cancelled.

    Lifecycle:
        1. Configure logging
        2. Initialize infrastructure (database, Redis, services)
        3. Wait for a stop signal
        4. Shut down gracefully
    """
    setup_logging()
    app = Application()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, stop_event.set)
        logger.debug("SIGTERM handler installed")
    except NotImplementedError:
        logger.debug("SIGTERM not supported on this platform (likely Windows)")

    try:
        await app.startup()
        logger.info("Leaderboard service running", extra={"status": await app.status()})
        await stop_event.wait()

    except asyncio.CancelledError:
        logger.warning("Asyncio task cancellation received; shutting down gracefully.")
        raise

    except Exception as exc:
        logger.critical(f"Fatal startup error: {exc}", exc_info=True)
        sys.exit(1)

    finally:
        await app.shutdown()
        shutdown_logging()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Service manually stopped via keyboard interrupt.")
