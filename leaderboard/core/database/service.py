"""
DatabaseService: async engine and session lifecycle for the player store.

One instance is built by the application bootstrap (or a test fixture) and
handed to ``PlayerStore``. There is no module-level singleton.

Sessions
--------
- ``get_session()``: reads. Closed on exit; never commits.
- ``get_transaction()``: writes. Commits on normal exit, rolls back and
  re-raises on any exception. Repository code never calls ``commit()``.

On PostgreSQL every session starts with ``SET LOCAL statement_timeout`` so
a stuck query surfaces as an error instead of hanging the request.

Pooling
-------
``AsyncAdaptedQueuePool`` with pre-ping for PostgreSQL; ``NullPool`` when
testing or on SQLite, where connections must not outlive an event loop.

Errors
------
- DatabaseInitializationError: no URL, or the engine could not be built
- DatabaseNotInitializedError: used before ``initialize()`` or after
  ``shutdown()``

Example
-------
>>> db = DatabaseService()
>>> await db.initialize()
>>> async with db.get_transaction() as session:
...     session.add(Player(username="alice"))
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, Optional, Type

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool, Pool

from leaderboard.core.config.config import Config
from leaderboard.core.database.base import Base
from leaderboard.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    pass


class DatabaseNotInitializedError(RuntimeError):
    pass


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000.0, 2)


@dataclass(frozen=True)
class _EngineSettings:
    """Engine settings resolved once per ``initialize()``."""

    url: str
    echo: bool
    pool_class: Type[Pool]
    pool_size: int
    max_overflow: int
    pool_recycle: int
    pool_timeout: int
    statement_timeout_ms: int

    @classmethod
    def resolve(cls, url: Optional[str], testing: Optional[bool]) -> "_EngineSettings":
        database_url = url if url is not None else Config.DATABASE_URL
        if not database_url:
            raise DatabaseInitializationError("DATABASE_URL must be configured as a non-empty string")

        if testing is None:
            testing = Config.is_testing()
        shared_pool = not testing and not database_url.startswith("sqlite")

        return cls(
            url=database_url,
            echo=Config.DATABASE_ECHO,
            pool_class=AsyncAdaptedQueuePool if shared_pool else NullPool,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            pool_timeout=Config.DATABASE_POOL_TIMEOUT,
            statement_timeout_ms=Config.DATABASE_STATEMENT_TIMEOUT_MS,
        )

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith("postgresql")

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"

    def engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"echo": self.echo, "poolclass": self.pool_class}
        if self.pool_class is AsyncAdaptedQueuePool:
            kwargs.update(
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_recycle=self.pool_recycle,
                pool_timeout=self.pool_timeout,
                pool_pre_ping=True,
            )
        return kwargs


class DatabaseService:
    """
    Args:
        url: Database URL; defaults to ``Config.DATABASE_URL``
        testing: Force NullPool; defaults to ``Config.is_testing()``
    """

    def __init__(self, url: Optional[str] = None, testing: Optional[bool] = None) -> None:
        self._url = url
        self._testing = testing
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._settings: Optional[_EngineSettings] = None
        self._lifecycle_lock = asyncio.Lock()

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        """
        Build the engine and session factory. Idempotent.

        Raises
        ------
        DatabaseInitializationError
            Missing URL or engine construction failure.
        """
        async with self._lifecycle_lock:
            if self._engine is not None:
                return

            try:
                settings = _EngineSettings.resolve(self._url, self._testing)
                engine = create_async_engine(settings.url, **settings.engine_kwargs())
            except DatabaseInitializationError:
                logger.error("DATABASE_URL is not configured")
                raise
            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(f"Database initialization failed: {exc}") from exc

            self._settings = settings
            self._engine = engine
            self._session_factory = async_sessionmaker(
                bind=engine, class_=AsyncSession, expire_on_commit=False
            )
            logger.info(
                "DatabaseService initialized",
                extra={
                    "url_scheme": settings.url_scheme,
                    "pool_class": settings.pool_class.__name__,
                    "statement_timeout_ms": settings.statement_timeout_ms,
                },
            )

    async def shutdown(self) -> None:
        """Dispose the engine. Safe to call repeatedly."""
        async with self._lifecycle_lock:
            engine = self._engine
            if engine is None:
                return

            self._engine = None
            self._session_factory = None
            self._settings = None

            await engine.dispose()
            logger.info("DatabaseService shut down")

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        return self._require_engine()

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None or self._session_factory is None:
            raise DatabaseNotInitializedError(
                "DatabaseService must be initialized before use. Call initialize() during startup."
            )
        return self._engine

    # ========================================================================
    # Schema
    # ========================================================================

    async def create_schema(self) -> None:
        """Create every mapped table that does not exist yet."""
        engine = self._require_engine()

        # Registers the models on Base.metadata
        import leaderboard.database.models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database schema ensured", extra={"tables": sorted(Base.metadata.tables)})

    async def drop_schema(self) -> None:
        """Drop every mapped table (test teardown)."""
        engine = self._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.warning("Database schema dropped")

    # ========================================================================
    # Health
    # ========================================================================

    async def health_check(self) -> bool:
        """``SELECT 1``; False on any connection failure, never raises."""
        if self._engine is None:
            return False

        start = time.perf_counter()
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (DBAPIError, OSError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

        logger.debug("Database health check passed", extra={"duration_ms": _elapsed_ms(start)})
        return True

    def get_status(self) -> Dict[str, Any]:
        settings = self._settings
        return {
            "initialized": self._engine is not None,
            "url_scheme": settings.url_scheme if settings else None,
            "pool_class": settings.pool_class.__name__ if settings else None,
        }

    # ========================================================================
    # Sessions
    # ========================================================================

    async def _open(self) -> AsyncSession:
        self._require_engine()
        assert self._session_factory is not None and self._settings is not None

        session = self._session_factory()
        if self._settings.is_postgres:
            try:
                await session.execute(
                    text(f"SET LOCAL statement_timeout = {int(self._settings.statement_timeout_ms)}")
                )
            except Exception:
                await session.close()
                raise
        return session

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Read session; closed on exit without commit or rollback."""
        session = await self._open()
        try:
            yield session
        finally:
            await session.close()

    @asynccontextmanager
    async def get_transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Atomic unit of work.

        >>> async with db.get_transaction() as session:
        ...     player = await session.get(Player, player_id)
        ...     player.total_score = 9999
        """
        start = time.perf_counter()
        session = await self._open()
        try:
            yield session
            await session.commit()
            logger.debug("Database transaction committed", extra={"duration_ms": _elapsed_ms(start)})
        except Exception as exc:
            await session.rollback()
            # Domain errors raised inside the block are routine; driver errors are not
            log = logger.error if isinstance(exc, (OperationalError, DBAPIError)) else logger.debug
            log(
                "Database transaction rolled back",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "duration_ms": _elapsed_ms(start),
                },
            )
            raise
        finally:
            await session.close()
