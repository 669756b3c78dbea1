"""
Pytest Configuration and Fixtures for the Leaderboard Tests
===========================================================

Purpose
-------
Centralized fixtures for the test suite: in-memory fakes for the ranking
protocol, a SQLite-backed DatabaseService for PlayerStore tests, and
testcontainers for integration runs.

Architecture Notes
------------------
- Environment is forced to ``testing`` before any leaderboard import, since
  Config loads at import time
- Unit tests use fakes or SQLite (fast, isolated)
- Integration tests use testcontainers and only run with RUN_INTEGRATION=1
- Containers are session-scoped; engines and services are per test
"""

from __future__ import annotations

import os

os.environ["ENVIRONMENT"] = "testing"
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ["REDIS_URL"] = ""

from types import SimpleNamespace
from typing import AsyncGenerator, Generator, List

import pytest
import pytest_asyncio
from testcontainers.postgres import PostgresContainer
from testcontainers.redis import RedisContainer

from leaderboard.core.database.service import DatabaseService
from leaderboard.core.logging.logger import get_logger
from leaderboard.modules.players.store import PlayerStore
from leaderboard.modules.ranking.metrics import RankingMetrics
from leaderboard.modules.ranking.service import RankingService
from tests.fakes import InMemoryPlayerStore, InMemoryRankIndex

logger = get_logger(__name__)

RUN_INTEGRATION = os.environ.get("RUN_INTEGRATION") == "1"


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION=1."""
    if RUN_INTEGRATION:
        return

    skip_integration = pytest.mark.skip(reason="set RUN_INTEGRATION=1 to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# FAKE FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def journal() -> List[str]:
    """Shared call log for store/index ordering assertions."""
    return []


@pytest.fixture
def fake_store(journal) -> InMemoryPlayerStore:
    return InMemoryPlayerStore(journal)


@pytest.fixture
def fake_index(journal) -> InMemoryRankIndex:
    return InMemoryRankIndex(journal)


@pytest.fixture
def ranking_config() -> SimpleNamespace:
    """Ranking limits with the production defaults."""
    return SimpleNamespace(RANKING_MAX_LIMIT=500, RANKING_DEFAULT_LIMIT=100)


@pytest.fixture
def ranking_service(fake_store, fake_index, ranking_config) -> RankingService:
    return RankingService(
        fake_store,
        fake_index,
        config=ranking_config,
        metrics=RankingMetrics(),
    )


# ============================================================================
# SQLITE FIXTURES (PlayerStore Unit Tests)
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_db(tmp_path) -> AsyncGenerator[DatabaseService, None]:
    """
    File-backed SQLite database with the schema created.

    Scope: function (fresh database file per test)
    """
    db = DatabaseService(url=f"sqlite+aiosqlite:///{tmp_path / 'leaderboard.db'}", testing=True)
    await db.initialize()
    await db.create_schema()

    yield db

    await db.shutdown()


@pytest.fixture
def player_store(sqlite_db) -> PlayerStore:
    return PlayerStore(sqlite_db)


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    container.start()

    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest.fixture(scope="session")
def redis_container() -> Generator[RedisContainer, None, None]:
    """
    Start Redis testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    logger.info("Starting Redis testcontainer...")
    container = RedisContainer(image="redis:7-alpine")
    container.start()

    yield container

    logger.info("Stopping Redis testcontainer...")
    container.stop()


@pytest.fixture
def postgres_url(postgres_container: PostgresContainer) -> str:
    return postgres_container.get_connection_url()


@pytest.fixture
def redis_url(redis_container: RedisContainer) -> str:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}/0"


@pytest_asyncio.fixture
async def postgres_db(postgres_url: str) -> AsyncGenerator[DatabaseService, None]:
    """
    DatabaseService on the PostgreSQL container with a clean ``players`` table.

    Scope: function (schema dropped after each test)
    """
    db = DatabaseService(url=postgres_url, testing=True)
    await db.initialize()
    await db.create_schema()

    yield db

    await db.drop_schema()
    await db.shutdown()
