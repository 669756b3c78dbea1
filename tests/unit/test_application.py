"""
Unit tests for the Application container (SQLite database, mocked Redis).
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from leaderboard.core.database.service import DatabaseService
from leaderboard.core.redis.resilience import RedisResilience
from leaderboard.core.redis.service import RedisService
from leaderboard.main import Application
from leaderboard.modules.admin.gateway import Actor

ADMIN = Actor("admin-1", "admin")


@pytest.fixture
def sqlite_service(tmp_path) -> DatabaseService:
    return DatabaseService(url=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}", testing=True)


@pytest.fixture
def mock_redis_client(mocker):
    client = mocker.MagicMock()
    client.ping = mocker.AsyncMock(return_value=True)
    client.zadd = mocker.AsyncMock(return_value=1)
    client.zrem = mocker.AsyncMock(return_value=1)
    client.zrevrange = mocker.AsyncMock(return_value=[])
    client.aclose = mocker.AsyncMock()
    return client


@pytest.mark.unit
@pytest.mark.database
class TestApplication:
    async def test_startup_without_redis(self, sqlite_service):
        app = Application(database=sqlite_service)

        await app.startup()
        try:
            assert app.rank_index is None
            created = await app.gateway.create_player(ADMIN, {"username": "alice", "total_score": 5})
            rows = await app.gateway.leaderboard(ADMIN)
            assert [row["id"] for row in rows] == [created["id"]]

            status = await app.status()
            assert status["database"]["healthy"] is True
            assert status["redis"] == {"configured": False}
            assert status["ranking"]["rank_index_configured"] is False
        finally:
            await app.shutdown()

        assert not sqlite_service.is_initialized

    async def test_unreachable_redis_does_not_block_startup(self, sqlite_service, mock_redis_client):
        mock_redis_client.ping.side_effect = RedisConnectionError("refused")
        mock_redis_client.zadd.side_effect = RedisConnectionError("refused")
        redis = RedisService(
            url="redis://cache:6379/0",
            client=mock_redis_client,
            resilience=RedisResilience(failure_threshold=5, recovery_timeout=30),
        )
        app = Application(database=sqlite_service, redis=redis, start_health_monitor=False)

        await app.startup()
        try:
            created = await app.gateway.create_player(ADMIN, {"username": "bob", "total_score": 3})
            rows = await app.gateway.leaderboard(ADMIN, limit="10")

            assert [row["id"] for row in rows] == [created["id"]]
            status = await app.status()
            assert status["redis"]["reachability"] == "DISCONNECTED"
            assert status["ranking"]["metrics"]["index_write_failures"] == 1
            assert status["ranking"]["metrics"]["fallback_reads"] == 1
        finally:
            await app.shutdown()

        mock_redis_client.aclose.assert_awaited_once()

    async def test_health_monitor_lifecycle(self, sqlite_service, mock_redis_client):
        redis = RedisService(url="redis://cache:6379/0", client=mock_redis_client)
        app = Application(database=sqlite_service, redis=redis)

        await app.startup()
        try:
            assert app.health_monitor is not None
            assert app.health_monitor.is_running
            assert redis.state.value == "CONNECTED"
        finally:
            await app.shutdown()

        assert app.health_monitor is None

    async def test_startup_is_idempotent(self, sqlite_service):
        app = Application(database=sqlite_service)

        await app.startup()
        gateway = app.gateway
        await app.startup()
        try:
            assert app.gateway is gateway
        finally:
            await app.shutdown()
