"""
Integration Tests for the Ranking Cache
=======================================

PostgreSQL and Redis testcontainers wired through RankingService, checking
that index-served reads agree with the authoritative store ordering.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio

from leaderboard.core.redis.service import ReachabilityState, RedisService
from leaderboard.modules.players.store import PlayerStore
from leaderboard.modules.ranking.index import RedisRankIndex
from leaderboard.modules.ranking.metrics import RankingMetrics
from leaderboard.modules.ranking.service import RankingService

RANK_KEY = "leaderboard:test"


@pytest_asyncio.fixture
async def redis_service(redis_url) -> AsyncGenerator[RedisService, None]:
    service = RedisService(url=redis_url)
    assert await service.connect() is True

    yield service

    await service.client().delete(RANK_KEY)
    await service.close()


@pytest.fixture
def store(postgres_db) -> PlayerStore:
    return PlayerStore(postgres_db)


@pytest.fixture
def rank_index(redis_service) -> RedisRankIndex:
    return RedisRankIndex(redis_service, key=RANK_KEY)


@pytest.fixture
def service(store, rank_index) -> RankingService:
    return RankingService(store, rank_index, metrics=RankingMetrics())


@pytest.mark.integration
@pytest.mark.database
@pytest.mark.redis
class TestRankingAgainstRealBackends:
    async def test_write_through_and_read(self, service, rank_index):
        a = await service.create_player({"username": "A", "total_score": 50})
        b = await service.create_player({"username": "B", "total_score": 80})
        c = await service.create_player({"username": "C", "total_score": 65})

        assert [r.id for r in await service.top_ranked(2)] == [b.id, c.id]

        await service.update_player(a.id, {"total_score": 100})
        assert [r.id for r in await service.top_ranked(2)] == [a.id, b.id]

        await service.delete_player(b.id)
        assert [r.id for r in await service.top_ranked(5)] == [a.id, c.id]

        entries = await rank_index.top_desc(10)
        assert [(e.player_id, e.score) for e in entries] == [(a.id, 100), (c.id, 65)]

    async def test_index_agrees_with_store_on_ties(self, service, store):
        for i in range(6):
            await service.create_player({"username": f"tie{i}", "total_score": 10 * (i % 2)})

        from_index = await service.top_ranked(6)
        from_store = await store.top_by_score(6)

        assert [r.id for r in from_index] == [r.id for r in from_store]
        metrics = await service.metrics.get_metrics()
        assert metrics["index_reads"] == 1

    async def test_rebuild_restores_lost_index(self, service, store, redis_service):
        for name, score in [("x", 3), ("y", 9), ("z", 6)]:
            await service.create_player({"username": name, "total_score": score})
        await redis_service.client().delete(RANK_KEY)

        assert await service.rebuild_index() == 3
        assert await redis_service.zcard(RANK_KEY) == 3

        assert [r.username for r in await service.top_ranked(3)] == ["y", "z", "x"]

    async def test_rebuild_drops_stale_members(self, service, rank_index, redis_service):
        await service.create_player({"username": "kept", "total_score": 1})
        await redis_service.zadd(RANK_KEY, "not-a-player", 99)

        await service.rebuild_index()

        entries = await rank_index.top_desc(10)
        assert len(entries) == 1

    async def test_health_check_reports_connected(self, redis_service):
        assert await redis_service.health_check() is True
        assert redis_service.state is ReachabilityState.CONNECTED
