"""
Unit tests for PlayerStore running on SQLite (aiosqlite).

Exercises the real SQLAlchemy queries: uniqueness, partial updates,
ordering/tie-breaks, id-set lookups and score streaming.
"""

import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from leaderboard.modules.players.sorting import SortSpec
from leaderboard.modules.players.validation import PlayerPayload
from leaderboard.modules.shared.exceptions import (
    ConflictError,
    NotFoundError,
    StoreUnavailableError,
)


async def _create(store, username, score=0, **fields):
    payload = PlayerPayload.for_create({"username": username, "total_score": score, **fields})
    return await store.upsert(None, payload)


@pytest.mark.unit
@pytest.mark.database
class TestPlayerStoreMutations:
    async def test_create_returns_record(self, player_store):
        record = await _create(player_store, "alice", 120, country="NZ")

        assert isinstance(record.id, uuid.UUID)
        assert record.username == "alice"
        assert record.total_score == 120
        assert record.level == 1
        assert record.country == "NZ"
        assert record.created_at is not None

    async def test_duplicate_username_conflicts(self, player_store):
        await _create(player_store, "alice")

        with pytest.raises(ConflictError) as exc_info:
            await _create(player_store, "alice")

        assert exc_info.value.field == "username"
        assert await player_store.count_players() == 1

    async def test_partial_update(self, player_store):
        record = await _create(player_store, "alice", 10, country="NZ")

        updated = await player_store.upsert(
            record.id, PlayerPayload.for_update({"total_score": 55})
        )

        assert updated.total_score == 55
        assert updated.country == "NZ"
        assert updated.username == "alice"

    async def test_update_can_clear_optional_field(self, player_store):
        record = await _create(player_store, "alice", 10, country="NZ")

        updated = await player_store.upsert(
            record.id, PlayerPayload.for_update({"country": None})
        )

        assert updated.country is None

    async def test_update_missing_not_found(self, player_store):
        with pytest.raises(NotFoundError):
            await player_store.upsert(uuid.uuid4(), PlayerPayload.for_update({"level": 3}))

    async def test_delete(self, player_store):
        record = await _create(player_store, "alice")

        await player_store.delete_by_id(record.id)

        assert await player_store.find_by_id(record.id) is None

    async def test_delete_missing_not_found(self, player_store):
        with pytest.raises(NotFoundError):
            await player_store.delete_by_id(uuid.uuid4())

    async def test_second_delete_not_found(self, player_store):
        record = await _create(player_store, "alice")
        await player_store.delete_by_id(record.id)

        with pytest.raises(NotFoundError):
            await player_store.delete_by_id(record.id)

        assert await player_store.count_players() == 0

    async def test_largest_counter_values_round_trip(self, player_store):
        record = await _create(
            player_store, "max", 2_147_483_647, games_played=2_147_483_647, level=2_147_483_647
        )

        stored = await player_store.find_by_id(record.id)

        assert stored.total_score == 2_147_483_647
        assert stored.games_played == 2_147_483_647
        assert stored.level == 2_147_483_647

    async def test_last_played_round_trips(self, player_store):
        when = datetime(2025, 3, 1, 12, 30, tzinfo=timezone.utc)

        record = await _create(player_store, "alice", last_played=when.isoformat())

        fetched = await player_store.find_by_id(record.id)
        assert fetched.to_dict()["last_played"].startswith("2025-03-01T12:30:00")


@pytest.mark.unit
@pytest.mark.database
class TestPlayerStoreReads:
    async def test_find_by_ids_skips_missing(self, player_store):
        a = await _create(player_store, "a")
        b = await _create(player_store, "b")

        found = await player_store.find_by_ids([b.id, uuid.uuid4(), a.id, a.id])

        assert {r.id for r in found} == {a.id, b.id}

    async def test_find_by_ids_empty(self, player_store):
        assert await player_store.find_by_ids([]) == []

    async def test_find_by_username(self, player_store):
        await _create(player_store, "alice", 3)

        assert (await player_store.find_by_username("alice")).total_score == 3
        assert await player_store.find_by_username("nobody") is None

    async def test_top_by_score_orders_and_limits(self, player_store):
        for name, score in [("a", 5), ("b", 50), ("c", 20), ("d", 35)]:
            await _create(player_store, name, score)

        top = await player_store.top_by_score(3)

        assert [r.username for r in top] == ["b", "d", "c"]

    async def test_top_by_score_ties_by_id_desc(self, player_store):
        records = [await _create(player_store, f"p{i}", 10) for i in range(5)]

        top = await player_store.top_by_score(5)

        assert [r.id for r in top] == sorted((r.id for r in records), key=str, reverse=True)

    async def test_top_by_score_non_positive_limit(self, player_store):
        await _create(player_store, "a", 5)

        assert await player_store.top_by_score(0) == []

    async def test_list_ordered_by_key_and_direction(self, player_store):
        for name, level in [("bob", 3), ("amy", 9), ("cat", 1)]:
            await _create(player_store, name, level=level)

        by_level = await player_store.list_ordered_by(SortSpec("level", True))
        by_name = await player_store.list_ordered_by(SortSpec("username", False))

        assert [r.username for r in by_level] == ["amy", "bob", "cat"]
        assert [r.username for r in by_name] == ["amy", "bob", "cat"]

    async def test_list_ordered_by_last_played_nulls_last(self, player_store):
        await _create(player_store, "never")
        await _create(player_store, "old", last_played="2024-01-01T00:00:00Z")
        await _create(player_store, "recent", last_played="2025-06-01T00:00:00Z")

        records = await player_store.list_ordered_by(SortSpec("last_played", True))

        assert [r.username for r in records] == ["recent", "old", "never"]

    async def test_iter_scores_pages_everything(self, player_store):
        created = {(await _create(player_store, f"p{i}", i)).id: i for i in range(7)}

        pairs = [pair async for pair in player_store.iter_scores(batch_size=3)]

        assert dict(pairs) == created
        assert len(pairs) == 7


@pytest.mark.unit
@pytest.mark.database
class TestPlayerStoreFailures:
    async def test_database_error_becomes_store_unavailable(self, player_store, sqlite_db, mocker):
        mocker.patch.object(
            sqlite_db,
            "get_session",
            side_effect=OperationalError("SELECT", {}, Exception("disk I/O error")),
        )

        with pytest.raises(StoreUnavailableError) as exc_info:
            await player_store.top_by_score(5)

        assert exc_info.value.operation == "top_by_score"
