"""
Players module: durable player records.

Exports the store, the immutable record snapshot, payload validation and
the admin listing sort policy.
"""

from leaderboard.modules.players.record import PlayerRecord
from leaderboard.modules.players.sorting import (
    DEFAULT_SORT,
    SORTABLE_KEYS,
    SortSpec,
    parse_sort_param,
    resolve_sort,
)
from leaderboard.modules.players.store import PlayerStore
from leaderboard.modules.players.validation import PlayerPayload

__all__ = [
    "PlayerRecord",
    "PlayerStore",
    "PlayerPayload",
    "SortSpec",
    "SORTABLE_KEYS",
    "DEFAULT_SORT",
    "resolve_sort",
    "parse_sort_param",
]
