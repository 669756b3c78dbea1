"""
Ranking module: the rank index abstraction and the service that keeps it
consistent with the player store.
"""

from leaderboard.modules.ranking.index import RankEntry, RankIndex, RedisRankIndex
from leaderboard.modules.ranking.metrics import RankingMetrics
from leaderboard.modules.ranking.service import RankingService

__all__ = [
    "RankEntry",
    "RankIndex",
    "RedisRankIndex",
    "RankingMetrics",
    "RankingService",
]
