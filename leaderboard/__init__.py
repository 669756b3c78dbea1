"""Leaderboard service: durable player records with a Redis-backed ranking cache."""

__version__ = "1.0.0"
