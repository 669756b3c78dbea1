#!/usr/bin/env python3
"""
seed_players.py
---------------

Seeds demo players Player1..PlayerN with random stats through RankingService,
so the ranking cache is populated alongside the database.

USAGE:
  python scripts/seed_players.py            # 20 players
  python scripts/seed_players.py --count 200
  python scripts/seed_players.py --seed 42  # reproducible stats

Idempotent by username: existing players are left untouched.
"""

import argparse
import asyncio
import random
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from leaderboard.core.logging.logger import set_log_context, setup_logging, shutdown_logging
from leaderboard.main import Application
from leaderboard.modules.shared.exceptions import ConflictError

DEFAULT_COUNT = 20


def build_player(index: int, rng: random.Random, now: datetime) -> Dict[str, Any]:
    return {
        "username": f"Player{index}",
        "total_score": rng.randrange(10_000),
        "level": 1 + rng.randrange(50),
        "games_played": rng.randrange(500),
        "games_won": rng.randrange(300),
        "status": "active",
        "last_played": now,
    }


async def seed(count: int, rng: random.Random) -> int:
    set_log_context(actor_id="cli", operation="seed_players")
    app = Application(start_health_monitor=False)
    await app.startup()
    created = 0
    now = datetime.now(timezone.utc)

    try:
        for index in range(1, count + 1):
            fields = build_player(index, rng, now)
            if await app.store.find_by_username(fields["username"]) is not None:
                continue
            try:
                await app.ranking.create_player(fields)
            except ConflictError:
                # Created concurrently by another seeder
                continue
            created += 1
    finally:
        await app.shutdown()

    return created


def main():
    parser = argparse.ArgumentParser(description="Leaderboard demo data seeder")
    parser.add_argument("--count", type=int, default=DEFAULT_COUNT)
    parser.add_argument("--seed", type=int, default=None, help="random seed")
    args = parser.parse_args()

    if args.count < 1:
        print("❌ --count must be at least 1")
        sys.exit(1)

    setup_logging()
    try:
        created = asyncio.run(seed(args.count, random.Random(args.seed)))
    finally:
        shutdown_logging()

    print(f"✓ Seeded {created} new players ({args.count - created} already present)")


if __name__ == "__main__":
    main()
