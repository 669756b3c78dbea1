#!/usr/bin/env python3
"""
rebuild_rank_index.py
---------------------

Reloads the Redis ranking sorted set from the players table. Run it after a
Redis flush, after restoring the database, or whenever the cache has drifted
because of write-throughs that failed during an outage.

USAGE:
  python scripts/rebuild_rank_index.py
"""

import argparse
import asyncio
import sys

from leaderboard.core.config.config import Config
from leaderboard.core.logging.logger import set_log_context, setup_logging, shutdown_logging
from leaderboard.main import Application
from leaderboard.modules.shared.exceptions import RankIndexUnavailableError


async def rebuild() -> int:
    set_log_context(actor_id="cli", operation="rebuild_index")
    app = Application(start_health_monitor=False)
    await app.startup()
    try:
        return await app.ranking.rebuild_index()
    finally:
        await app.shutdown()


def main():
    parser = argparse.ArgumentParser(description="Leaderboard rank index rebuild")
    parser.parse_args()

    if not Config.redis_enabled():
        print("❌ REDIS_URL is not a redis:// or rediss:// URL; nothing to rebuild")
        sys.exit(1)

    setup_logging()
    try:
        count = asyncio.run(rebuild())
    except RankIndexUnavailableError as exc:
        print(f"❌ Rebuild failed: {exc.reason}")
        sys.exit(1)
    finally:
        shutdown_logging()

    print(f"✓ Rank index '{Config.RANKING_KEY}' rebuilt with {count} entries")


if __name__ == "__main__":
    main()
