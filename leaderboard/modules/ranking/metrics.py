"""
Ranking metrics.

Purpose
-------
In-memory counters describing how ranked reads and write-throughs are being
served: from the rank index, from the durable-store fallback, or degraded.

Architecture Notes
------------------
- One instance per RankingService (not class-level), so independent services
  and tests never share counters
- Updates are protected by asyncio.Lock
- Derived ratios are calculated on demand
"""

import asyncio
from typing import Any, Dict


class RankingMetrics:
    """Async-safe counters for the ranking cache protocol."""

    _COUNTERS = (
        "index_reads",
        "index_empty_reads",
        "fallback_reads",
        "dangling_ids_dropped",
        "index_writes",
        "index_write_failures",
        "index_read_failures",
        "rebuilds",
    )

    def __init__(self) -> None:
        self._metrics: Dict[str, int] = {name: 0 for name in self._COUNTERS}
        self._lock = asyncio.Lock()

    async def _incr(self, name: str, amount: int = 1) -> None:
        async with self._lock:
            self._metrics[name] += amount

    async def record_index_read(self) -> None:
        """Ranked read served from the rank index."""
        await self._incr("index_reads")

    async def record_index_empty(self) -> None:
        await self._incr("index_empty_reads")

    async def record_fallback(self) -> None:
        """Ranked read served by the durable store."""
        await self._incr("fallback_reads")

    async def record_dangling(self, count: int) -> None:
        """Ids in the index with no durable record, omitted from a result."""
        if count > 0:
            await self._incr("dangling_ids_dropped", count)

    async def record_index_write(self) -> None:
        await self._incr("index_writes")

    async def record_index_write_failure(self) -> None:
        await self._incr("index_write_failures")

    async def record_index_read_failure(self) -> None:
        await self._incr("index_read_failures")

    async def record_rebuild(self) -> None:
        await self._incr("rebuilds")

    async def get_metrics(self) -> Dict[str, Any]:
        """
        Counters plus derived ratios.

        ``index_hit_rate`` is the share of ranked reads served from the index.
        """
        async with self._lock:
            snapshot: Dict[str, Any] = dict(self._metrics)

        total_reads = snapshot["index_reads"] + snapshot["fallback_reads"]
        snapshot["total_ranked_reads"] = total_reads
        snapshot["index_hit_rate"] = (
            round(snapshot["index_reads"] / total_reads, 4) if total_reads else 0.0
        )
        return snapshot

    async def reset(self) -> None:
        async with self._lock:
            for name in self._metrics:
                self._metrics[name] = 0
