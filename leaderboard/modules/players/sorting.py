"""
Sort policy for administrative player listings.

A fixed allow-list of sortable attributes. Anything outside it silently
resolves to the default, newest first; a bad sort key never raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from leaderboard.core.logging.logger import get_logger

logger = get_logger(__name__)

SORTABLE_KEYS = ("created_at", "total_score", "last_played", "level", "username")

DEFAULT_SORT_KEY = "created_at"
DEFAULT_DESCENDING = True


@dataclass(frozen=True)
class SortSpec:
    key: str = DEFAULT_SORT_KEY
    descending: bool = DEFAULT_DESCENDING

    def to_param(self) -> str:
        return f"-{self.key}" if self.descending else self.key


DEFAULT_SORT = SortSpec(DEFAULT_SORT_KEY, DEFAULT_DESCENDING)


def resolve_sort(key: Optional[str], descending: bool = True) -> SortSpec:
    """
    Return a SortSpec for an allow-listed key, else the default.

    An unknown key resets the direction too, so the caller always gets
    newest-first rather than an arbitrary column in their direction.
    """
    if key in SORTABLE_KEYS:
        return SortSpec(key, bool(descending))

    if key:
        logger.debug(
            "Unknown sort key; using default",
            extra={"requested_key": key, "default_key": DEFAULT_SORT_KEY},
        )
    return DEFAULT_SORT


def parse_sort_param(param: Optional[str]) -> SortSpec:
    """
    Parse a ``?sort=`` style value: ``"-total_score"`` is descending,
    ``"username"`` is ascending, empty or ``None`` is the default.
    """
    if param is None:
        return DEFAULT_SORT

    raw = param.strip()
    if not raw:
        return DEFAULT_SORT

    descending = raw.startswith("-")
    key = raw[1:] if descending else raw
    return resolve_sort(key, descending)
