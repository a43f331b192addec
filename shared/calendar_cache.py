"""
Calendar ID cache - branch name -> Google Calendar ID.

Avoids a calendarList.list round-trip for every booking. Entries expire after
a TTL and can be invalidated explicitly when a branch is renamed or its
calendar deleted. The cache is an optimization only: branch_calendars in
Firestore is the durable mapping.

The registry receives a cache instance by injection; get_calendar_cache()
returns the process-wide default used by the API.
"""

import logging
import math
import time
from functools import lru_cache
from typing import Any

from shared.config import get_settings

logger = logging.getLogger(__name__)


class CalendarIdCache:
    """In-process TTL cache with a size bound and hit/miss statistics."""

    def __init__(self, ttl_seconds: float = 1800, max_size: int = 1000):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._values: dict[str, Any] = {}
        self._expiry: dict[str, float] = {}
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0}

    def get(self, key: str) -> Any | None:
        expiry = self._expiry.get(key)

        if expiry is not None and time.monotonic() < expiry:
            self._stats["hits"] += 1
            logger.debug(f"Calendar cache hit: {key}")
            return self._values[key]

        if expiry is not None:
            self.delete(key)

        self._stats["misses"] += 1
        logger.debug(f"Calendar cache miss: {key}")
        return None

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        if key not in self._values and len(self._values) >= self.max_size:
            self._evict_oldest()

        self._values[key] = value
        self._expiry[key] = time.monotonic() + (self.ttl_seconds if ttl is None else ttl)
        self._stats["sets"] += 1

    def delete(self, key: str) -> bool:
        self._expiry.pop(key, None)
        if key in self._values:
            del self._values[key]
            self._stats["deletes"] += 1
            return True
        return False

    def clear(self) -> None:
        size = len(self._values)
        self._values.clear()
        self._expiry.clear()
        logger.info(f"Calendar cache cleared: {size} items removed")

    def _evict_oldest(self) -> None:
        # Drop the 10% of entries closest to expiry
        to_delete = max(1, math.ceil(self.max_size * 0.1))
        oldest = sorted(self._expiry.items(), key=lambda item: item[1])[:to_delete]
        for key, _ in oldest:
            self.delete(key)
        logger.info(f"Evicted {len(oldest)} oldest calendar cache entries")

    def __contains__(self, key: str) -> bool:
        expiry = self._expiry.get(key)
        return expiry is not None and time.monotonic() < expiry

    def __len__(self) -> int:
        return len(self._values)

    def stats(self) -> dict[str, Any]:
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total * 100) if total else 0.0
        return {
            **self._stats,
            "total": total,
            "hit_rate": f"{hit_rate:.2f}%",
            "current_size": len(self._values),
            "max_size": self.max_size,
        }


@lru_cache
def get_calendar_cache() -> CalendarIdCache:
    """Get the process-wide calendar ID cache."""
    settings = get_settings()
    return CalendarIdCache(
        ttl_seconds=settings.CALENDAR_CACHE_TTL_SECONDS,
        max_size=settings.CALENDAR_CACHE_MAX_SIZE,
    )
