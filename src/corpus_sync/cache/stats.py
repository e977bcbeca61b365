"""Per-run cache statistics."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any


@dataclass
class CacheStats:
    """Counters and timings collected during one sync run."""

    cache_hits: int = 0
    cache_misses: int = 0
    cache_puts: int = 0
    fetch_skipped: bool = False
    cache_check_time: float = 0.0
    sync_start_time: float | None = None
    sync_end_time: float | None = None

    def record_cache_hit(self) -> None:
        self.cache_hits += 1

    def record_cache_miss(self) -> None:
        self.cache_misses += 1

    def record_cache_put(self) -> None:
        self.cache_puts += 1

    def record_fetch_skipped(self) -> None:
        self.fetch_skipped = True

    def start_sync_timing(self) -> None:
        self.sync_start_time = time.monotonic()

    def end_sync_timing(self) -> None:
        self.sync_end_time = time.monotonic()

    def add_cache_check_time(self, seconds: float) -> None:
        self.cache_check_time += seconds

    @property
    def total_sync_time(self) -> float:
        if self.sync_start_time is None or self.sync_end_time is None:
            return 0.0
        return self.sync_end_time - self.sync_start_time

    @property
    def cache_hit_ratio(self) -> float:
        """Hits over lookups; ``0.0`` when nothing was looked up."""
        lookups = self.cache_hits + self.cache_misses
        if lookups == 0:
            return 0.0
        return self.cache_hits / lookups

    def to_dict(self) -> dict[str, Any]:
        return {
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "cache_puts": self.cache_puts,
            "cache_hit_ratio": round(self.cache_hit_ratio, 4),
            "fetch_skipped": self.fetch_skipped,
            "cache_check_time_ms": round(self.cache_check_time * 1000, 2),
            "total_sync_time_ms": round(self.total_sync_time * 1000, 2),
        }
