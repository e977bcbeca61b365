"""Content-addressable blob cache shared across syncs and projects.

Modules:

- ``store`` -- ``ContentCache``: SHA-256 keyed blob store with LRU
  eviction, health and directory statistics.
- ``stats`` -- ``CacheStats``: per-run hit/miss/put counters and timing.

The cache is purely an optimization.  Every failure surfaces as
``CacheError``, which callers catch and treat as a miss or a no-op.
"""

from .stats import CacheStats
from .store import ContentCache

__all__ = ["CacheStats", "ContentCache"]
