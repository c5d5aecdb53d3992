"""
In-memory read cache with TTL expiration.

Backs the two hottest read paths of the ledger: invoice listings
(``invoices:`` keys) and the platform statistics (``stats:`` keys).  Both are
recomputed from the database on a miss and dropped by prefix whenever the
ledger mutates (invoice created, invested, settled, status overridden,
snapshot loaded).

Readers fill the cache *after* awaiting the database, so a write can commit
and invalidate while a read is still in flight.  Every invalidation bumps
``generation``; a reader captures it before querying and passes it to
``set``, which drops the fill if the generation has moved on.  A cached view
is therefore never older than the last committed write in this process.

Entries also expire after ``ttl`` seconds, which bounds staleness when
several processes share one PostgreSQL database.  When the store reaches
``max_size`` the oldest entry is evicted first.
"""

import logging
import time
from typing import Any, Dict, Optional

from invoice_ledger.core.config import settings

logger = logging.getLogger(__name__)

INVOICES_PREFIX = "invoices:"
STATS_PREFIX = "stats:"


class CacheEntry:
    """A cached value and the monotonic time it was stored."""

    __slots__ = ("value", "created_at")

    def __init__(self, value: Any):
        self.value = value
        self.created_at = time.monotonic()

    def is_expired(self, ttl: float) -> bool:
        return (time.monotonic() - self.created_at) > ttl


class TTLCache:
    """
    Prefix-invalidated TTL cache with FIFO eviction.

    Parameters
    ----------
    ttl : float
        Seconds an entry stays valid.
    max_size : int
        Maximum number of entries; the oldest is evicted beyond it.
    enabled : bool
        When False every operation is a no-op and ``get`` always misses.
    """

    def __init__(
        self,
        ttl: float = 30.0,
        max_size: int = 1000,
        enabled: bool = True,
    ):
        self._store: Dict[str, CacheEntry] = {}
        self._ttl = ttl
        self._max_size = max_size
        self._enabled = enabled
        self._generation = 0
        self._hits = 0
        self._misses = 0
        self._stale_fills = 0

    @property
    def generation(self) -> int:
        """Incremented by every invalidation; see ``set(generation=...)``."""
        return self._generation

    def get(self, key: str) -> Optional[Any]:
        """The cached value, or ``None`` on a miss or an expired entry."""
        if not self._enabled:
            return None

        entry = self._store.get(key)
        if entry is not None and entry.is_expired(self._ttl):
            del self._store[key]
            logger.debug("Cache EXPIRED: %s", key)
            entry = None

        if entry is None:
            self._misses += 1
            return None

        self._hits += 1
        logger.debug("Cache HIT: %s", key)
        return entry.value

    def set(self, key: str, value: Any, generation: Optional[int] = None) -> bool:
        """
        Store ``value`` under ``key``.

        ``generation`` is the value of :attr:`generation` read before the
        data was loaded; if an invalidation has happened since, the value is
        stale and is not stored.  Returns whether the value was stored.
        """
        if not self._enabled:
            return False

        if generation is not None and generation != self._generation:
            self._stale_fills += 1
            logger.debug(
                "Cache SKIPPED stale fill: %s (generation %d, now %d)",
                key,
                generation,
                self._generation,
            )
            return False

        if key not in self._store and len(self._store) >= self._max_size:
            oldest_key = next(iter(self._store))
            del self._store[oldest_key]
            logger.debug("Cache EVICTED (max_size): %s", oldest_key)

        self._store[key] = CacheEntry(value)
        logger.debug("Cache SET: %s", key)
        return True

    def invalidate(self, *prefixes: str) -> int:
        """Drop every entry whose key starts with one of ``prefixes``."""
        if not self._enabled:
            return 0

        self._generation += 1
        stale = [k for k in self._store if k.startswith(prefixes)]
        for k in stale:
            del self._store[k]

        if stale:
            logger.debug("Cache INVALIDATED %d entries under %s", len(stale), prefixes)
        return len(stale)

    def invalidate_ledger_views(self) -> int:
        """Drop every view derived from invoice state."""
        return self.invalidate(INVOICES_PREFIX, STATS_PREFIX)

    def clear(self) -> None:
        count = len(self._store)
        self._store.clear()
        self._generation += 1
        if count:
            logger.debug("Cache CLEARED (%d entries)", count)

    def get_stats(self) -> dict:
        """Cache statistics for ``/health``."""
        total = self._hits + self._misses
        return {
            "enabled": self._enabled,
            "size": len(self._store),
            "max_size": self._max_size,
            "ttl_seconds": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": f"{(self._hits / total * 100):.1f}%" if total > 0 else "N/A",
            "generation": self._generation,
            "stale_fills_skipped": self._stale_fills,
        }


# ── Global cache instance ──
cache = TTLCache(
    ttl=settings.CACHE_TTL,
    max_size=settings.CACHE_MAX_SIZE,
    enabled=settings.CACHE_ENABLED,
)
