"""Process-wide, time- and size-bounded cache for carrier package details.

Shared by every pipeline invocation. All reads and writes go through one lock
and never await while holding it, so concurrent tasks (and worker threads)
see a consistent store.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from ...config import settings
from ...models.domain import PackageDetail

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Entry:
    detail: PackageDetail
    created_at: float


@dataclass(slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    entries_created: int = 0
    entries_expired: int = 0
    entries_evicted: int = 0

    def as_dict(self, size: int) -> dict:
        total = self.hits + self.misses
        hit_rate = (self.hits / total * 100) if total > 0 else 0.0
        return {
            "size": size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate_percent": round(hit_rate, 1),
            "entries_created": self.entries_created,
            "entries_expired": self.entries_expired,
            "entries_evicted": self.entries_evicted,
        }


class DetailCache:
    """TTL cache keyed by package reference with oldest-first eviction."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.detail_cache_ttl_seconds
        self.max_entries = max_entries if max_entries is not None else settings.detail_cache_max_entries
        if self.max_entries < 1:
            raise ValueError("Detail cache needs room for at least one entry.")
        self._clock = clock
        self._store: dict[str, _Entry] = {}
        self._stats = CacheStats()
        self._lock = threading.RLock()

    def _is_expired(self, entry: _Entry, now: float) -> bool:
        return now - entry.created_at >= self.ttl_seconds

    def get(self, reference: str) -> Optional[PackageDetail]:
        with self._lock:
            entry = self._store.get(reference)
            if entry is None:
                self._stats.misses += 1
                return None
            if self._is_expired(entry, self._clock()):
                del self._store[reference]
                self._stats.entries_expired += 1
                self._stats.misses += 1
                logger.debug(f"Detail cache entry expired for {reference}")
                return None
            self._stats.hits += 1
            return entry.detail

    def get_many(self, references: Iterable[str]) -> dict[str, PackageDetail]:
        """Return the cached details among ``references``; misses are simply absent."""
        found: dict[str, PackageDetail] = {}
        for reference in references:
            detail = self.get(reference)
            if detail is not None:
                found[reference] = detail
        return found

    def set(self, reference: str, detail: PackageDetail) -> None:
        with self._lock:
            if reference in self._store:
                # Re-insert so the refreshed entry becomes the newest.
                del self._store[reference]
            elif len(self._store) >= self.max_entries:
                oldest = next(iter(self._store))
                del self._store[oldest]
                self._stats.entries_evicted += 1
                logger.debug(f"Detail cache evicted {oldest} (max_entries={self.max_entries})")
            self._store[reference] = _Entry(detail=detail, created_at=self._clock())
            self._stats.entries_created += 1

    def invalidate(self, reference: str) -> bool:
        with self._lock:
            return self._store.pop(reference, None) is not None

    def cleanup_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._store.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._store[key]
            self._stats.entries_expired += len(expired)
        if expired:
            logger.info(f"Detail cache cleanup: {len(expired)} expired entries removed")
        return len(expired)

    def clear(self) -> int:
        with self._lock:
            count = len(self._store)
            self._store.clear()
            self._stats = CacheStats()
        logger.info(f"Detail cache cleared ({count} entries)")
        return count

    def size(self) -> int:
        with self._lock:
            return len(self._store)

    def stats(self) -> dict:
        with self._lock:
            return self._stats.as_dict(len(self._store))


_default_cache: DetailCache | None = None
_default_lock = threading.Lock()


def get_detail_cache() -> DetailCache:
    """Shared cache instance used by the API layer."""
    global _default_cache
    with _default_lock:
        if _default_cache is None:
            _default_cache = DetailCache()
        return _default_cache
