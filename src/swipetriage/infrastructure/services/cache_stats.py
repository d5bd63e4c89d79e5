"""Per-tier hit, miss and eviction counters for the image cache."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass


@dataclass(frozen=True)
class CacheStats:
    """Immutable snapshot of one tier's counters."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def total(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Hit rate as a float in [0.0, 1.0]; 0.0 when no requests."""
        if self.total == 0:
            return 0.0
        return self.hits / self.total


class CacheStatsCollector:
    """Thread-safe collector keyed by tier name.

    Usage::

        stats = CacheStatsCollector()
        stats.record_hit("thumbnail")
        stats.record_eviction("thumbnail")
        print(stats.get("thumbnail").hit_rate)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits: Counter[str] = Counter()
        self._misses: Counter[str] = Counter()
        self._evictions: Counter[str] = Counter()

    def record_hit(self, name: str) -> None:
        with self._lock:
            self._hits[name] += 1

    def record_miss(self, name: str) -> None:
        with self._lock:
            self._misses[name] += 1

    def record_eviction(self, name: str) -> None:
        with self._lock:
            self._evictions[name] += 1

    def get(self, name: str) -> CacheStats:
        with self._lock:
            return self._snapshot(name)

    def all(self) -> dict[str, CacheStats]:
        """Return snapshots for every name that has recorded data."""
        with self._lock:
            names = set(self._hits) | set(self._misses) | set(self._evictions)
            return {name: self._snapshot(name) for name in sorted(names)}

    def reset(self, name: str | None = None) -> None:
        """Reset counters.  If *name* is ``None``, reset all."""
        with self._lock:
            counters = (self._hits, self._misses, self._evictions)
            for counter in counters:
                if name is None:
                    counter.clear()
                else:
                    counter.pop(name, None)

    def _snapshot(self, name: str) -> CacheStats:
        return CacheStats(
            hits=self._hits[name],
            misses=self._misses[name],
            evictions=self._evictions[name],
        )
