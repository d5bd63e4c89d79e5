"""Three-tier decoded image cache with keep-set aware LRU eviction."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from swipetriage.config import CACHE_SIZE_LIMIT
from swipetriage.domain.models import ImageTier
from swipetriage.infrastructure.services.cache_stats import CacheStatsCollector

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Retention:
    """Assets the cache must protect during eviction.

    ``visible`` assets are never evicted at any tier.  ``keep`` (a superset of
    ``visible``) additionally shields thumbnails of the prefetch window and of
    cards that are still being rendered.
    """

    visible: frozenset[str] = field(default_factory=frozenset)
    keep: frozenset[str] = field(default_factory=frozenset)


RetentionProvider = Callable[[], Retention]

# Eviction passes in order: cheap tiers go first, and only the thumbnail pass
# honours the wider keep-set.
_EVICTION_PASSES: tuple[tuple[ImageTier, bool], ...] = (
    (ImageTier.THUMBNAIL, True),
    (ImageTier.MEDIUM, False),
    (ImageTier.HIGH, False),
)


class TieredImageCache:
    """Decoded images at thumbnail, medium and high tier keyed by asset id.

    All tiers share one entry ceiling (*limit*) and one last-access time per
    asset.  The cache also holds the registry of in-flight fetches so that a
    second request for the same (asset, tier) can await the first one.

    Not thread-safe: it belongs to the event loop that owns the stack, and
    background work only writes into it after resuming on that loop.
    """

    def __init__(
        self,
        limit: int = CACHE_SIZE_LIMIT,
        clock: Callable[[], float] = time.monotonic,
        stats: CacheStatsCollector | None = None,
    ) -> None:
        if limit < 0:
            raise ValueError("limit must be >= 0")
        self._limit = limit
        self._clock = clock
        self._stats = stats or CacheStatsCollector()
        self._tiers: dict[ImageTier, dict[str, Any]] = {tier: {} for tier in ImageTier}
        self._last_access: dict[str, tuple[float, int]] = {}
        self._sequence = itertools.count()
        self._in_flight: dict[tuple[str, ImageTier], asyncio.Future] = {}
        self._retention: RetentionProvider = Retention
        self._generation = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def generation(self) -> int:
        """Incremented by :meth:`clear`; fetches compare it before writing."""
        return self._generation

    @property
    def stats(self) -> CacheStatsCollector:
        return self._stats

    def count(self, tier: ImageTier | None = None) -> int:
        if tier is not None:
            return len(self._tiers[tier])
        return sum(len(entries) for entries in self._tiers.values())

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, key: tuple[str, ImageTier]) -> bool:
        asset_id, tier = key
        return asset_id in self._tiers[tier]

    def asset_ids(self, tier: ImageTier) -> frozenset[str]:
        return frozenset(self._tiers[tier])

    def last_access(self, asset_id: str) -> Optional[float]:
        stamp = self._last_access.get(asset_id)
        return stamp[0] if stamp is not None else None

    # ------------------------------------------------------------------
    # Lookup and insertion
    # ------------------------------------------------------------------

    def get(self, asset_id: str, tier: ImageTier) -> Optional[Any]:
        """Return the image for (*asset_id*, *tier*) and mark the asset used."""
        self._touch(asset_id)
        image = self._tiers[tier].get(asset_id)
        if image is None:
            self._stats.record_miss(tier.value)
        else:
            self._stats.record_hit(tier.value)
        return image

    def peek(self, asset_id: str, tier: ImageTier) -> Optional[Any]:
        """Like :meth:`get` but leaves access time and statistics alone."""
        return self._tiers[tier].get(asset_id)

    def best_available(
        self,
        asset_id: str,
        below: ImageTier | None = None,
    ) -> Optional[tuple[ImageTier, Any]]:
        """Return the best cached ``(tier, image)``, optionally under *below*."""
        candidates = below.below() if below is not None else tuple(reversed(ImageTier))
        for tier in candidates:
            image = self._tiers[tier].get(asset_id)
            if image is not None:
                return tier, image
        return None

    def has_any(self, asset_id: str) -> bool:
        return any(asset_id in entries for entries in self._tiers.values())

    def put(self, asset_id: str, tier: ImageTier, image: Any) -> None:
        if image is None:
            raise ValueError("cannot cache an empty image")
        self._tiers[tier][asset_id] = image
        self._touch(asset_id)
        self.evict_if_needed()

    def remove(self, asset_id: str, tier: ImageTier | None = None) -> None:
        tiers: Iterable[ImageTier] = (tier,) if tier is not None else ImageTier
        for each in tiers:
            self._tiers[each].pop(asset_id, None)
        if not self.has_any(asset_id):
            self._last_access.pop(asset_id, None)

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def bind_retention(self, provider: RetentionProvider) -> None:
        """Install the callable that reports which assets must survive."""
        self._retention = provider

    def evict_if_needed(self) -> list[tuple[str, ImageTier]]:
        """Shed entries until the combined count is back within the limit.

        Returns the evicted ``(asset_id, tier)`` pairs in eviction order.  If
        the protected assets alone exceed the limit the cache stays over it.
        """
        evicted: list[tuple[str, ImageTier]] = []
        if self.count() <= self._limit:
            return evicted

        retention = self._retention()
        by_age = sorted(self._last_access, key=self._last_access.__getitem__)

        for tier, use_keep_set in _EVICTION_PASSES:
            protected = retention.keep | retention.visible if use_keep_set else retention.visible
            entries = self._tiers[tier]
            for asset_id in by_age:
                if self.count() <= self._limit:
                    break
                if asset_id in protected or asset_id not in entries:
                    continue
                del entries[asset_id]
                evicted.append((asset_id, tier))
                self._stats.record_eviction(tier.value)
            if self.count() <= self._limit:
                break

        self._prune_access_times()
        if evicted:
            LOGGER.debug("Evicted %d cache entries: %s", len(evicted), evicted)
        if self.count() > self._limit:
            LOGGER.debug(
                "Cache still holds %d entries over limit %d; remaining assets are protected",
                self.count(),
                self._limit,
            )
        return evicted

    # ------------------------------------------------------------------
    # In-flight registry
    # ------------------------------------------------------------------

    def is_in_flight(self, asset_id: str, tier: ImageTier | None = None) -> bool:
        if tier is not None:
            return (asset_id, tier) in self._in_flight
        return any(key[0] == asset_id for key in self._in_flight)

    def in_flight(self, asset_id: str, tier: ImageTier) -> Optional[asyncio.Future]:
        return self._in_flight.get((asset_id, tier))

    def mark_in_flight(self, asset_id: str, tier: ImageTier, future: asyncio.Future) -> None:
        self._in_flight[(asset_id, tier)] = future

    def clear_in_flight(
        self,
        asset_id: str,
        tier: ImageTier,
        future: asyncio.Future | None = None,
    ) -> None:
        """Forget the pending fetch; with *future*, only if it is still the registered one."""
        key = (asset_id, tier)
        if future is not None and self._in_flight.get(key) is not future:
            return
        self._in_flight.pop(key, None)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Drop every entry and pending fetch and start a new generation.

        Pending fetches are not awaited; they notice the generation change
        when they complete and discard their result.
        """
        for entries in self._tiers.values():
            entries.clear()
        self._last_access.clear()
        self._in_flight.clear()
        self._generation += 1
        LOGGER.debug("Image cache cleared (generation %d)", self._generation)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _touch(self, asset_id: str) -> None:
        # The sequence number breaks ties between identical clock readings.
        self._last_access[asset_id] = (self._clock(), next(self._sequence))

    def _prune_access_times(self) -> None:
        for asset_id in [a for a in self._last_access if not self.has_any(a)]:
            del self._last_access[asset_id]
