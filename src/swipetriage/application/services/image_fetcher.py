"""Deduplicating, prioritised fetch path between the stack and the source."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Mapping, Optional

from swipetriage.application.interfaces import AssetSource
from swipetriage.config import FETCH_TIMEOUT_SEC, PREFETCH_CONCURRENCY, TIER_TARGET_SIZES
from swipetriage.domain.models import AssetRef, FetchResult, FetchStatus, ImageTier
from swipetriage.errors import FetchUnavailableError
from swipetriage.infrastructure.services.tiered_image_cache import TieredImageCache

LOGGER = logging.getLogger(__name__)


class FetchPriority(str, Enum):
    VISIBLE = "visible"
    PREFETCH = "prefetch"


def default_tier_sizes() -> dict[ImageTier, tuple[int, int]]:
    return {ImageTier(name): size for name, size in TIER_TARGET_SIZES.items()}


class ImageFetchService:
    """Single entry point for pulling images out of an :class:`AssetSource`.

    * Requests for an (asset, tier) that is already in flight share the
      existing task instead of calling the source again.
    * Visible-card requests start at once.  Prefetch requests queue for one of
      a few slots, and are promoted past the queue if a visible request joins
      them.
    * Every source call is bounded by *timeout*; timeouts, empty results and
      source exceptions all resolve to an unavailable :class:`FetchResult`.
    * Results are only written to the cache when its generation still matches
      the one captured when the fetch was registered.
    """

    def __init__(
        self,
        source: AssetSource,
        cache: TieredImageCache,
        *,
        tier_sizes: Mapping[ImageTier, tuple[int, int]] | None = None,
        timeout: float | None = FETCH_TIMEOUT_SEC,
        prefetch_concurrency: int = PREFETCH_CONCURRENCY,
    ) -> None:
        if prefetch_concurrency < 1:
            raise ValueError("prefetch_concurrency must be >= 1")
        self._source = source
        self._cache = cache
        self._tier_sizes = dict(tier_sizes or default_tier_sizes())
        self._timeout = timeout
        self._slots = asyncio.Semaphore(prefetch_concurrency)
        self._promotions: dict[tuple[str, ImageTier], asyncio.Event] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def target_size(self, tier: ImageTier) -> tuple[int, int]:
        return self._tier_sizes[tier]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def request(
        self,
        asset: AssetRef,
        tier: ImageTier,
        priority: FetchPriority = FetchPriority.VISIBLE,
    ) -> asyncio.Future:
        """Return the in-flight task for (*asset*, *tier*), creating it if needed.

        Registration is synchronous, so two calls made before the loop yields
        still share a single source call.  Must be called on the owning loop.
        """
        key = (asset.id, tier)
        existing = self._cache.in_flight(asset.id, tier)
        if existing is not None:
            if priority is FetchPriority.VISIBLE:
                self._promote(key)
            return existing

        promoted = asyncio.Event()
        if priority is FetchPriority.VISIBLE:
            promoted.set()
        generation = self._cache.generation
        task = asyncio.get_running_loop().create_task(
            self._run(asset, tier, promoted, generation),
            name=f"fetch:{asset.id}:{tier.value}",
        )
        self._promotions[key] = promoted
        self._cache.mark_in_flight(asset.id, tier, task)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        LOGGER.debug("Fetch registered for %s at %s (%s)", asset.id, tier.value, priority.value)
        return task

    async def fetch(
        self,
        asset: AssetRef,
        tier: ImageTier,
        priority: FetchPriority = FetchPriority.VISIBLE,
    ) -> FetchResult:
        """Return the cached image or wait for a (possibly shared) fetch."""
        image = self._cache.get(asset.id, tier)
        if image is not None:
            return FetchResult(asset_id=asset.id, tier=tier, image=image, status=FetchStatus.CACHED)
        return await asyncio.shield(self.request(asset, tier, priority))

    async def drain(self) -> None:
        """Wait until every fetch started so far (and any they spawn) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _promote(self, key: tuple[str, ImageTier]) -> None:
        event = self._promotions.get(key)
        if event is not None and not event.is_set():
            LOGGER.debug("Promoting queued prefetch %s at %s", key[0], key[1].value)
            event.set()

    async def _run(
        self,
        asset: AssetRef,
        tier: ImageTier,
        promoted: asyncio.Event,
        generation: int,
    ) -> FetchResult:
        key = (asset.id, tier)
        this_task = asyncio.current_task()
        holds_slot = False
        try:
            if not promoted.is_set():
                holds_slot = await self._wait_for_slot(promoted)
            result = await self._load(asset, tier)
            if result.available:
                if self._cache.generation == generation:
                    self._cache.put(asset.id, tier, result.image)
                else:
                    LOGGER.debug("Discarding stale %s fetch for %s", tier.value, asset.id)
            return result
        finally:
            if holds_slot:
                self._slots.release()
            self._cache.clear_in_flight(asset.id, tier, this_task)
            if self._promotions.get(key) is promoted:
                del self._promotions[key]

    async def _wait_for_slot(self, promoted: asyncio.Event) -> bool:
        """Wait for a prefetch slot or a promotion; True if a slot is now held."""
        acquire = asyncio.ensure_future(self._slots.acquire())
        promotion = asyncio.ensure_future(promoted.wait())
        try:
            await asyncio.wait({acquire, promotion}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            promotion.cancel()
            if not acquire.done():
                acquire.cancel()
        return acquire.done() and not acquire.cancelled()

    async def _load(self, asset: AssetRef, tier: ImageTier) -> FetchResult:
        size = self._tier_sizes[tier]
        try:
            image: Optional[object] = await asyncio.wait_for(
                self._source.fetch_image(asset, size, tier.quality),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            LOGGER.warning("Fetch of %s at %s timed out after %.1fs", asset.id, tier.value, self._timeout)
            return FetchResult.unavailable(asset.id, tier, "timeout")
        except FetchUnavailableError as exc:
            LOGGER.warning("Source could not deliver %s at %s: %s", asset.id, tier.value, exc)
            return FetchResult.unavailable(asset.id, tier, exc.reason or "unavailable")
        except Exception:
            LOGGER.exception("Source failed while fetching %s at %s", asset.id, tier.value)
            return FetchResult.unavailable(asset.id, tier, "error")

        if image is None:
            LOGGER.warning("Source returned no image for %s at %s", asset.id, tier.value)
            return FetchResult.unavailable(asset.id, tier, "no image")
        return FetchResult(asset_id=asset.id, tier=tier, image=image, status=FetchStatus.LOADED)
