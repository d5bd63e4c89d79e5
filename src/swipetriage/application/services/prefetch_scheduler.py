"""Rolling thumbnail prefetch beyond the visible stack."""

from __future__ import annotations

import asyncio
import logging

from swipetriage.application.services.image_fetcher import FetchPriority, ImageFetchService
from swipetriage.config import MAX_PREFETCHED_PHOTOS, MAX_STACK_SIZE
from swipetriage.domain.models import AssetRef, Batch, ImageTier
from swipetriage.infrastructure.services.tiered_image_cache import TieredImageCache

LOGGER = logging.getLogger(__name__)


class PrefetchScheduler:
    """Keep the assets just behind the stack warm at thumbnail tier.

    The asset directly behind the stack is additionally promoted to medium
    tier once its thumbnail has landed, so it is ready when it slides into
    the visible window.  All work is fire-and-forget; :meth:`drain` exists for
    callers that need to observe completion.
    """

    def __init__(
        self,
        fetcher: ImageFetchService,
        cache: TieredImageCache,
        *,
        window_size: int = MAX_PREFETCHED_PHOTOS,
        stack_size: int = MAX_STACK_SIZE,
    ) -> None:
        if window_size < 0:
            raise ValueError("window_size must be >= 0")
        self._fetcher = fetcher
        self._cache = cache
        self._window_size = window_size
        self._stack_size = stack_size
        self._relevant_ids: frozenset[str] = frozenset()
        self._tasks: set[asyncio.Task] = set()
        self._promoting: set[tuple[str, int]] = set()

    @property
    def window_size(self) -> int:
        return self._window_size

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def window(self, cursor: int, batch: Batch) -> tuple[AssetRef, ...]:
        start = cursor + self._stack_size
        return batch.window(start, start + self._window_size)

    def is_relevant(self, asset_id: str) -> bool:
        """True while *asset_id* sits in the stack or window of the last refresh."""
        return asset_id in self._relevant_ids

    def refresh(self, cursor: int, batch: Batch) -> list[tuple[str, ImageTier]]:
        """Schedule whatever the window is missing; returns what was scheduled."""
        window = self.window(cursor, batch)
        self._relevant_ids = frozenset(
            asset.id for asset in batch.window(cursor, cursor + self._stack_size + self._window_size)
        )

        scheduled: list[tuple[str, ImageTier]] = []
        for offset, asset in enumerate(window):
            promote = offset == 0
            if not self._cache.has_any(asset.id) and not self._cache.is_in_flight(asset.id):
                thumbnail = self._fetcher.request(asset, ImageTier.THUMBNAIL, FetchPriority.PREFETCH)
                scheduled.append((asset.id, ImageTier.THUMBNAIL))
                if promote:
                    self._chain_promotion(asset, thumbnail)
            elif promote and self._awaits_thumbnail(asset.id):
                # Slid into the promotion slot while its thumbnail is still loading.
                self._chain_promotion(asset, self._cache.in_flight(asset.id, ImageTier.THUMBNAIL))
            elif promote and self._needs_medium(asset.id):
                self._spawn(self._await(
                    self._fetcher.request(asset, ImageTier.MEDIUM, FetchPriority.PREFETCH)
                ))
                scheduled.append((asset.id, ImageTier.MEDIUM))

        if scheduled:
            LOGGER.debug("Prefetch scheduled at cursor %d: %s", cursor, scheduled)
        return scheduled

    def reset(self) -> None:
        """Forget the current window; in-flight work is left to finish."""
        self._relevant_ids = frozenset()

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _needs_medium(self, asset_id: str) -> bool:
        return (
            self._cache.peek(asset_id, ImageTier.THUMBNAIL) is not None
            and self._cache.peek(asset_id, ImageTier.MEDIUM) is None
            and self._cache.peek(asset_id, ImageTier.HIGH) is None
            and not self._cache.is_in_flight(asset_id, ImageTier.MEDIUM)
        )

    def _awaits_thumbnail(self, asset_id: str) -> bool:
        return (
            self._cache.in_flight(asset_id, ImageTier.THUMBNAIL) is not None
            and self._cache.peek(asset_id, ImageTier.MEDIUM) is None
            and self._cache.peek(asset_id, ImageTier.HIGH) is None
            and not self._cache.is_in_flight(asset_id, ImageTier.MEDIUM)
            and (asset_id, self._cache.generation) not in self._promoting
        )

    def _chain_promotion(self, asset: AssetRef, thumbnail: asyncio.Future) -> None:
        key = (asset.id, self._cache.generation)
        if key in self._promoting:
            return
        self._promoting.add(key)
        self._spawn(self._promote_after(asset, thumbnail, key))

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _await(self, future: asyncio.Future) -> None:
        await asyncio.shield(future)

    async def _promote_after(
        self,
        asset: AssetRef,
        thumbnail: asyncio.Future,
        key: tuple[str, int],
    ) -> None:
        try:
            result = await asyncio.shield(thumbnail)
            if not result.available:
                return
            if key[1] != self._cache.generation or not self.is_relevant(asset.id):
                LOGGER.debug("Skipping medium prefetch for %s; no longer relevant", asset.id)
                return
            if self._needs_medium(asset.id):
                await asyncio.shield(
                    self._fetcher.request(asset, ImageTier.MEDIUM, FetchPriority.PREFETCH)
                )
        finally:
            self._promoting.discard(key)
