"""Batch, cursor and the visible three-card stack."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from swipetriage.application.services.image_fetcher import FetchPriority, ImageFetchService
from swipetriage.application.services.prefetch_scheduler import PrefetchScheduler
from swipetriage.config import MAX_STACK_SIZE
from swipetriage.domain.models import (
    AdvanceResult,
    AssetRef,
    Batch,
    ImageTier,
    StackCard,
    SwipeDirection,
)
from swipetriage.errors import BatchExhaustedError
from swipetriage.gui.viewmodels.signal import ObservableProperty
from swipetriage.infrastructure.services.tiered_image_cache import Retention, TieredImageCache

LOGGER = logging.getLogger(__name__)


class StackManager:
    """Owns the batch and keeps ``visible_stack`` a window of it at the cursor.

    The stack is always replaced by a fresh tuple, never patched in place.
    ``is_preparing_stack`` is true only while a new stack is being derived so
    the UI can hold its animations until the swap is complete.
    """

    def __init__(
        self,
        cache: TieredImageCache,
        fetcher: ImageFetchService,
        scheduler: PrefetchScheduler,
        *,
        stack_size: int = MAX_STACK_SIZE,
    ) -> None:
        if stack_size < 1:
            raise ValueError("stack_size must be >= 1")
        self._cache = cache
        self._fetcher = fetcher
        self._scheduler = scheduler
        self._stack_size = stack_size
        self._batch = Batch()
        self._cursor = 0
        self._rendering: set[str] = set()
        self._upgrades: set[asyncio.Task] = set()
        self._advance_lock = asyncio.Lock()

        self.visible_stack: ObservableProperty[tuple[StackCard, ...]] = ObservableProperty(())
        self.is_preparing_stack = ObservableProperty(False)

        cache.bind_retention(self.retention)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def batch(self) -> Batch:
        return self._batch

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def cache(self) -> TieredImageCache:
        return self._cache

    @property
    def stack_size(self) -> int:
        return self._stack_size

    @property
    def current_card(self) -> Optional[StackCard]:
        stack = self.visible_stack.value
        return stack[0] if stack else None

    @property
    def has_more_photos(self) -> bool:
        return self._cursor < len(self._batch) - 1

    @property
    def is_last_photo(self) -> bool:
        return bool(self._batch) and self._cursor == len(self._batch) - 1

    @property
    def is_first_photo(self) -> bool:
        return bool(self._batch) and self._cursor == 0

    @property
    def remaining_photo_count(self) -> int:
        return max(0, len(self._batch) - self._cursor - 1)

    @property
    def progress(self) -> str:
        total = len(self._batch)
        if total == 0:
            return "No photos"
        return f"{min(self._cursor + 1, total)} of {total}"

    @staticmethod
    def requested_tier(position: int) -> ImageTier:
        return ImageTier.HIGH if position == 0 else ImageTier.MEDIUM

    def retention(self) -> Retention:
        """Assets the cache must keep: the stack, the prefetch window and cards in render."""
        visible = frozenset(card.asset_id for card in self.visible_stack.value)
        window = frozenset(asset.id for asset in self._scheduler.window(self._cursor, self._batch))
        return Retention(visible=visible, keep=visible | window | frozenset(self._rendering))

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    def load_batch(self, batch: Batch) -> None:
        self._batch = batch
        self._cursor = 0
        self._publish(())
        LOGGER.info("Loaded batch of %d photos", len(batch))

    def reset(self) -> None:
        """Drop the batch, the stack and every cached image in one step."""
        self._cache.clear()
        self._scheduler.reset()
        self._batch = Batch()
        self._cursor = 0
        self._publish(())

    async def prime_initial_stack(self) -> tuple[StackCard, ...]:
        """Load the cards at the cursor one after another and publish them."""
        count = min(self._stack_size, len(self._batch) - self._cursor)
        self.is_preparing_stack.value = True
        try:
            cards = []
            for position in range(count):
                cards.append(await self.load_card(self._cursor + position, position))
            self._publish(cards)
        finally:
            self.is_preparing_stack.value = False
        self._after_publish()
        return self.visible_stack.value

    async def load_card(self, index: int, position: int | None = None) -> StackCard:
        """Build the card for ``batch[index]`` at the best tier available now.

        A cached copy at a cheaper tier is returned at once and upgraded in the
        background.  Otherwise the fetch is awaited, sharing any fetch already
        in flight for the same tier.  A failed fetch yields a placeholder.
        """
        if position is None:
            position = index - self._cursor
        asset = self._batch[index]
        requested = self.requested_tier(position)
        self._rendering.add(asset.id)

        card = self._card_from_cache(asset, position, requested)
        if card is not None:
            return card

        result = await asyncio.shield(self._fetcher.request(asset, requested, FetchPriority.VISIBLE))
        if not result.available:
            LOGGER.info("Showing placeholder for %s (%s)", asset.id, result.reason)
            return StackCard(asset=asset, image=None, position=position, tier=None, requested_tier=requested)
        return StackCard(asset=asset, image=result.image, position=position, tier=requested, requested_tier=requested)

    async def advance(self, direction: SwipeDirection = SwipeDirection.NONE) -> AdvanceResult:
        """Move past the top card.  Concurrent calls queue behind one another."""
        async with self._advance_lock:
            total = len(self._batch)
            if self._cursor >= total:
                raise BatchExhaustedError("No photo left to swipe in this batch")
            LOGGER.debug("Advancing past %s (%s)", self._batch[self._cursor].id, direction.value)

            if self._cursor == total - 1:
                self._cursor = total
                self._publish(())
                self._after_publish()
                return AdvanceResult.BATCH_COMPLETE

            self._cursor += 1
            self.is_preparing_stack.value = True
            try:
                cards = await self._derive_stack(self.visible_stack.value)
                self._publish(cards)
            finally:
                self.is_preparing_stack.value = False
            self._after_publish()
            return AdvanceResult.LAST_PHOTO if self.is_last_photo else AdvanceResult.ADVANCED

    async def wait_for_background(self) -> None:
        """Wait for upgrades and prefetches started so far to settle."""
        while self._upgrades or self._scheduler.pending or self._fetcher.pending_count:
            await asyncio.gather(*list(self._upgrades), return_exceptions=True)
            await self._scheduler.drain()
            await self._fetcher.drain()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _card_from_cache(self, asset: AssetRef, position: int, requested: ImageTier) -> Optional[StackCard]:
        image = self._cache.get(asset.id, requested)
        if image is not None:
            return StackCard(asset=asset, image=image, position=position, tier=requested, requested_tier=requested)
        best = self._cache.best_available(asset.id)
        if best is None:
            return None
        tier, image = best
        card = StackCard(asset=asset, image=image, position=position, tier=tier, requested_tier=requested)
        if card.needs_upgrade:
            self._schedule_upgrade(asset, requested)
        return card

    async def _derive_stack(self, previous: Sequence[StackCard]) -> tuple[StackCard, ...]:
        by_id = {card.asset_id: card for card in previous}
        count = min(self._stack_size, len(self._batch) - self._cursor)
        cards: list[StackCard] = []
        for position in range(count):
            index = self._cursor + position
            card = by_id.get(self._batch[index].id)
            if card is not None:
                cards.append(self._reposition(card, position))
            else:
                cards.append(await self.load_card(index, position))
        return tuple(cards)

    def _reposition(self, card: StackCard, position: int) -> StackCard:
        requested = self.requested_tier(position)
        moved = card.moved_to(position, requested)
        if moved.is_placeholder or not moved.needs_upgrade:
            return moved
        image = self._cache.get(card.asset_id, requested)
        if image is not None:
            return moved.with_image(image, requested)
        self._schedule_upgrade(card.asset, requested)
        return moved

    def _schedule_upgrade(self, asset: AssetRef, tier: ImageTier) -> None:
        future = self._fetcher.request(asset, tier, FetchPriority.VISIBLE)
        task = asyncio.get_running_loop().create_task(
            self._finish_upgrade(asset.id, tier, future, self._cache.generation)
        )
        self._upgrades.add(task)
        task.add_done_callback(self._upgrades.discard)

    async def _finish_upgrade(
        self,
        asset_id: str,
        tier: ImageTier,
        future: asyncio.Future,
        generation: int,
    ) -> None:
        result = await asyncio.shield(future)
        if not result.available or generation != self._cache.generation:
            return
        if self.is_preparing_stack.value:
            # The stack being derived picks the image up from the cache on publish.
            return
        stack = self.visible_stack.value
        upgraded = tuple(
            card.with_image(result.image, tier) if self._accepts(card, asset_id, tier) else card
            for card in stack
        )
        if upgraded != stack:
            LOGGER.debug("Upgraded %s to %s", asset_id, tier.value)
            self.visible_stack.value = upgraded

    @staticmethod
    def _accepts(card: StackCard, asset_id: str, tier: ImageTier) -> bool:
        return (
            card.asset_id == asset_id
            and card.tier is not None
            and card.tier.rank < tier.rank <= card.requested_tier.rank
        )

    def _reconcile(self, card: StackCard) -> StackCard:
        if not card.needs_upgrade:
            return card
        image = self._cache.peek(card.asset_id, card.requested_tier)
        if image is None:
            return card
        return card.with_image(image, card.requested_tier)

    def _publish(self, cards: Sequence[StackCard]) -> None:
        self.visible_stack.value = tuple(self._reconcile(card) for card in cards)
        self._rendering.clear()

    def _after_publish(self) -> None:
        self._scheduler.refresh(self._cursor, self._batch)
        self._cache.evict_if_needed()
