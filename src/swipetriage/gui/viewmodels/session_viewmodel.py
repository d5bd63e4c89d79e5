"""Pure Python SessionViewModel: the surface a triage UI binds to.

Sequences permission check, batch selection, stack priming, the swipe loop
and batch completion, and mirrors the resulting state into observable
properties.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections import Counter
from typing import Any, Optional

from swipetriage.application.interfaces import AssetSource
from swipetriage.application.services.batch_selector import BatchSelector
from swipetriage.application.services.image_fetcher import ImageFetchService
from swipetriage.application.services.prefetch_scheduler import PrefetchScheduler
from swipetriage.application.services.stack_manager import StackManager
from swipetriage.application.state_machine import SessionPhase, SessionState, SessionStateMachine
from swipetriage.domain.models import AdvanceResult, PermissionStatus, StackCard, SwipeDirection
from swipetriage.errors import (
    AssetEnumerationError,
    EmptyLibraryError,
    InvalidBatchError,
    PermissionDeniedError,
)
from swipetriage.errors.handler import ErrorHandler, ErrorOccurredEvent, ErrorSeverity
from swipetriage.events.bus import EventBus
from swipetriage.events.session_events import BatchCompletedEvent, BatchPreparedEvent, PhotoSwipedEvent
from swipetriage.gui.viewmodels.base import BaseViewModel
from swipetriage.gui.viewmodels.signal import ObservableProperty, Signal
from swipetriage.infrastructure.services.tiered_image_cache import TieredImageCache
from swipetriage.settings.manager import TriageSettings

LOGGER = logging.getLogger(__name__)

PERMISSION_DENIED_MESSAGE = "Photo library access is denied. Please enable it in Settings."

_EVENT_SOURCE = "session"


class SessionViewModel(BaseViewModel):
    """Session ViewModel in pure Python, driven from one asyncio loop."""

    def __init__(
        self,
        source: AssetSource,
        event_bus: EventBus,
        stack: StackManager,
        *,
        selector: Optional[BatchSelector] = None,
        error_handler: Optional[ErrorHandler] = None,
    ) -> None:
        super().__init__()
        self._source = source
        self._event_bus = event_bus
        self._stack = stack
        self._selector = selector or BatchSelector()
        self._errors = error_handler or ErrorHandler(LOGGER, event_bus)
        self._machine = SessionStateMachine()
        self._command_lock = asyncio.Lock()
        self._tally: Counter[SwipeDirection] = Counter()

        # Observable properties
        self.visible_stack: ObservableProperty[tuple[StackCard, ...]] = ObservableProperty(())
        self.current_index = ObservableProperty(0)
        self.progress = ObservableProperty(stack.progress)
        self.is_loading = ObservableProperty(False)
        self.is_preparing_stack = ObservableProperty(False)
        self.session_state = ObservableProperty(self._machine.state)
        self.error: ObservableProperty[Optional[str]] = ObservableProperty(None)
        self.is_batch_complete = ObservableProperty(False)
        self.permission_granted = ObservableProperty(False)

        # Signals for one-shot notifications
        self.swipe_recorded = Signal()
        self.batch_completed = Signal()
        self.error_occurred = Signal()

        self._machine.state_changed.connect(self._on_state_changed)
        self._stack.visible_stack.changed.connect(self._on_stack_changed)
        self._stack.is_preparing_stack.changed.connect(self._on_preparing_changed)
        self.subscribe_event(event_bus, ErrorOccurredEvent, self._on_error_event)

    @classmethod
    def create(
        cls,
        source: AssetSource,
        event_bus: EventBus,
        settings: TriageSettings,
        *,
        rng: Optional[random.Random] = None,
    ) -> SessionViewModel:
        """Wire cache, fetcher, scheduler and stack from *settings*."""
        cache = TieredImageCache(limit=settings.cache_size_limit)
        fetcher = ImageFetchService(
            source,
            cache,
            tier_sizes=settings.tier_sizes or None,
            timeout=settings.fetch_timeout,
            prefetch_concurrency=settings.prefetch_concurrency,
        )
        scheduler = PrefetchScheduler(fetcher, cache, window_size=settings.max_prefetched_photos)
        stack = StackManager(cache, fetcher, scheduler)
        return cls(
            source,
            event_bus,
            stack,
            selector=BatchSelector(settings.batch_size, rng),
        )

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def stack(self) -> StackManager:
        return self._stack

    @property
    def state(self) -> SessionState:
        return self._machine.state

    @property
    def current_card(self) -> Optional[StackCard]:
        return self._stack.current_card

    @property
    def kept_count(self) -> int:
        return self._tally[SwipeDirection.RIGHT]

    @property
    def archived_count(self) -> int:
        return self._tally[SwipeDirection.LEFT]

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def request_permission_and_start(self) -> None:
        async with self._command_lock:
            self._machine.transition(SessionState.loading("Checking permissions"))
            try:
                status = await self._source.check_permission()
                if status is PermissionStatus.NOT_DETERMINED:
                    status = await self._source.request_permission()
            except Exception as exc:
                self._fail(PermissionDeniedError(f"Could not check photo library access: {exc}"))
                return

            self.permission_granted.value = status.is_granted
            if not status.is_granted:
                self._fail(PermissionDeniedError(PERMISSION_DENIED_MESSAGE), {"status": status.value})
                return
            await self._prepare_batch()

    async def prepare_batch(self) -> None:
        async with self._command_lock:
            await self._prepare_batch()

    async def start_new_batch(self) -> None:
        async with self._command_lock:
            self._machine.transition(SessionState.loading("Starting new batch"))
            await self._prepare_batch()

    async def advance(self, direction: SwipeDirection) -> Optional[AdvanceResult]:
        """Swipe the top card; returns ``None`` when the swipe was ignored."""
        async with self._command_lock:
            card = self._stack.current_card
            if card is None or self._machine.phase is not SessionPhase.IDLE:
                LOGGER.warning("Ignoring %s swipe in state %s", direction.value, self._machine.state)
                return None

            self._machine.transition(SessionState.transitioning())
            self._record_decision(card, direction)
            try:
                result = await self._stack.advance(direction)
            except Exception as exc:
                self._fail(exc, {"asset_id": card.asset_id})
                return None

            if result is AdvanceResult.BATCH_COMPLETE:
                self._complete_batch()
            elif result is AdvanceResult.LAST_PHOTO:
                self._machine.transition(SessionState.last_photo())
                self._machine.transition(SessionState.idle())
            else:
                self._machine.transition(SessionState.idle())
            return result

    def dispose(self) -> None:
        self._stack.visible_stack.changed.disconnect(self._on_stack_changed)
        self._stack.is_preparing_stack.changed.disconnect(self._on_preparing_changed)
        self._machine.state_changed.disconnect(self._on_state_changed)
        super().dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _prepare_batch(self) -> None:
        self._machine.transition(SessionState.loading("Preparing photos"))
        self._stack.reset()
        self._tally.clear()
        self._sync_position()

        try:
            assets = await self._source.list_image_assets()
        except AssetEnumerationError as exc:
            self._fail(exc)
            return
        except Exception as exc:
            self._fail(AssetEnumerationError(f"Could not load photos: {exc}"), {"cause": repr(exc)})
            return

        try:
            batch = self._selector.select(assets)
        except EmptyLibraryError:
            LOGGER.info("Library has no photos")
            self._machine.transition(SessionState.no_photos())
            return
        except InvalidBatchError as exc:
            self._fail(AssetEnumerationError(f"Could not load photos: {exc}"), {"cause": repr(exc)})
            return

        self._stack.load_batch(batch)
        self._sync_position()
        self._event_bus.publish(
            BatchPreparedEvent(batch_size=len(batch), library_size=len(assets), source=_EVENT_SOURCE)
        )
        LOGGER.info("Prepared batch of %d from %d photos", len(batch), len(assets))

        self._machine.transition(SessionState.transitioning())
        await self._stack.prime_initial_stack()
        if self._stack.is_last_photo:
            self._machine.transition(SessionState.last_photo())
        self._machine.transition(SessionState.idle())

    def _record_decision(self, card: StackCard, direction: SwipeDirection) -> None:
        self._tally[direction] += 1
        LOGGER.info("%s %s", (direction.decision or "skip").capitalize(), card.asset_id)
        self.swipe_recorded.emit(card.asset, direction)
        self._event_bus.publish(
            PhotoSwipedEvent(asset_id=card.asset_id, direction=direction.value, source=_EVENT_SOURCE)
        )

    def _complete_batch(self) -> None:
        count = len(self._stack.batch)
        self._machine.transition(SessionState.batch_complete())
        LOGGER.info(
            "Batch complete: %d photos, %d kept, %d archived",
            count,
            self.kept_count,
            self.archived_count,
        )
        self._event_bus.publish(
            BatchCompletedEvent(
                count=count,
                kept=self.kept_count,
                archived=self.archived_count,
                source=_EVENT_SOURCE,
            )
        )
        self.batch_completed.emit(count)

    def _fail(self, error: Exception, context: Optional[dict[str, Any]] = None) -> None:
        self._machine.fail(str(error))
        self._errors.handle(error, ErrorSeverity.ERROR, context)

    def _sync_position(self) -> None:
        self.current_index.value = self._stack.cursor
        self.progress.value = self._stack.progress

    def _on_stack_changed(self, new_stack: tuple[StackCard, ...], _old: Any) -> None:
        self.visible_stack.value = new_stack
        self._sync_position()

    def _on_preparing_changed(self, preparing: bool, _old: Any) -> None:
        self.is_preparing_stack.value = preparing

    def _on_state_changed(self, new_state: SessionState, _old: SessionState) -> None:
        self.session_state.value = new_state
        self.is_loading.value = new_state.is_loading
        self.error.value = new_state.error_message
        self.is_batch_complete.value = new_state.is_batch_complete

    def _on_error_event(self, event: ErrorOccurredEvent) -> None:
        if event.severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL):
            self.error_occurred.emit(str(event.error))
