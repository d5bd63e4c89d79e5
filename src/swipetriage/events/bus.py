import logging
import threading
import uuid
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Type

from .domain_events import DomainEvent


@dataclass
class Subscription:
    """Handle returned by subscribe(); can be used to unsubscribe."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_type: Type = DomainEvent
    handler: Callable = field(default=lambda e: None)
    active: bool = True

    def cancel(self):
        self.active = False


class EventBus:
    """Publish/subscribe hub for session events.

    Handlers subscribed to a base class also receive its subclasses, so a
    subscriber on ``DomainEvent`` observes every event.  Async handlers run on
    a small thread pool that is only created on first use.
    """

    def __init__(self, logger: logging.Logger = None, max_workers: int = 2):
        self._logger = logger or logging.getLogger(__name__)
        self._sync_handlers: Dict[Type[DomainEvent], List[Subscription]] = defaultdict(list)
        self._async_handlers: Dict[Type[DomainEvent], List[Subscription]] = defaultdict(list)
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[DomainEvent], handler: Callable, async_: bool = False) -> Subscription:
        sub = Subscription(event_type=event_type, handler=handler)
        with self._lock:
            if async_:
                self._async_handlers[event_type].append(sub)
            else:
                self._sync_handlers[event_type].append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription):
        subscription.active = False
        with self._lock:
            for store in (self._sync_handlers, self._async_handlers):
                subs = store.get(subscription.event_type, [])
                if subscription in subs:
                    subs.remove(subscription)

    def publish(self, event: DomainEvent) -> List[Future]:
        """Deliver *event*; returns futures for the async handlers."""
        sync_subs, async_subs = self._collect(type(event))

        for sub in sync_subs:
            try:
                sub.handler(event)
            except Exception as e:
                self._logger.error("Sync handler failed for %s: %s", type(event).__name__, e)

        futures: List[Future] = []
        for sub in async_subs:
            futures.append(self._ensure_executor().submit(self._safe_async_call, sub.handler, event))
        return futures

    def _collect(self, event_type: Type[DomainEvent]):
        sync_subs: List[Subscription] = []
        async_subs: List[Subscription] = []
        with self._lock:
            for klass in event_type.__mro__:
                sync_subs.extend(s for s in self._sync_handlers.get(klass, []) if s.active)
                async_subs.extend(s for s in self._async_handlers.get(klass, []) if s.active)
        return sync_subs, async_subs

    def _ensure_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="event-bus",
                )
            return self._executor

    def _safe_async_call(self, handler, event):
        try:
            handler(event)
        except Exception as e:
            self._logger.error("Async handler failed: %s", e)

    def shutdown(self):
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
