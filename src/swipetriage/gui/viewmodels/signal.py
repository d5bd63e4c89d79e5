"""Framework-free signals for view-model state.

``Signal`` is a minimal observer list; ``ObservableProperty`` wraps a value
and announces changes so any UI toolkit can bind to the session without the
core depending on it.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Generic, TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class Signal:
    """Observer list whose handlers are called in connection order.

    A handler that raises is logged and skipped; the remaining handlers still
    run, so a misbehaving observer cannot stall the swipe loop.
    """

    def __init__(self) -> None:
        self._handlers: list[Callable[..., Any]] = []
        self._lock = threading.Lock()

    def connect(self, handler: Callable[..., Any]) -> None:
        with self._lock:
            if handler not in self._handlers:
                self._handlers.append(handler)

    def disconnect(self, handler: Callable[..., Any]) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def emit(self, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            handlers = tuple(self._handlers)
        for handler in handlers:
            try:
                handler(*args, **kwargs)
            except Exception:
                _logger.exception("Signal handler %r failed", handler)

    @property
    def handler_count(self) -> int:
        with self._lock:
            return len(self._handlers)


class ObservableProperty(Generic[T]):
    """Value holder that emits ``changed(new_value, old_value)`` on change."""

    def __init__(self, initial_value: T) -> None:
        self._value = initial_value
        self.changed = Signal()

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, new_value: T) -> None:
        if self._value == new_value:
            return
        old_value = self._value
        self._value = new_value
        self.changed.emit(new_value, old_value)
