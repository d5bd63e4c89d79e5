import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from swipetriage.events.bus import EventBus
from swipetriage.events.domain_events import DomainEvent


class ErrorSeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ErrorOccurredEvent(DomainEvent):
    error: Optional[Exception] = None
    severity: ErrorSeverity = ErrorSeverity.ERROR
    context: dict = field(default_factory=dict)


class ErrorHandler:
    """Single sink for session-level failures: log, publish, notify the UI."""

    def __init__(self, logger: logging.Logger, event_bus: EventBus):
        self._logger = logger
        self._events = event_bus
        self._ui_callback: Optional[Callable[[str, ErrorSeverity], None]] = None

    def register_ui_callback(self, callback: Callable[[str, ErrorSeverity], None]):
        self._ui_callback = callback

    def handle(self, error: Exception, severity: ErrorSeverity = ErrorSeverity.ERROR, context: dict = None):
        context = dict(context or {})

        log_method = getattr(self._logger, severity.value, self._logger.error)
        if context:
            log_method("%s: %s (%s)", error.__class__.__name__, error, context)
        else:
            log_method("%s: %s", error.__class__.__name__, error)

        self._events.publish(ErrorOccurredEvent(
            error=error,
            severity=severity,
            context=context,
            source="error-handler",
        ))

        if self._ui_callback and severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL):
            self._ui_callback(str(error), severity)
