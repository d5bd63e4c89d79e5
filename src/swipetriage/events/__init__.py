from .bus import EventBus, Subscription
from .domain_events import DomainEvent
from .session_events import (
    BatchCompletedEvent,
    BatchPreparedEvent,
    PhotoSwipedEvent,
)

__all__ = [
    "BatchCompletedEvent",
    "BatchPreparedEvent",
    "DomainEvent",
    "EventBus",
    "PhotoSwipedEvent",
    "Subscription",
]
