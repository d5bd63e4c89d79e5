from dataclasses import dataclass

from .domain_events import DomainEvent


@dataclass(frozen=True)
class BatchPreparedEvent(DomainEvent):
    batch_size: int = 0
    library_size: int = 0


@dataclass(frozen=True)
class PhotoSwipedEvent(DomainEvent):
    asset_id: str = ""
    direction: str = ""


@dataclass(frozen=True)
class BatchCompletedEvent(DomainEvent):
    count: int = 0
    kept: int = 0
    archived: int = 0
