from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Optional, Sequence

from swipetriage.errors import InvalidBatchError


class ImageTier(str, Enum):
    """Resolution tiers, cheapest first."""

    THUMBNAIL = "thumbnail"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    @property
    def quality(self) -> FetchQuality:
        return _TIER_QUALITY[self]

    def below(self) -> tuple[ImageTier, ...]:
        """Tiers strictly cheaper than this one, best first."""
        return tuple(reversed(_TIER_ORDER[: self.rank]))

    @classmethod
    def for_quality(cls, quality: FetchQuality) -> ImageTier:
        return next(tier for tier in _TIER_ORDER if _TIER_QUALITY[tier] is quality)


class FetchQuality(str, Enum):
    """How hard the source should work for a given request.

    ``FAST`` favours latency over fidelity, ``OPPORTUNISTIC`` balances the two
    and ``EXACT`` asks for a faithful resample at the requested size.
    """

    FAST = "fast"
    OPPORTUNISTIC = "opportunistic"
    EXACT = "exact"


_TIER_ORDER: tuple[ImageTier, ...] = (ImageTier.THUMBNAIL, ImageTier.MEDIUM, ImageTier.HIGH)
_TIER_QUALITY: dict[ImageTier, FetchQuality] = {
    ImageTier.THUMBNAIL: FetchQuality.FAST,
    ImageTier.MEDIUM: FetchQuality.OPPORTUNISTIC,
    ImageTier.HIGH: FetchQuality.EXACT,
}


class SwipeDirection(str, Enum):
    LEFT = "left"  # archive
    RIGHT = "right"  # keep
    NONE = "none"

    @property
    def decision(self) -> Optional[str]:
        if self is SwipeDirection.LEFT:
            return "archive"
        if self is SwipeDirection.RIGHT:
            return "keep"
        return None


class PermissionStatus(str, Enum):
    AUTHORIZED = "authorized"
    LIMITED = "limited"
    DENIED = "denied"
    RESTRICTED = "restricted"
    NOT_DETERMINED = "not_determined"

    @property
    def is_granted(self) -> bool:
        return self in (PermissionStatus.AUTHORIZED, PermissionStatus.LIMITED)


class FetchStatus(str, Enum):
    CACHED = "cached"
    LOADED = "loaded"
    UNAVAILABLE = "unavailable"


class AdvanceResult(str, Enum):
    ADVANCED = "advanced"
    LAST_PHOTO = "last_photo"
    BATCH_COMPLETE = "batch_complete"


@dataclass(frozen=True)
class AssetRef:
    """Opaque handle for one library photo."""

    id: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class FetchResult:
    asset_id: str
    tier: ImageTier
    image: Any = None
    status: FetchStatus = FetchStatus.UNAVAILABLE
    reason: str = ""

    @property
    def available(self) -> bool:
        return self.image is not None and self.status is not FetchStatus.UNAVAILABLE

    @classmethod
    def unavailable(cls, asset_id: str, tier: ImageTier, reason: str) -> FetchResult:
        return cls(asset_id=asset_id, tier=tier, status=FetchStatus.UNAVAILABLE, reason=reason)


@dataclass(frozen=True)
class StackCard:
    """One card of the visible stack.

    ``tier`` is the tier of the image actually held, which may be cheaper than
    ``requested_tier`` while a background upgrade is running.  A card whose
    fetch failed carries no image and no tier and is drawn as a placeholder.
    """

    asset: AssetRef
    image: Any = field(compare=False)
    position: int
    tier: Optional[ImageTier]
    requested_tier: ImageTier

    @property
    def asset_id(self) -> str:
        return self.asset.id

    @property
    def is_placeholder(self) -> bool:
        return self.image is None

    @property
    def needs_upgrade(self) -> bool:
        return self.tier is not None and self.tier.rank < self.requested_tier.rank

    def moved_to(self, position: int, requested_tier: ImageTier) -> StackCard:
        return replace(self, position=position, requested_tier=requested_tier)

    def with_image(self, image: Any, tier: ImageTier) -> StackCard:
        return replace(self, image=image, tier=tier)


@dataclass(frozen=True)
class Batch:
    """Ordered, duplicate-free sample of library assets."""

    assets: tuple[AssetRef, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        ids = [asset.id for asset in self.assets]
        if len(ids) != len(set(ids)):
            raise InvalidBatchError("Batch contains duplicate assets")

    @classmethod
    def of(cls, assets: Sequence[AssetRef]) -> Batch:
        return cls(assets=tuple(assets))

    def __len__(self) -> int:
        return len(self.assets)

    def __getitem__(self, index: int) -> AssetRef:
        return self.assets[index]

    def __iter__(self) -> Iterator[AssetRef]:
        return iter(self.assets)

    def __bool__(self) -> bool:
        return bool(self.assets)

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(asset.id for asset in self.assets)

    def window(self, start: int, stop: int) -> tuple[AssetRef, ...]:
        """Assets in ``[start, stop)`` clipped to the batch bounds."""
        start = max(0, start)
        return self.assets[start:max(start, stop)]
