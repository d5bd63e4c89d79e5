from .models import (
    AdvanceResult,
    AssetRef,
    Batch,
    FetchQuality,
    FetchResult,
    FetchStatus,
    ImageTier,
    PermissionStatus,
    StackCard,
    SwipeDirection,
)

__all__ = [
    "AdvanceResult",
    "AssetRef",
    "Batch",
    "FetchQuality",
    "FetchResult",
    "FetchStatus",
    "ImageTier",
    "PermissionStatus",
    "StackCard",
    "SwipeDirection",
]
