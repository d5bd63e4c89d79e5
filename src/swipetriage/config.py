"""Default configuration values for swipe-triage."""

from __future__ import annotations

from typing import Final

# Number of photos sampled from the library for one triage session.  Smaller
# libraries simply produce a shorter batch.
DEFAULT_BATCH_SIZE: Final[int] = 10

# The interactive stack always shows the top card plus two background cards.
MAX_STACK_SIZE: Final[int] = 3

# How many assets beyond the visible stack are warmed at thumbnail tier.
MAX_PREFETCHED_PHOTOS: Final[int] = 5

# Combined entry ceiling across the thumbnail, medium and high tiers.
CACHE_SIZE_LIMIT: Final[int] = 15

# Upper bound for a single library fetch.  Expiry turns into an "unavailable"
# result so a stuck request cannot pin memory for the rest of the session.
FETCH_TIMEOUT_SEC: Final[float] = 10.0

# Prefetch fetches share this many slots; visible-card fetches never wait.
PREFETCH_CONCURRENCY: Final[int] = 2

# Bounding boxes (width, height) per resolution tier, keyed by tier value.
TIER_TARGET_SIZES: Final[dict[str, tuple[int, int]]] = {
    "thumbnail": (600, 600),
    "medium": (1500, 1500),
    "high": (2400, 2400),
}

IMAGE_EXTENSIONS: Final[frozenset[str]] = frozenset({
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".bmp",
    ".tif",
    ".tiff",
    ".webp",
})

SETTINGS_ENV_VAR: Final[str] = "SWIPE_TRIAGE_SETTINGS"
SETTINGS_DIR_NAME: Final[str] = "swipe-triage"
