"""Uniform random sampling of a session batch."""

from __future__ import annotations

import logging
import random
from typing import Optional, Sequence

from swipetriage.config import DEFAULT_BATCH_SIZE
from swipetriage.domain.models import AssetRef, Batch
from swipetriage.errors import EmptyLibraryError

LOGGER = logging.getLogger(__name__)


class BatchSelector:
    """Draw ``batch_size`` distinct assets uniformly at random.

    Indices are drawn one at a time and repeats are rejected until enough
    distinct ones are collected.  The batch keeps the order of the draws.
    This is exact sampling without replacement and cheap while the batch is
    small compared to the library; it only slows down as the two converge.
    """

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE, rng: Optional[random.Random] = None) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._batch_size = batch_size
        self._rng = rng or random.Random()

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def select(self, assets: Sequence[AssetRef]) -> Batch:
        if not assets:
            raise EmptyLibraryError("The library has no photos to choose from")
        k = min(self._batch_size, len(assets))
        chosen: dict[int, None] = {}
        draws = 0
        while len(chosen) < k:
            chosen.setdefault(self._rng.randrange(len(assets)), None)
            draws += 1
        LOGGER.debug("Sampled %d of %d assets in %d draws", k, len(assets), draws)
        return Batch.of([assets[index] for index in chosen])
