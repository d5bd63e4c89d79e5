from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple

from swipetriage.domain.models import AssetRef, FetchQuality, PermissionStatus


class AssetSource(ABC):
    """Interface for the photo library the session samples from.

    Every method is a coroutine so that implementations can hand slow work
    (disk, network, decoding) to an executor without blocking the event loop
    that owns the stack and cache.
    """

    @abstractmethod
    async def list_image_assets(self) -> List[AssetRef]:
        """Return every image asset, newest first."""
        pass

    @abstractmethod
    async def fetch_image(
        self,
        asset: AssetRef,
        target_size: Tuple[int, int],
        quality: FetchQuality,
    ) -> Optional[Any]:
        """Return a decoded image fitted inside *target_size*, or ``None``."""
        pass

    @abstractmethod
    async def check_permission(self) -> PermissionStatus:
        """Report the current library authorisation without prompting."""
        pass

    @abstractmethod
    async def request_permission(self) -> PermissionStatus:
        """Prompt for library access and return the resulting status."""
        pass
