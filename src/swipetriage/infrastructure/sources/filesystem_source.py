"""Asset source backed by a folder of image files."""

from __future__ import annotations

import asyncio
import logging
import os
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from PIL import Image, ImageOps

from swipetriage.application.interfaces import AssetSource
from swipetriage.config import IMAGE_EXTENSIONS
from swipetriage.domain.models import AssetRef, FetchQuality, ImageTier, PermissionStatus
from swipetriage.errors import AssetEnumerationError, FetchUnavailableError

LOGGER = logging.getLogger(__name__)

_RESAMPLING = {
    FetchQuality.FAST: Image.Resampling.BILINEAR,
    FetchQuality.OPPORTUNISTIC: Image.Resampling.BICUBIC,
    FetchQuality.EXACT: Image.Resampling.LANCZOS,
}


def decode_image(path: Path, size: Tuple[int, int], quality: FetchQuality) -> Image.Image:
    """Decode *path* into an upright RGB image that fits inside *size*."""
    with Image.open(path) as img:
        if quality is FetchQuality.FAST and img.format == "JPEG":
            # Let libjpeg scale down while decoding.
            img.draft("RGB", size)
        img = ImageOps.exif_transpose(img)
        if img.mode != "RGB":
            img = img.convert("RGB")
        img.thumbnail(size, _RESAMPLING[quality])
        return img.copy()


class FilesystemAssetSource(AssetSource):
    """Serve every image under *root* as a library asset.

    Asset ids are POSIX paths relative to *root*; modification time stands in
    for the creation date.  Scanning and decoding run on *executor* (a private
    thread pool when none is given) so the event loop never blocks on disk.
    """

    def __init__(
        self,
        root: Path,
        *,
        recursive: bool = True,
        extensions: Iterable[str] = IMAGE_EXTENSIONS,
        executor: Optional[Executor] = None,
    ) -> None:
        self._root = Path(root)
        self._recursive = recursive
        self._extensions = frozenset(ext.lower() for ext in extensions)
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="swipe-decode")

    @property
    def root(self) -> Path:
        return self._root

    async def list_image_assets(self) -> List[AssetRef]:
        loop = asyncio.get_running_loop()
        try:
            assets = await loop.run_in_executor(self._executor, self._scan)
        except OSError as exc:
            raise AssetEnumerationError(f"Cannot list photos in {self._root}: {exc}") from exc
        LOGGER.debug("Found %d images under %s", len(assets), self._root)
        return assets

    async def fetch_image(
        self,
        asset: AssetRef,
        target_size: Tuple[int, int],
        quality: FetchQuality,
    ) -> Optional[Image.Image]:
        path = self._root / asset.id
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, decode_image, path, target_size, quality)
        except FileNotFoundError as exc:
            raise FetchUnavailableError(asset.id, ImageTier.for_quality(quality), "file missing") from exc
        except OSError as exc:
            tier = ImageTier.for_quality(quality)
            raise FetchUnavailableError(asset.id, tier, f"cannot decode: {exc}") from exc

    async def check_permission(self) -> PermissionStatus:
        if not self._root.exists():
            return PermissionStatus.NOT_DETERMINED
        if self._root.is_dir() and os.access(self._root, os.R_OK | os.X_OK):
            return PermissionStatus.AUTHORIZED
        return PermissionStatus.DENIED

    async def request_permission(self) -> PermissionStatus:
        # A folder cannot be granted interactively; a missing one stays refused.
        status = await self.check_permission()
        if status is PermissionStatus.NOT_DETERMINED:
            LOGGER.warning("Library folder %s does not exist", self._root)
            return PermissionStatus.DENIED
        return status

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def _scan(self) -> List[AssetRef]:
        if not self._root.is_dir():
            raise NotADirectoryError(f"{self._root} is not a directory")
        pattern = "**/*" if self._recursive else "*"
        assets: List[AssetRef] = []
        for path in self._root.glob(pattern):
            if path.suffix.lower() not in self._extensions or not path.is_file():
                continue
            relative = path.relative_to(self._root)
            if any(part.startswith(".") for part in relative.parts):
                continue
            modified = datetime.fromtimestamp(path.stat().st_mtime)
            assets.append(AssetRef(id=relative.as_posix(), created_at=modified))
        assets.sort(key=lambda asset: (-asset.created_at.timestamp(), asset.id))
        return assets
