"""Read-only access to the swipe-triage settings file."""

from __future__ import annotations

import json
import logging
import os
import sys
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from jsonschema import ValidationError

from ..config import SETTINGS_DIR_NAME, SETTINGS_ENV_VAR
from ..domain.models import ImageTier
from ..errors import SettingsLoadError, SettingsValidationError
from .schema import DEFAULT_SETTINGS, merge_with_defaults

LOGGER = logging.getLogger(__name__)


def default_settings_path() -> Path:
    """Return the settings.json location, honouring ``SWIPE_TRIAGE_SETTINGS``."""

    override = os.environ.get(SETTINGS_ENV_VAR)
    if override:
        return Path(override).expanduser()
    if os.name == "nt":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / SETTINGS_DIR_NAME / "settings.json"
        return Path.home() / "AppData" / "Roaming" / SETTINGS_DIR_NAME / "settings.json"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / SETTINGS_DIR_NAME / "settings.json"
    base = os.environ.get("XDG_CONFIG_HOME")
    if base:
        return Path(base) / SETTINGS_DIR_NAME / "settings.json"
    return Path.home() / ".config" / SETTINGS_DIR_NAME / "settings.json"


@dataclass(frozen=True)
class TriageSettings:
    """Typed view over the values a session is built from."""

    batch_size: int
    cache_size_limit: int
    max_prefetched_photos: int
    prefetch_concurrency: int
    fetch_timeout: Optional[float]
    tier_sizes: dict[ImageTier, tuple[int, int]] = field(default_factory=dict)
    library_path: Optional[Path] = None
    recursive: bool = True


class SettingsManager:
    """Load and validate user settings.  The file is never written back."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._data: dict[str, Any] = deepcopy(DEFAULT_SETTINGS)

    @property
    def path(self) -> Path:
        return self._path or default_settings_path()

    @property
    def data(self) -> dict[str, Any]:
        return deepcopy(self._data)

    def load(self) -> None:
        """Read the settings JSON, falling back to defaults when it is missing."""

        path = self.path
        payload = None
        if path.exists():
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                raise SettingsLoadError(f"Cannot read settings from {path}: {exc}") from exc
            if not isinstance(payload, dict):
                raise SettingsLoadError(f"Settings in {path} must be a JSON object")
        else:
            LOGGER.debug("No settings file at %s; using defaults", path)
        try:
            self._data = merge_with_defaults(payload)
        except ValidationError as exc:
            raise SettingsValidationError(f"Invalid settings in {path}: {exc.message}") from exc

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return the value for *key*, supporting dotted access for nested keys."""

        target = self._data
        parts = key.split(".")
        for index, part in enumerate(parts):
            if not isinstance(target, dict) or part not in target:
                return default
            value = target[part]
            if index == len(parts) - 1:
                return value
            target = value
        return default

    def triage_settings(self) -> TriageSettings:
        library_path = self.get("library.path")
        return TriageSettings(
            batch_size=self.get("session.batch_size"),
            cache_size_limit=self.get("cache.size_limit"),
            max_prefetched_photos=self.get("cache.max_prefetched_photos"),
            prefetch_concurrency=self.get("cache.prefetch_concurrency"),
            fetch_timeout=self.get("cache.fetch_timeout_sec"),
            tier_sizes={
                tier: (self.get(f"tiers.{tier.value}"),) * 2 for tier in ImageTier
            },
            library_path=Path(library_path).expanduser() if library_path else None,
            recursive=bool(self.get("library.recursive", True)),
        )


__all__ = ["SettingsManager", "TriageSettings", "default_settings_path"]
