"""User settings for swipe-triage."""

from .manager import SettingsManager, TriageSettings, default_settings_path
from .schema import DEFAULT_SETTINGS, SETTINGS_SCHEMA, merge_with_defaults, validate_settings

__all__ = [
    "DEFAULT_SETTINGS",
    "SETTINGS_SCHEMA",
    "SettingsManager",
    "TriageSettings",
    "default_settings_path",
    "merge_with_defaults",
    "validate_settings",
]
