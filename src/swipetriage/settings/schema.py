"""Schema helpers for the swipe-triage settings file."""

from __future__ import annotations

from copy import deepcopy
from typing import Any

from jsonschema import Draft202012Validator

from ..config import (
    CACHE_SIZE_LIMIT,
    DEFAULT_BATCH_SIZE,
    FETCH_TIMEOUT_SEC,
    MAX_PREFETCHED_PHOTOS,
    PREFETCH_CONCURRENCY,
    TIER_TARGET_SIZES,
)

_EDGE = {"type": "integer", "minimum": 16}

SETTINGS_SCHEMA: dict[str, Any] = {
    "$id": "swipe-triage/settings.schema.json",
    "type": "object",
    "required": ["schema", "session", "cache", "tiers"],
    "properties": {
        "schema": {"const": "swipe-triage/settings@1"},
        "session": {
            "type": "object",
            "properties": {
                "batch_size": {"type": "integer", "minimum": 1},
            },
            "additionalProperties": True,
        },
        "cache": {
            "type": "object",
            "properties": {
                "size_limit": {"type": "integer", "minimum": 0},
                "max_prefetched_photos": {"type": "integer", "minimum": 0},
                "prefetch_concurrency": {"type": "integer", "minimum": 1},
                "fetch_timeout_sec": {
                    "type": ["number", "null"],
                    "exclusiveMinimum": 0,
                },
            },
            "additionalProperties": True,
        },
        "tiers": {
            "type": "object",
            "properties": {
                "thumbnail": _EDGE,
                "medium": _EDGE,
                "high": _EDGE,
            },
            "additionalProperties": False,
        },
        "library": {
            "type": "object",
            "properties": {
                "path": {"type": ["string", "null"]},
                "recursive": {"type": "boolean"},
            },
            "additionalProperties": True,
        },
    },
    "additionalProperties": True,
}

DEFAULT_SETTINGS: dict[str, Any] = {
    "schema": "swipe-triage/settings@1",
    "session": {
        "batch_size": DEFAULT_BATCH_SIZE,
    },
    "cache": {
        "size_limit": CACHE_SIZE_LIMIT,
        "max_prefetched_photos": MAX_PREFETCHED_PHOTOS,
        "prefetch_concurrency": PREFETCH_CONCURRENCY,
        "fetch_timeout_sec": FETCH_TIMEOUT_SEC,
    },
    "tiers": {name: max(size) for name, size in TIER_TARGET_SIZES.items()},
    "library": {
        "path": None,
        "recursive": True,
    },
}

_SECTIONS = ("session", "cache", "tiers", "library")

_validator = Draft202012Validator(SETTINGS_SCHEMA)


def merge_with_defaults(data: dict[str, Any] | None) -> dict[str, Any]:
    """Merge *data* with :data:`DEFAULT_SETTINGS` and validate the result."""

    merged = deepcopy(DEFAULT_SETTINGS)
    if data:
        for key, value in data.items():
            if key in _SECTIONS and isinstance(value, dict):
                target = merged.setdefault(key, {})
                for sub_key, sub_value in value.items():
                    target[sub_key] = sub_value
                continue
            merged[key] = value
    _validator.validate(merged)
    return merged


def validate_settings(data: dict[str, Any]) -> None:
    """Validate *data* against the settings schema."""

    _validator.validate(data)


__all__ = ["DEFAULT_SETTINGS", "SETTINGS_SCHEMA", "merge_with_defaults", "validate_settings"]
