"""Custom exception hierarchy for swipe-triage."""

from __future__ import annotations


class SwipeTriageError(Exception):
    """Base class for all custom errors raised by swipe-triage."""


# --- 3-layer hierarchy ---

class DomainError(SwipeTriageError):
    """Base class for domain-level errors."""


class InfrastructureError(SwipeTriageError):
    """Base class for infrastructure-level errors."""


class ApplicationError(SwipeTriageError):
    """Base class for application-level errors."""


# --- Domain errors ---

class EmptyLibraryError(DomainError):
    """Raised when the library holds no image assets to sample from."""


class InvalidBatchError(DomainError):
    """Raised when a batch would contain the same asset twice."""


# --- Infrastructure errors ---

class AssetEnumerationError(InfrastructureError):
    """Raised when the asset source cannot list the library."""


class FetchUnavailableError(InfrastructureError):
    """Raised by a source when an asset cannot be delivered at a tier."""

    def __init__(self, asset_id: str, tier: object, reason: str = "") -> None:
        self.asset_id = asset_id
        self.tier = tier
        self.reason = reason
        message = f"{asset_id} unavailable at {getattr(tier, 'value', tier)}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# --- Application errors ---

class PermissionDeniedError(ApplicationError):
    """Raised when the user declined access to the photo library."""


class InvalidTransitionError(ApplicationError):
    """Raised when the session state machine is asked for an illegal move."""


class BatchExhaustedError(ApplicationError):
    """Raised when a swipe arrives after the batch has been completed."""


# --- Settings ---

class SettingsError(SwipeTriageError):
    """Base class for settings related failures."""


class SettingsLoadError(SettingsError):
    """Raised when the settings file cannot be parsed or loaded."""


class SettingsValidationError(SettingsError):
    """Raised when settings data fails schema validation."""
