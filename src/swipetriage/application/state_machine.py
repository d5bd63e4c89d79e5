"""Session-level state machine driving what the UI renders."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from swipetriage.errors import InvalidTransitionError
from swipetriage.gui.viewmodels.signal import Signal

LOGGER = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    TRANSITIONING = "transitioning"
    LAST_PHOTO = "last_photo"
    BATCH_COMPLETE = "batch_complete"
    NO_PHOTOS = "no_photos"
    ERROR = "error"


@dataclass(frozen=True)
class SessionState:
    """A phase plus its payload (the loading reason or the error message)."""

    phase: SessionPhase
    message: Optional[str] = None

    @classmethod
    def idle(cls) -> SessionState:
        return cls(SessionPhase.IDLE)

    @classmethod
    def loading(cls, reason: str) -> SessionState:
        return cls(SessionPhase.LOADING, reason)

    @classmethod
    def transitioning(cls) -> SessionState:
        return cls(SessionPhase.TRANSITIONING)

    @classmethod
    def last_photo(cls) -> SessionState:
        return cls(SessionPhase.LAST_PHOTO)

    @classmethod
    def batch_complete(cls) -> SessionState:
        return cls(SessionPhase.BATCH_COMPLETE)

    @classmethod
    def no_photos(cls) -> SessionState:
        return cls(SessionPhase.NO_PHOTOS, "No photos found in your library.")

    @classmethod
    def error(cls, message: str) -> SessionState:
        return cls(SessionPhase.ERROR, message)

    @property
    def is_loading(self) -> bool:
        return self.phase in (SessionPhase.LOADING, SessionPhase.TRANSITIONING)

    @property
    def is_batch_complete(self) -> bool:
        return self.phase is SessionPhase.BATCH_COMPLETE

    @property
    def error_message(self) -> Optional[str]:
        return self.message if self.phase is SessionPhase.ERROR else None

    @property
    def is_terminal(self) -> bool:
        """Terminal until the app starts another batch (or retries)."""
        return self.phase in (SessionPhase.BATCH_COMPLETE, SessionPhase.NO_PHOTOS, SessionPhase.ERROR)

    def __str__(self) -> str:
        if self.message:
            return f"{self.phase.value}({self.message})"
        return self.phase.value


_ALLOWED: dict[SessionPhase, frozenset[SessionPhase]] = {
    SessionPhase.IDLE: frozenset({
        SessionPhase.LOADING, SessionPhase.TRANSITIONING, SessionPhase.ERROR,
    }),
    SessionPhase.LOADING: frozenset({
        SessionPhase.LOADING, SessionPhase.TRANSITIONING, SessionPhase.NO_PHOTOS, SessionPhase.ERROR,
    }),
    SessionPhase.TRANSITIONING: frozenset({
        SessionPhase.IDLE,
        SessionPhase.LAST_PHOTO,
        SessionPhase.BATCH_COMPLETE,
        SessionPhase.NO_PHOTOS,
        SessionPhase.ERROR,
    }),
    SessionPhase.LAST_PHOTO: frozenset({
        SessionPhase.IDLE, SessionPhase.LOADING, SessionPhase.ERROR,
    }),
    SessionPhase.BATCH_COMPLETE: frozenset({SessionPhase.LOADING, SessionPhase.ERROR}),
    SessionPhase.NO_PHOTOS: frozenset({SessionPhase.LOADING, SessionPhase.ERROR}),
    SessionPhase.ERROR: frozenset({SessionPhase.LOADING}),
}


class SessionStateMachine:
    """Validates and announces session transitions.

    ``state_changed(new_state, old_state)`` fires after every accepted
    transition; illegal moves raise :class:`InvalidTransitionError`.
    """

    def __init__(self, initial: SessionState | None = None) -> None:
        self._state = initial or SessionState.idle()
        self.state_changed = Signal()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    def can_transition(self, phase: SessionPhase) -> bool:
        return phase in _ALLOWED[self._state.phase]

    def transition(self, new_state: SessionState) -> SessionState:
        old_state = self._state
        if not self.can_transition(new_state.phase):
            raise InvalidTransitionError(f"Cannot move from {old_state} to {new_state}")
        self._state = new_state
        LOGGER.debug("Session %s -> %s", old_state, new_state)
        self.state_changed.emit(new_state, old_state)
        return new_state

    def fail(self, message: str) -> SessionState:
        """Move to ERROR from wherever the session is."""
        if self._state.phase is not SessionPhase.ERROR:
            return self.transition(SessionState.error(message))
        old_state = self._state
        self._state = SessionState.error(message)
        if self._state != old_state:
            self.state_changed.emit(self._state, old_state)
        return self._state
