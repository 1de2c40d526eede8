"""
Domain errors for swiping sessions and deck building.

Every error carries a stable machine-readable ``code`` and the HTTP status
the API layer should answer with. Client errors never mutate state.
"""

from typing import Optional


class MatchError(Exception):
    """Base class for all session/deck errors surfaced to callers."""

    code = "error"
    status_code = 500

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)

    def to_dict(self):
        return {"status": "error", "error": self.code, "message": self.message}


class SessionNotFoundError(MatchError):
    """Session not found."""

    code = "not_found"
    status_code = 404


class MovieNotFoundError(MatchError):
    """Movie not found."""

    code = "not_found"
    status_code = 404


class ForbiddenError(MatchError):
    """Not allowed to perform this action."""

    code = "forbidden"
    status_code = 403


class InvalidStateError(MatchError):
    """Session is not in the required state."""

    code = "invalid_state"
    status_code = 409


class NotInLobbyError(InvalidStateError):
    """Session is not in the lobby."""

    code = "not_in_lobby"


class AlreadyStartedError(InvalidStateError):
    """Session already started."""

    code = "already_started"


class NotSwipingError(InvalidStateError):
    """Session is not in swiping state."""

    code = "not_swiping"


class InvalidSwipeError(MatchError):
    """Movie is not part of this session's deck."""

    code = "invalid_swipe"
    status_code = 400


class InvalidSourceError(MatchError):
    """Deck source could not be used."""

    code = "invalid_source"
    status_code = 400


class EmptyDeckError(MatchError):
    """Could not build movie deck."""

    code = "empty_deck"
    status_code = 422


class UpstreamError(MatchError):
    """Movie provider unavailable."""

    code = "upstream_unavailable"
    status_code = 502


class RoomCodeExhaustedError(MatchError):
    """Could not allocate a unique room code."""

    code = "room_code_exhausted"
    status_code = 503
