"""
Cinematch - group movie swiping

A Flask service where a group swipes on a shared deck of movies and gets
back the movies everyone liked.
"""

__version__ = "1.0.0"

from .matching import compute_matches, compute_prematches
from .exceptions import (
    MatchError,
    SessionNotFoundError,
    ForbiddenError,
    InvalidStateError,
    NotInLobbyError,
    AlreadyStartedError,
    NotSwipingError,
    InvalidSwipeError,
    InvalidSourceError,
    EmptyDeckError,
    UpstreamError,
)

__all__ = [
    "compute_matches",
    "compute_prematches",
    "MatchError",
    "SessionNotFoundError",
    "ForbiddenError",
    "InvalidStateError",
    "NotInLobbyError",
    "AlreadyStartedError",
    "NotSwipingError",
    "InvalidSwipeError",
    "InvalidSourceError",
    "EmptyDeckError",
    "UpstreamError",
]
