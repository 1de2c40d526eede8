"""
Database models for Cinematch.

- GroupSession: a swiping round with its room code, host, status and fixed deck
- SessionParticipant: a user's membership in a session (+ completion flag)
- Swipe: one user's verdict on one movie in one session (upserted)
- WatchedMovie: the movie a session's group finally picked
- SavedMovie / DismissedMovie: a user's solo-mode lists
- CachedMovie: durable cache of enriched movie records keyed by TMDB id
"""

import uuid
from datetime import datetime
from enum import Enum
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


class SessionStatus(str, Enum):
    """Lifecycle of a swiping session. Transitions only move forward."""
    LOBBY = "lobby"
    SWIPING = "swiping"
    REVEALED = "revealed"

    def can_transition_to(self, target: "SessionStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS = {
    SessionStatus.LOBBY: {SessionStatus.SWIPING},
    SessionStatus.SWIPING: {SessionStatus.REVEALED},
    SessionStatus.REVEALED: set(),
}


def _new_id():
    return str(uuid.uuid4())


class GroupSession(db.Model):
    """
    A group swiping round. The deck is fixed at creation and never rewritten;
    only ``status`` changes afterwards.
    """
    __tablename__ = 'sessions'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    code = db.Column(db.String(12), nullable=False, unique=True, index=True)
    host_id = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SessionStatus.LOBBY.value)
    deck = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    participants = db.relationship(
        'SessionParticipant',
        backref='session',
        lazy='select',
        order_by='SessionParticipant.id',
    )

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'hostId': self.host_id,
            'status': self.status,
            'deck': list(self.deck or []),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<GroupSession {self.code} ({self.status})>'


class SessionParticipant(db.Model):
    __tablename__ = 'session_participants'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(36), db.ForeignKey('sessions.id'), nullable=False, index=True)
    user_id = db.Column(db.String(255), nullable=False)
    nickname = db.Column(db.String(255), nullable=False)
    completed = db.Column(db.Boolean, default=False, nullable=False)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # A user joins a session at most once
    __table_args__ = (
        db.UniqueConstraint('session_id', 'user_id', name='uq_session_participant'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'nickname': self.nickname,
            'completed': self.completed,
        }

    def __repr__(self):
        return f'<SessionParticipant {self.nickname} ({self.session_id})>'


class Swipe(db.Model):
    """
    One verdict per (session, user, movie). Re-swiping updates ``liked`` in
    place through an INSERT .. ON CONFLICT DO UPDATE.
    """
    __tablename__ = 'swipes'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(36), db.ForeignKey('sessions.id'), nullable=False, index=True)
    user_id = db.Column(db.String(255), nullable=False)
    movie_id = db.Column(db.Integer, nullable=False)
    liked = db.Column(db.Boolean, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('session_id', 'user_id', 'movie_id', name='uq_swipe'),
    )

    def __repr__(self):
        return f'<Swipe {self.user_id} {self.movie_id} liked={self.liked}>'


class WatchedMovie(db.Model):
    __tablename__ = 'watched_movies'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(36), db.ForeignKey('sessions.id'), nullable=False, index=True)
    movie_id = db.Column(db.Integer, nullable=False)
    watched_by = db.Column(db.JSON, nullable=False, default=list)
    watched_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'sessionId': self.session_id,
            'movieId': self.movie_id,
            'watchedAt': self.watched_at.isoformat() if self.watched_at else None,
            'watchedWith': len(self.watched_by or []),
        }


class SavedMovie(db.Model):
    """A movie a user saved in solo mode (their watchlist)."""
    __tablename__ = 'solo_watchlist'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(255), nullable=False, index=True)
    movie_id = db.Column(db.Integer, nullable=False)
    added_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'movie_id', name='uq_watchlist_movie'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'movieId': self.movie_id,
            'addedAt': self.added_at.isoformat() if self.added_at else None,
        }


class DismissedMovie(db.Model):
    """A movie a user swiped away in solo mode."""
    __tablename__ = 'solo_dismissed'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(255), nullable=False, index=True)
    movie_id = db.Column(db.Integer, nullable=False)
    dismissed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'movie_id', name='uq_dismissed_movie'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'movieId': self.movie_id,
            'dismissedAt': self.dismissed_at.isoformat() if self.dismissed_at else None,
        }


class CachedMovie(db.Model):
    """Enriched movie record (TMDB details + providers + OMDb ratings)."""
    __tablename__ = 'cached_movies'

    id = db.Column(db.Integer, primary_key=True)
    tmdb_id = db.Column(db.Integer, nullable=False, unique=True, index=True)
    imdb_id = db.Column(db.String(20), nullable=True)
    title = db.Column(db.String(512), nullable=False)
    year = db.Column(db.Integer, nullable=True)
    poster_url = db.Column(db.String(512), nullable=True)
    backdrop_url = db.Column(db.String(512), nullable=True)
    genres = db.Column(db.JSON, nullable=False, default=list)
    synopsis = db.Column(db.Text, nullable=True)
    runtime = db.Column(db.Integer, nullable=True)
    imdb_rating = db.Column(db.String(10), nullable=True)
    rt_critic_score = db.Column(db.String(10), nullable=True)
    streaming_services = db.Column(db.JSON, nullable=False, default=list)
    cached_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<CachedMovie {self.tmdb_id} {self.title}>'
