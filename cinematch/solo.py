"""
Solo mode: a user's saved and dismissed lists, and decks that skip both.

Saved lists also feed the pre-match engine for group sessions.
"""

from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from cinematch import movies
from cinematch.deck_builder import DeckBuilder
from cinematch.exceptions import InvalidSourceError, MovieNotFoundError
from cinematch.logging_config import get_logger
from cinematch.models import db, DismissedMovie, SavedMovie
from cinematch.schemas import FilterSource, MovieFilters, MovieRecord
from cinematch.tools import tmdb

logger = get_logger(__name__)

SOLO_DECK_SIZE = 30
SOLO_SOURCES = ("random", "genre", "similar")

# Saved and dismissed lists share everything except the table
_LIST_MODELS = {
    "watchlist": SavedMovie,
    "dismissed": DismissedMovie,
}


def _model(kind: str):
    try:
        return _LIST_MODELS[kind]
    except KeyError:
        raise ValueError(f"Unknown solo list: {kind}")


def add_to_list(kind: str, user_id: str, movie_id: int) -> bool:
    """
    Add a movie to one of the user's lists.

    Returns:
        True when the row was created, False when it was already there
    """
    model = _model(kind)
    if model.query.filter_by(user_id=user_id, movie_id=movie_id).first() is not None:
        return False

    db.session.add(model(user_id=user_id, movie_id=movie_id))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return False

    logger.info("solo_list_added", list=kind, movie_id=movie_id)
    return True


def remove_from_list(kind: str, user_id: str, movie_id: int) -> bool:
    model = _model(kind)
    deleted = model.query.filter_by(user_id=user_id, movie_id=movie_id).delete(synchronize_session=False)
    db.session.commit()
    return deleted > 0


def get_list(kind: str, user_id: str) -> List[dict]:
    """Entries newest first, each with its movie record when available."""
    model = _model(kind)
    timestamp = model.added_at if model is SavedMovie else model.dismissed_at
    rows = model.query.filter_by(user_id=user_id).order_by(timestamp.desc(), model.id.desc()).all()
    if not rows:
        return []

    records = {m.tmdb_id: m for m in movies.get_movies_by_ids([row.movie_id for row in rows])}
    items = []
    for row in rows:
        item = row.to_dict()
        record = records.get(row.movie_id)
        item["movie"] = record.to_dict() if record else None
        items.append(item)
    return items


def excluded_movie_ids(user_id: str) -> set:
    saved = db.session.query(SavedMovie.movie_id).filter(SavedMovie.user_id == user_id)
    dismissed = db.session.query(DismissedMovie.movie_id).filter(DismissedMovie.user_id == user_id)
    return {movie_id for (movie_id,) in saved} | {movie_id for (movie_id,) in dismissed}


def solo_filters(source: str, genre: Optional[int] = None, movie: Optional[str] = None) -> MovieFilters:
    """
    Discovery filters for a solo deck.

    - random: no filters
    - genre: a single TMDB genre id
    - similar: the first two genres of the best search hit for ``movie``
    """
    if source == "random":
        return MovieFilters()

    if source == "genre":
        if genre is None:
            raise InvalidSourceError("genre required")
        return MovieFilters(genres=[genre])

    if source == "similar":
        if not movie:
            raise InvalidSourceError("movie required")
        results = tmdb.search_movies(movie)
        if not results:
            raise MovieNotFoundError()
        return MovieFilters(genres=results[0].genre_ids[:2])

    raise InvalidSourceError(f"Unknown solo source: {source}")


def solo_deck(user_id: str, source: str = "random", genre: Optional[int] = None,
              movie: Optional[str] = None, builder: Optional[DeckBuilder] = None,
              limit: int = SOLO_DECK_SIZE) -> List[MovieRecord]:
    """A fresh swipe deck that skips everything the user saved or dismissed."""
    filters = solo_filters(source, genre=genre, movie=movie)
    builder = builder or DeckBuilder()
    deck = builder.build(FilterSource(filters=filters), limit, exclude=excluded_movie_ids(user_id))
    return movies.get_movies_by_ids(deck)
