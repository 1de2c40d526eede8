"""
Movie provider tools for TMDB and OMDb.
"""

from .tmdb import (
    discover_movies,
    search_movies,
    get_movie_details,
    get_watch_providers,
    GENRE_MAP,
)
from .omdb import get_omdb_ratings

__all__ = [
    'discover_movies',
    'search_movies',
    'get_movie_details',
    'get_watch_providers',
    'get_omdb_ratings',
    'GENRE_MAP',
]
