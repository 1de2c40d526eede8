"""
OMDb ratings lookup.

Only IMDb and Rotten Tomatoes critic scores are used; everything else on a
swipe card comes from TMDB.
"""

import os
from typing import Dict, Optional

from cinematch.api_client import MovieDataClient, APIError
from cinematch.logging_config import get_logger

logger = get_logger(__name__)

OMDB_API_KEY = os.getenv("OMDB_API_KEY")
OMDB_BASE_URL = "https://www.omdbapi.com/"

EMPTY_RATINGS = {"imdb_rating": None, "rt_critic_score": None}

_omdb_client: Optional[MovieDataClient] = None


def _get_omdb_client() -> MovieDataClient:
    global _omdb_client
    if _omdb_client is None:
        # OMDb's free tier is slow to recover; fewer retries keep deck builds snappy
        _omdb_client = MovieDataClient(max_retries=2)
    return _omdb_client


def get_omdb_ratings(imdb_id: Optional[str]) -> Dict[str, Optional[str]]:
    """
    Fetch IMDb and Rotten Tomatoes scores for an IMDb id.

    Never raises: a missing key, an unknown id or a provider failure all
    return empty ratings, since ratings are decoration on a card.

    Returns:
        {"imdb_rating": "8.8" | None, "rt_critic_score": "87%" | None}
    """
    if not imdb_id or not OMDB_API_KEY:
        return dict(EMPTY_RATINGS)

    try:
        data = _get_omdb_client().get_json(
            OMDB_BASE_URL,
            params={"apikey": OMDB_API_KEY, "i": imdb_id},
            api_name="OMDb",
        )
    except APIError as e:
        logger.warning("omdb_ratings_failed", imdb_id=imdb_id, error_type=e.error_type.value)
        return dict(EMPTY_RATINGS)

    if data.get("Response") == "False":
        return dict(EMPTY_RATINGS)

    rt_score = None
    for rating in data.get("Ratings") or []:
        if rating.get("Source") == "Rotten Tomatoes":
            rt_score = rating.get("Value")
            break

    imdb_rating = data.get("imdbRating")
    return {
        "imdb_rating": None if imdb_rating in (None, "N/A") else imdb_rating,
        "rt_critic_score": rt_score,
    }
