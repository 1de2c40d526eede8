import os
import logging
from typing import Any, Dict, List, Optional

from cinematch.api_client import MovieDataClient, AuthError
from cinematch.cache import get_cache
from cinematch.schemas import CandidateMovie, DiscoverPage, MovieFilters

logger = logging.getLogger(__name__)

TMDB_API_KEY = os.getenv("TMDB_API_KEY")
TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p"

# Discovery pages churn with popularity; keep them for an hour only
DISCOVER_CACHE_TTL = 3600

GENRE_MAP = {
    28: "Action",
    12: "Adventure",
    16: "Animation",
    35: "Comedy",
    80: "Crime",
    99: "Documentary",
    18: "Drama",
    10751: "Family",
    14: "Fantasy",
    36: "History",
    27: "Horror",
    10402: "Music",
    9648: "Mystery",
    10749: "Romance",
    878: "Sci-Fi",
    10770: "TV Movie",
    53: "Thriller",
    10752: "War",
    37: "Western",
}

_tmdb_client = None


def _get_tmdb_client() -> MovieDataClient:
    """Get or create the shared TMDB client instance."""
    global _tmdb_client
    if _tmdb_client is None:
        _tmdb_client = MovieDataClient()
    return _tmdb_client


def _tmdb_get(endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    if not TMDB_API_KEY:
        raise AuthError("TMDb API Key not configured.")
    query = {"api_key": TMDB_API_KEY}
    query.update(params or {})
    return _get_tmdb_client().get_json(f"{TMDB_BASE_URL}{endpoint}", params=query, api_name="TMDB")


def get_poster_url(path: Optional[str], size: str = "w342") -> Optional[str]:
    if not path:
        return None
    return f"{TMDB_IMAGE_BASE}/{size}{path}"


def get_backdrop_url(path: Optional[str], size: str = "w780") -> Optional[str]:
    if not path:
        return None
    return f"{TMDB_IMAGE_BASE}/{size}{path}"


def get_year(release_date: Optional[str]) -> Optional[int]:
    """'2010-07-16' -> 2010; empty or malformed dates -> None."""
    if not release_date or len(release_date) < 4 or not release_date[:4].isdigit():
        return None
    return int(release_date[:4])


def get_genre_names(genre_ids: List[int]) -> List[str]:
    return [GENRE_MAP[g] for g in genre_ids if g in GENRE_MAP]


def _to_candidate(raw: Dict[str, Any]) -> CandidateMovie:
    return CandidateMovie(
        tmdb_id=raw["id"],
        title=raw.get("title") or "",
        year=get_year(raw.get("release_date")),
        poster_url=get_poster_url(raw.get("poster_path"), "w185"),
        genre_ids=raw.get("genre_ids") or [],
        overview=raw.get("overview"),
        vote_average=raw.get("vote_average"),
    )


def discover_movies(filters: MovieFilters, page: int = 1) -> DiscoverPage:
    """
    Fetch one page of TMDB discovery results, most popular first.

    Genres are OR-ed by default; ``genre_match="all"`` AND-s them
    (TMDB: pipe = OR, comma = AND).

    Raises:
        APIError: when TMDB cannot be reached or rejects the request
    """
    genre_key = "-".join(str(g) for g in filters.genres)
    cache_parts = (genre_key, filters.genre_match, filters.year_from, filters.year_to, page)
    cache = get_cache()
    cached = cache.get(cache_parts, source="discover")
    if cached is not None:
        return cached

    params = {
        "sort_by": "popularity.desc",
        "include_adult": "false",
        "include_video": "false",
        "page": str(page),
    }
    if filters.genres:
        separator = "," if filters.genre_match == "all" else "|"
        params["with_genres"] = separator.join(str(g) for g in filters.genres)
    if filters.year_from:
        params["primary_release_date.gte"] = f"{filters.year_from}-01-01"
    if filters.year_to:
        params["primary_release_date.lte"] = f"{filters.year_to}-12-31"

    data = _tmdb_get("/discover/movie", params)
    result = DiscoverPage(
        movie_ids=[m["id"] for m in data.get("results") or [] if m.get("id") is not None],
        total_pages=int(data.get("total_pages") or 0),
    )
    cache.set(cache_parts, result, source="discover", ttl=DISCOVER_CACHE_TTL)
    return result


def search_movies(title: str) -> List[CandidateMovie]:
    """
    Search TMDB by title. Results keep TMDB's relevance order.

    Raises:
        APIError: when TMDB cannot be reached or rejects the request
    """
    cache = get_cache()
    cached = cache.get((title,), source="search")
    if cached is not None:
        logger.debug("TMDB search cache hit for '%s'", title)
        return cached

    data = _tmdb_get("/search/movie", {"query": title, "include_adult": "false"})
    results = [_to_candidate(r) for r in data.get("results") or [] if r.get("id") is not None]
    cache.set((title,), results, source="search")
    return results


def get_movie_details(tmdb_id: int) -> Dict[str, Any]:
    """Raw TMDB movie details (imdb_id, runtime, genres, overview, paths)."""
    return _tmdb_get(f"/movie/{tmdb_id}")


def get_watch_providers(tmdb_id: int, region: str = "US") -> List[str]:
    """Names of flat-rate (subscription) providers in ``region``."""
    data = _tmdb_get(f"/movie/{tmdb_id}/watch/providers")
    regional = (data.get("results") or {}).get(region)
    if not regional:
        return []

    providers = []
    for provider in regional.get("flatrate") or []:
        name = provider.get("provider_name")
        if name and name not in providers:
            providers.append(name)
    return providers
