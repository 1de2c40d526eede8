"""
Movie record catalog: "given a TMDB id, return a cached-or-fetched record".

Records live in the ``cached_movies`` table and are considered fresh for
MOVIE_RECORD_TTL_HOURS (default 24). Missing or stale records are fetched
from the providers in a bounded thread pool (ENRICHMENT_BATCH_SIZE workers)
so one slow lookup does not stall the batch, and a failed lookup only drops
that movie.

Only network work runs in worker threads; all database reads and writes
stay on the calling (request) thread.
"""

import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError

from cinematch.api_client import APIError
from cinematch.logging_config import get_logger
from cinematch.models import db, CachedMovie
from cinematch.schemas import CandidateMovie, MovieRecord
from cinematch.tools import tmdb
from cinematch.tools.omdb import get_omdb_ratings

logger = get_logger(__name__)

ENRICHMENT_BATCH_SIZE = int(os.getenv("ENRICHMENT_BATCH_SIZE", "5"))
MOVIE_RECORD_TTL = timedelta(hours=int(os.getenv("MOVIE_RECORD_TTL_HOURS", "24")))


def fetch_movie_record(tmdb_id: int) -> MovieRecord:
    """
    Build a fresh record from the providers.

    Watch providers and ratings are optional; a details failure raises.
    """
    details = tmdb.get_movie_details(tmdb_id)

    try:
        providers = tmdb.get_watch_providers(tmdb_id)
    except APIError as e:
        logger.info("watch_providers_unavailable", tmdb_id=tmdb_id, error_type=e.error_type.value)
        providers = []

    ratings = get_omdb_ratings(details.get("imdb_id"))

    return MovieRecord(
        tmdb_id=tmdb_id,
        imdb_id=details.get("imdb_id"),
        title=details.get("title") or "",
        year=tmdb.get_year(details.get("release_date")),
        poster_url=tmdb.get_poster_url(details.get("poster_path"), "w500"),
        backdrop_url=tmdb.get_backdrop_url(details.get("backdrop_path"), "w1280"),
        genres=[g.get("name") for g in details.get("genres") or [] if g.get("name")],
        synopsis=details.get("overview"),
        runtime=details.get("runtime"),
        imdb_rating=ratings.get("imdb_rating"),
        rt_critic_score=ratings.get("rt_critic_score"),
        streaming_services=providers,
    )


def fetch_records_parallel(tmdb_ids: List[int], batch_size: Optional[int] = None) -> Dict[int, MovieRecord]:
    """
    Fetch records concurrently with at most ``batch_size`` lookups in flight.

    Returns:
        Dict of the ids that could be fetched; failures are logged and omitted
    """
    if not tmdb_ids:
        return {}

    workers = max(1, min(batch_size or ENRICHMENT_BATCH_SIZE, len(tmdb_ids)))
    records: Dict[int, MovieRecord] = {}

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {pool.submit(fetch_movie_record, tmdb_id): tmdb_id for tmdb_id in tmdb_ids}
        for future in as_completed(futures):
            tmdb_id = futures[future]
            try:
                records[tmdb_id] = future.result()
            except Exception as e:
                # One broken title must not sink the whole batch
                logger.warning("movie_fetch_failed", tmdb_id=tmdb_id, error=str(e))

    return records


def _row_to_record(row: CachedMovie) -> MovieRecord:
    return MovieRecord(
        tmdb_id=row.tmdb_id,
        imdb_id=row.imdb_id,
        title=row.title,
        year=row.year,
        poster_url=row.poster_url,
        backdrop_url=row.backdrop_url,
        genres=row.genres or [],
        synopsis=row.synopsis,
        runtime=row.runtime,
        imdb_rating=row.imdb_rating,
        rt_critic_score=row.rt_critic_score,
        streaming_services=row.streaming_services or [],
    )


def _load_fresh(tmdb_ids: List[int]) -> Dict[int, MovieRecord]:
    cutoff = datetime.utcnow() - MOVIE_RECORD_TTL
    rows = CachedMovie.query.filter(CachedMovie.tmdb_id.in_(tmdb_ids)).all()
    return {row.tmdb_id: _row_to_record(row) for row in rows if row.cached_at and row.cached_at >= cutoff}


def _store(records: Iterable[MovieRecord]) -> None:
    """Write records to the cache table. Best effort: a lost race is not an error."""
    now = datetime.utcnow()
    for record in records:
        row = CachedMovie.query.filter_by(tmdb_id=record.tmdb_id).first()
        if row is None:
            row = CachedMovie(tmdb_id=record.tmdb_id)
            db.session.add(row)
        row.imdb_id = record.imdb_id
        row.title = record.title
        row.year = record.year
        row.poster_url = record.poster_url
        row.backdrop_url = record.backdrop_url
        row.genres = list(record.genres)
        row.synopsis = record.synopsis
        row.runtime = record.runtime
        row.imdb_rating = record.imdb_rating
        row.rt_critic_score = record.rt_critic_score
        row.streaming_services = list(record.streaming_services)
        row.cached_at = now
    try:
        db.session.commit()
    except IntegrityError:
        # Another request cached the same movie first
        db.session.rollback()
        logger.info("movie_cache_write_conflict")


def resolve_movies(tmdb_ids: Iterable[int]) -> Dict[int, MovieRecord]:
    """
    Cached-or-fetched records for ``tmdb_ids``.

    Returns:
        Dict keyed by id; ids whose lookup failed are absent
    """
    unique_ids = list(dict.fromkeys(tmdb_ids))
    if not unique_ids:
        return {}

    started = time.time()
    records = _load_fresh(unique_ids)
    missing = [i for i in unique_ids if i not in records]

    if missing:
        fetched = fetch_records_parallel(missing)
        if fetched:
            _store(fetched.values())
        records.update(fetched)

    logger.debug(
        "movies_resolved",
        requested=len(unique_ids),
        cached=len(unique_ids) - len(missing),
        fetched=len(records) - (len(unique_ids) - len(missing)),
        duration_ms=round((time.time() - started) * 1000, 2),
    )
    return records


def get_or_fetch_movie(tmdb_id: int) -> Optional[MovieRecord]:
    return resolve_movies([tmdb_id]).get(tmdb_id)


def get_movies_by_ids(tmdb_ids: Iterable[int]) -> List[MovieRecord]:
    """Records in the order of ``tmdb_ids``, skipping any that failed."""
    ids = list(tmdb_ids)
    records = resolve_movies(ids)
    seen = set()
    ordered = []
    for tmdb_id in ids:
        if tmdb_id in records and tmdb_id not in seen:
            seen.add(tmdb_id)
            ordered.append(records[tmdb_id])
    return ordered


def search_candidates(query: str, limit: int = 10) -> List[CandidateMovie]:
    """Lightweight title search for pickers; no enrichment."""
    return tmdb.search_movies(query)[:limit]
