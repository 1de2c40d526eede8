"""
Deck building: turn a deck source into an ordered list of unique TMDB ids.

Three sources are supported:
- filters: TMDB discovery, page by page, skipping excluded ids
- url: a scraped list page, each title resolved through search
- text: a pasted list, split and resolved the same way

Every id in a deck has a movie record behind it. A title that cannot be
found, or a movie whose details cannot be fetched, is dropped silently, so
a deck may come back shorter than requested. Callers decide whether an
empty deck is an error.
"""

import os
import time
from typing import Callable, Collection, Dict, Iterable, List, Optional

from cinematch import movies
from cinematch.api_client import APIError
from cinematch.exceptions import InvalidSourceError, UpstreamError
from cinematch.logging_config import get_logger
from cinematch.logging_metrics import track_phase
from cinematch.metrics import track_deck_built
from cinematch.parsers import parse_movie_list_url, parse_text_list, ParsedMovieList
from cinematch.schemas import CandidateMovie, DiscoverPage, FilterSource, MovieFilters, MovieRecord, TextSource, UrlSource
from cinematch.tools import tmdb
from cinematch.utils import split_title_year

logger = get_logger(__name__)

DISCOVER_MAX_PAGES = int(os.getenv("DISCOVER_MAX_PAGES", "5"))
ENRICHMENT_BATCH_SIZE = int(os.getenv("ENRICHMENT_BATCH_SIZE", "5"))


def _default_discover(filters: MovieFilters, page: int) -> DiscoverPage:
    return tmdb.discover_movies(filters, page)


def _default_search(title: str) -> List[CandidateMovie]:
    return tmdb.search_movies(title)


def _default_resolve(tmdb_ids: List[int]) -> Dict[int, MovieRecord]:
    return movies.resolve_movies(tmdb_ids)


def pick_best_match(title: str, year: Optional[int], results: List[CandidateMovie]) -> Optional[CandidateMovie]:
    """
    Exact case-insensitive title (and year, when known) beats relevance;
    otherwise the first search result.
    """
    wanted = title.casefold()
    for candidate in results:
        if candidate.title.casefold() == wanted and (year is None or candidate.year == year):
            return candidate
    return results[0] if results else None


class DeckBuilder:
    """
    Builds decks from a source.

    The provider capabilities are injected so the algorithm can run
    against fakes; by default they are the TMDB tools, the movie catalog
    and the URL parser chain.
    """

    def __init__(
        self,
        discover: Optional[Callable[[MovieFilters, int], DiscoverPage]] = None,
        search: Optional[Callable[[str], List[CandidateMovie]]] = None,
        resolve: Optional[Callable[[List[int]], Dict[int, MovieRecord]]] = None,
        scrape: Optional[Callable[[str], ParsedMovieList]] = None,
        max_pages: Optional[int] = None,
        batch_size: Optional[int] = None,
    ):
        self.discover = discover or _default_discover
        self.search = search or _default_search
        self.resolve = resolve or _default_resolve
        self.scrape = scrape or parse_movie_list_url
        self.max_pages = max_pages or DISCOVER_MAX_PAGES
        self.batch_size = batch_size or ENRICHMENT_BATCH_SIZE

    def build(self, source, limit: int, exclude: Optional[Collection[int]] = None) -> List[int]:
        """
        Build a deck of at most ``limit`` ids from ``source``.

        Raises:
            InvalidSourceError: unknown source type, unreadable URL, empty list
            UpstreamError: discovery unavailable before any movie was found
        """
        limit = max(1, int(limit))
        exclude = set(exclude or ())
        source_type = getattr(source, "type", None) or "unknown"
        started = time.time()

        with track_phase("deck_build", source=source_type, limit=limit):
            if isinstance(source, FilterSource):
                deck = self.from_filters(source.filters, limit, exclude)
            elif isinstance(source, UrlSource):
                deck = self.from_url(source.url, limit, exclude)
            elif isinstance(source, TextSource):
                deck = self.from_text(source.text_list, limit, exclude)
            else:
                raise InvalidSourceError("Invalid source type")

        track_deck_built(source_type, len(deck), time.time() - started)
        logger.info("deck_built", source=source_type, requested=limit, size=len(deck))
        return deck

    def _resolve_batch(self, candidate_ids: List[int], deck: List[int], limit: int) -> None:
        """Resolve ``candidate_ids`` and append the ones with records, in order."""
        records = self.resolve(candidate_ids)
        for tmdb_id in candidate_ids:
            if len(deck) >= limit:
                return
            if tmdb_id in records:
                deck.append(tmdb_id)

    def from_filters(self, filters: MovieFilters, limit: int, exclude: Collection[int] = ()) -> List[int]:
        deck: List[int] = []
        seen = set(exclude)
        page = 1

        while len(deck) < limit and page <= self.max_pages:
            try:
                result = self.discover(filters, page)
            except APIError as e:
                if not deck:
                    raise UpstreamError("Movie discovery is unavailable") from e
                logger.warning("discover_page_failed", page=page, error=str(e))
                break

            fresh = []
            for tmdb_id in result.movie_ids:
                if tmdb_id not in seen:
                    seen.add(tmdb_id)
                    fresh.append(tmdb_id)

            for start in range(0, len(fresh), self.batch_size):
                if len(deck) >= limit:
                    break
                self._resolve_batch(fresh[start:start + self.batch_size], deck, limit)

            if page >= result.total_pages:
                break
            page += 1

        return deck

    def resolve_title(self, raw_title: str) -> Optional[int]:
        """Search for one list entry; None when nothing matches."""
        title, year = split_title_year(raw_title)
        try:
            results = self.search(title)
        except APIError as e:
            logger.info("title_unresolved", title=title, reason="search_failed", error_type=e.error_type.value)
            return None

        best = pick_best_match(title, year, results)
        if best is None:
            logger.info("title_unresolved", title=title, reason="no_results")
            return None
        return best.tmdb_id

    def from_titles(self, titles: Iterable[str], limit: int, exclude: Collection[int] = ()) -> List[int]:
        deck: List[int] = []
        seen = set(exclude)
        pending: List[int] = []

        for title in titles:
            if len(deck) >= limit:
                break
            tmdb_id = self.resolve_title(title)
            if tmdb_id is None or tmdb_id in seen:
                continue
            seen.add(tmdb_id)
            pending.append(tmdb_id)
            if len(deck) + len(pending) >= limit or len(pending) >= self.batch_size:
                self._resolve_batch(pending, deck, limit)
                pending = []

        if pending and len(deck) < limit:
            self._resolve_batch(pending, deck, limit)
        return deck

    def from_url(self, url: str, limit: int, exclude: Collection[int] = ()) -> List[int]:
        parsed = self.scrape(url)
        if parsed.error or not parsed.titles:
            raise InvalidSourceError(parsed.error or "No movies found at URL")
        return self.from_titles(parsed.titles, limit, exclude)

    def from_text(self, text: str, limit: int, exclude: Collection[int] = ()) -> List[int]:
        titles = parse_text_list(text)
        if not titles:
            raise InvalidSourceError("No movies in list")
        return self.from_titles(titles, limit, exclude)
