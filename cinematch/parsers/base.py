"""
Parser contract for turning a web page into a list of movie titles.
"""

import html
import os
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Pattern

from cinematch.api_client import MovieDataClient, APIError
from cinematch.logging_config import get_logger
from cinematch.logging_metrics import track_external_api_call

logger = get_logger(__name__)

MAX_URL_TITLES = int(os.getenv("MAX_URL_TITLES", "50"))

_page_client: Optional[MovieDataClient] = None


def _get_page_client() -> MovieDataClient:
    global _page_client
    if _page_client is None:
        # Scraped pages are large and slow; one retry is enough
        _page_client = MovieDataClient(timeout=10.0, max_retries=1)
    return _page_client


@dataclass
class ParsedMovieList:
    titles: List[str] = field(default_factory=list)
    source: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return bool(self.titles) and self.error is None


def unique_titles(candidates: Iterable[str], limit: int = MAX_URL_TITLES, min_length: int = 1) -> List[str]:
    """Trim, unescape and dedupe (first occurrence wins), capped at ``limit``."""
    titles: List[str] = []
    for raw in candidates:
        title = html.unescape(raw).strip()
        if len(title) < min_length or title in titles:
            continue
        titles.append(title)
        if len(titles) >= limit:
            break
    return titles


class MovieListParser:
    """
    Base class for URL parsers.

    Subclasses set ``name`` and implement ``can_parse`` and
    ``extract_titles``; fetching and error reporting live here.
    """

    name = "Base"

    def can_parse(self, url: str) -> bool:
        raise NotImplementedError

    def extract_titles(self, page: str) -> List[str]:
        raise NotImplementedError

    def fetch(self, url: str) -> str:
        with track_external_api_call("scrape", self.name.lower()):
            response = _get_page_client().get(url, api_name=self.name)
        return response.text

    def parse(self, url: str) -> ParsedMovieList:
        try:
            page = self.fetch(url)
        except APIError as e:
            status = f": {e.status_code}" if e.status_code else ""
            return ParsedMovieList(source=self.name, error=f"Failed to fetch{status}")
        return ParsedMovieList(titles=self.extract_titles(page), source=self.name)


class RegexListParser(MovieListParser):
    """Parser for a known site: a domain plus title-capturing regexes."""

    domain = ""
    patterns: List[Pattern] = []
    min_title_length = 1

    def can_parse(self, url: str) -> bool:
        return self.domain in url

    def clean_title(self, title: str) -> str:
        return title

    def extract_titles(self, page: str) -> List[str]:
        found = []
        for pattern in self.patterns:
            for match in pattern.finditer(page):
                found.append(self.clean_title(match.group(1).strip()))
        return unique_titles(found, min_length=self.min_title_length)


def strip_tags(page: str, tags: Iterable[str] = ("script", "style")) -> str:
    for tag in tags:
        page = re.sub(rf"<{tag}\b[^>]*>[\s\S]*?</{tag}>", "", page, flags=re.IGNORECASE)
    return page
