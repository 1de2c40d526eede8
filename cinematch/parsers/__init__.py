"""
Movie list parsing: free-text lists and scraped list pages.

URL parsers are tried in order (known sites, then the LLM extractor when
configured, then the generic fallback); the first one that yields titles
wins.
"""

import re
from typing import List, Optional, Sequence

from cinematch.logging_config import get_logger
from .base import MovieListParser, ParsedMovieList, MAX_URL_TITLES
from .generic import GenericParser
from .llm import LLMParser
from .sites import LetterboxdParser, IMDbParser, RottenTomatoesParser, ListChallengesParser

logger = get_logger(__name__)

_SPLIT = re.compile(r"[\n,]")
_BARE_MARKER = re.compile(r"^\d+[.)]?\s*$")
_LIST_MARKER = re.compile(r"^(\d{1,3})[.)]\s+(.+)$")
_SHORT_NUMBER_PREFIX = re.compile(r"^(\d{1,2})\s+([A-Za-z].+)$")


def parse_text_list(text: Optional[str]) -> List[str]:
    """
    Split a pasted list into titles.

    Entries are separated by newlines or commas. List markers ("1. ",
    "2) ", "3 ") are stripped, but numbers that belong to the title
    ("2001: A Space Odyssey", "Se7en") are kept.

    >>> parse_text_list("1. Heat\\n2. Ronin")
    ['Heat', 'Ronin']
    """
    titles = []
    for token in _SPLIT.split(text or ""):
        line = token.strip()
        if not line or _BARE_MARKER.match(line):
            continue
        match = _LIST_MARKER.match(line) or _SHORT_NUMBER_PREFIX.match(line)
        titles.append(match.group(2) if match else line)
    return titles


def default_parsers() -> List[MovieListParser]:
    return [
        LetterboxdParser(),
        IMDbParser(),
        RottenTomatoesParser(),
        ListChallengesParser(),
        LLMParser(),
        GenericParser(),
    ]


def parse_movie_list_url(url: str, parsers: Optional[Sequence[MovieListParser]] = None) -> ParsedMovieList:
    """
    Scrape ``url`` into a list of titles.

    Never raises; a page no parser can read comes back with ``error`` set.
    """
    last = ParsedMovieList(source="none", error="No parser could read this page")
    for parser in parsers if parsers is not None else default_parsers():
        if not parser.can_parse(url):
            continue
        result = parser.parse(url)
        if result.titles:
            logger.info("movie_list_parsed", source=result.source, count=len(result.titles))
            return result
        logger.info("movie_list_parser_empty", source=result.source, error=result.error)
        last = result if result.error else ParsedMovieList(
            source=result.source, error="No movie titles found on this page"
        )
    return last


__all__ = [
    "MAX_URL_TITLES",
    "MovieListParser",
    "ParsedMovieList",
    "GenericParser",
    "LLMParser",
    "LetterboxdParser",
    "IMDbParser",
    "RottenTomatoesParser",
    "ListChallengesParser",
    "default_parsers",
    "parse_movie_list_url",
    "parse_text_list",
]
