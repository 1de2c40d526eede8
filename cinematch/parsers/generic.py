import re
from typing import List

from cinematch.parsers.base import MovieListParser, strip_tags, unique_titles

_TITLE_WITH_YEAR = re.compile(r"([A-Z][^<\n]{2,50})\s*\((\d{4})\)")
_NUMBERED_ENTRY = re.compile(r"^\s*\d+[.)]\s*([A-Z][^\n<]{2,50})", re.MULTILINE)


class GenericParser(MovieListParser):
    """Catch-all: "Title (1999)" mentions, then numbered list entries."""

    name = "Generic"

    def can_parse(self, url: str) -> bool:
        return True

    def extract_titles(self, page: str) -> List[str]:
        text = strip_tags(page)
        found = []
        for match in _TITLE_WITH_YEAR.finditer(text):
            if 1900 <= int(match.group(2)) <= 2030:
                found.append(match.group(1))
        found.extend(m.group(1) for m in _NUMBERED_ENTRY.finditer(text))
        return unique_titles(found)
