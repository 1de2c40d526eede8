"""
Regex parsers for list sites with a stable enough markup.
"""

import re

from cinematch.parsers.base import RegexListParser


class LetterboxdParser(RegexListParser):
    name = "Letterboxd"
    domain = "letterboxd.com"
    min_title_length = 2
    patterns = [
        re.compile(r'data-film-name="([^"]+)"'),
        re.compile(r'alt="([^"]+)"[^>]*class="[^"]*image[^"]*"'),
        re.compile(r'<h2[^>]*class="[^"]*headline-2[^"]*"[^>]*>([^<]+)</h2>'),
        re.compile(r'data-original-title="([^"]+)"'),
    ]


class IMDbParser(RegexListParser):
    name = "IMDb"
    domain = "imdb.com"
    min_title_length = 2
    patterns = [
        re.compile(r'<h3[^>]*class="[^"]*lister-item-header[^"]*"[^>]*>\s*<a[^>]*>([^<]+)</a>'),
        re.compile(r'class="[^"]*titleColumn[^"]*"[^>]*>\s*<a[^>]*>([^<]+)</a>'),
        re.compile(r'<img[^>]*alt="([^"]+)"[^>]*class="[^"]*loadlate[^"]*"'),
        re.compile(r'data-title="([^"]+)"'),
        re.compile(r'<a[^>]*href="/title/[^"]*"[^>]*>([^<]+)</a>'),
    ]

    def clean_title(self, title: str) -> str:
        # "Heat (1995)" -> "Heat"
        return re.sub(r"\s*\(\d{4}\)\s*$", "", title)


class RottenTomatoesParser(RegexListParser):
    name = "Rotten Tomatoes"
    domain = "rottentomatoes.com"
    patterns = [
        re.compile(r'data-title="([^"]+)"'),
        re.compile(r'<span[^>]*slot="title"[^>]*>([^<]+)</span>'),
        re.compile(r'class="[^"]*movieTitle[^"]*"[^>]*>([^<]+)<'),
    ]


class ListChallengesParser(RegexListParser):
    name = "ListChallenges"
    domain = "listchallenges.com"
    patterns = [
        re.compile(r'class="[^"]*item-name[^"]*"[^>]*>([^<]+)<'),
        re.compile(r'<h3[^>]*class="[^"]*title[^"]*"[^>]*>([^<]+)</h3>'),
        re.compile(r'data-name="([^"]+)"'),
    ]
