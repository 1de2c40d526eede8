"""
Tests for movie list URL parsers.
"""

from unittest.mock import Mock, patch

import pytest

from cinematch.api_client import NotFoundError, TransientError
from cinematch.parsers import (
    GenericParser,
    IMDbParser,
    LetterboxdParser,
    LLMParser,
    ListChallengesParser,
    ParsedMovieList,
    RottenTomatoesParser,
    default_parsers,
    parse_movie_list_url,
)
from cinematch.parsers.base import MovieListParser, unique_titles
from cinematch.parsers.llm import clean_page, parse_title_array


class StaticParser(MovieListParser):
    """Parser that serves a fixed page without touching the network."""

    def __init__(self, name, page="", titles=None, error=None, accepts=True):
        self.name = name
        self.page = page
        self.titles = titles
        self.error = error
        self.accepts = accepts
        self.calls = 0

    def can_parse(self, url):
        return self.accepts

    def fetch(self, url):
        self.calls += 1
        if self.error:
            raise self.error
        return self.page

    def extract_titles(self, page):
        return list(self.titles or [])


class TestSiteParsers:

    def test_letterboxd(self):
        """Film names come from data attributes and poster alts."""
        page = """
            <div data-film-name="Heat"></div>
            <img alt="Ronin" class="image">
            <div data-film-name="Heat"></div>
            <h2 class="headline-2">Thief</h2>
            <div data-film-name="X"></div>
        """
        parser = LetterboxdParser()

        assert parser.can_parse("https://letterboxd.com/user/list/heists/")
        assert parser.extract_titles(page) == ["Heat", "Ronin", "Thief"]

    def test_imdb_strips_years(self):
        """IMDb list entries lose their trailing year."""
        page = """
            <h3 class="lister-item-header"><a href="/title/tt0113277/">Heat (1995)</a></h3>
            <td class="titleColumn"><a href="/title/tt0122690/">Ronin</a></td>
        """
        parser = IMDbParser()

        assert parser.can_parse("https://www.imdb.com/list/ls000/")
        assert parser.extract_titles(page) == ["Heat", "Ronin"]

    def test_rotten_tomatoes(self):
        """Slot titles and data-title attributes are read."""
        page = '<span slot="title">Heat</span><div data-title="Ronin"></div>'
        assert RottenTomatoesParser().extract_titles(page) == ["Ronin", "Heat"]

    def test_list_challenges(self):
        """Item names are read."""
        page = '<div class="item-name">Heat</div><div data-name="Ronin"></div>'
        assert ListChallengesParser().extract_titles(page) == ["Heat", "Ronin"]

    def test_html_entities_unescaped(self):
        """Entities in attributes become plain characters."""
        page = '<div data-film-name="Ocean&#39;s Eleven"></div>'
        assert LetterboxdParser().extract_titles(page) == ["Ocean's Eleven"]

    def test_domain_check(self):
        """Site parsers only accept their own domain."""
        assert not LetterboxdParser().can_parse("https://www.imdb.com/list/ls000/")


class TestGenericParser:

    def test_title_with_year_and_numbered_entries(self):
        """Titles with years and numbered lines are found; scripts ignored."""
        page = """
            <script>var x = "Fake Movie (2001)";</script>
            <li>Heat (1995)</li>
            <li>Ronin (1998)</li>
            <pre>
1. Collateral
2) Thief
            </pre>
        """
        titles = GenericParser().extract_titles(page)

        assert "Heat" in titles
        assert "Collateral" in titles
        assert "Thief" in titles
        assert all("Fake Movie" not in t for t in titles)

    def test_years_out_of_range_ignored(self):
        """Only plausible release years count."""
        assert GenericParser().extract_titles("<p>Something Else (1776)</p>") == []

    def test_accepts_every_url(self):
        """Generic is the catch-all."""
        assert GenericParser().can_parse("https://example.com/anything")


class TestParseFlow:

    def test_fetch_failure_is_reported(self):
        """Provider errors become a ParsedMovieList error."""
        parser = StaticParser("Static", error=NotFoundError("not found", 404))

        result = parser.parse("https://example.com")

        assert result.error == "Failed to fetch: 404"
        assert result.titles == []
        assert not result.ok

    def test_network_failure_without_status(self):
        """Network errors have no status in the message."""
        parser = StaticParser("Static", error=TransientError("timeout"))
        assert parser.parse("https://example.com").error == "Failed to fetch"

    def test_fetch_uses_page_client(self):
        """Pages are fetched through the shared provider client."""
        client = Mock()
        client.get.return_value = Mock(text='<div data-film-name="Heat"></div>')

        with patch("cinematch.parsers.base._get_page_client", return_value=client):
            result = LetterboxdParser().parse("https://letterboxd.com/list/")

        assert result.titles == ["Heat"]
        assert result.source == "Letterboxd"
        assert client.get.call_args[1]["api_name"] == "Letterboxd"

    def test_first_parser_with_titles_wins(self):
        """Later parsers are not tried once one yields titles."""
        first = StaticParser("First", titles=["Heat"])
        second = StaticParser("Second", titles=["Ronin"])

        result = parse_movie_list_url("https://example.com", [first, second])

        assert result.titles == ["Heat"]
        assert second.calls == 0

    def test_falls_through_empty_and_failing_parsers(self):
        """Empty or failing parsers hand over to the next one."""
        skipped = StaticParser("Skipped", titles=["Nope"], accepts=False)
        empty = StaticParser("Empty", titles=[])
        failing = StaticParser("Failing", error=TransientError("down", 503))
        last = StaticParser("Last", titles=["Ronin"])

        result = parse_movie_list_url("https://example.com", [skipped, empty, failing, last])

        assert result == ParsedMovieList(titles=["Ronin"], source="Last")
        assert skipped.calls == 0

    def test_nothing_found(self):
        """When every parser comes up empty the last reason is reported."""
        result = parse_movie_list_url("https://example.com", [StaticParser("Empty", titles=[])])

        assert result.titles == []
        assert result.error == "No movie titles found on this page"

    def test_no_parser_accepts(self):
        """No applicable parser at all."""
        result = parse_movie_list_url("https://example.com", [StaticParser("Picky", accepts=False)])
        assert result.error == "No parser could read this page"

    def test_default_order(self):
        """Known sites first, then the LLM, then the generic fallback."""
        names = [p.name for p in default_parsers()]
        assert names == ["Letterboxd", "IMDb", "Rotten Tomatoes", "ListChallenges", "LLM Parser", "Generic"]

    def test_unique_titles_cap(self):
        """Titles are deduplicated and capped."""
        assert unique_titles(["A", "B", "A", "C"], limit=2) == ["A", "B"]


class TestLLMParser:

    def test_disabled_without_key(self, monkeypatch):
        """Without a Gemini key the LLM parser steps aside."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        assert not LLMParser().can_parse("https://example.com")

    def test_enabled_with_key(self, monkeypatch):
        """A Gemini key turns it on."""
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        assert LLMParser().can_parse("https://example.com")

    def test_extracts_titles_from_reply(self):
        """The chain's JSON reply becomes the title list."""
        chain = Mock()
        chain.invoke.return_value = 'Sure!\n```json\n["Heat", "Ronin", "Heat"]\n```'
        parser = LLMParser(chain=chain)

        titles = parser.extract_titles("<html><script>x</script><body>Heat, Ronin</body></html>")

        assert titles == ["Heat", "Ronin"]
        sent = chain.invoke.call_args[0][0]["page"]
        assert "<script>" not in sent

    def test_bad_reply_falls_through(self):
        """An unparseable reply is an error result, not an exception."""
        chain = Mock()
        chain.invoke.return_value = "I could not find any movies."
        parser = LLMParser(chain=chain)

        with patch.object(LLMParser, "fetch", return_value="<p>page</p>"):
            result = parser.parse("https://example.com")

        assert result.titles == []
        assert result.source == "LLM Parser"
        assert "JSON" in result.error

    def test_parse_title_array_ignores_non_strings(self):
        """Only string items are kept."""
        assert parse_title_array('["Heat", 3, null, "Ronin"]') == ["Heat", "Ronin"]

    def test_parse_title_array_requires_array(self):
        """Replies without an array are rejected."""
        with pytest.raises(ValueError):
            parse_title_array('{"titles": "Heat"}')

    def test_clean_page(self):
        """Navigation, comments and whitespace are stripped."""
        page = "<nav>Menu</nav><!-- c -->\n\n<p>Heat</p>   <footer>f</footer>"
        assert clean_page(page) == "<p>Heat</p>"
