import os
import sys

# Tests run against an in-memory database and never reach real providers
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.pop("GEMINI_API_KEY", None)

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest

from cinematch import movies
from cinematch.api_client import TransientError
from cinematch.app import create_app
from cinematch.cache import reset_global_cache
from cinematch.deck_builder import DeckBuilder
from cinematch.models import db
from cinematch.parsers import ParsedMovieList
from cinematch.schemas import CandidateMovie, DiscoverPage, MovieRecord
from cinematch.sessions import SessionService, set_session_service


class FakeMovies:
    """
    In-memory stand-in for TMDB discovery, title search, record lookup and
    URL scraping.

    Discovery serves ``pages`` (lists of ids) in order; ``failing`` ids raise
    on record lookup the way a broken provider response would.
    """

    def __init__(self, count=60, page_size=20, pages=None, failing=()):
        self.titles = {i: f"Movie {i}" for i in range(1, count + 1)}
        if pages is None:
            ids = list(self.titles)
            pages = [ids[i:i + page_size] for i in range(0, len(ids), page_size)]
        self.pages = pages
        self.failing = set(failing)
        self.years = {}
        self.scraped = {}
        self.discover_calls = []
        self.search_calls = []
        self.fetch_calls = []

    def add(self, tmdb_id, title, year=None):
        self.titles[tmdb_id] = title
        if year is not None:
            self.years[tmdb_id] = year

    def discover(self, filters, page):
        self.discover_calls.append(page)
        ids = self.pages[page - 1] if page <= len(self.pages) else []
        return DiscoverPage(movie_ids=ids, total_pages=len(self.pages))

    def search(self, title):
        self.search_calls.append(title)
        wanted = title.casefold()
        return [
            CandidateMovie(tmdb_id=tmdb_id, title=name, year=self.years.get(tmdb_id), genre_ids=[28, 12, 35])
            for tmdb_id, name in self.titles.items()
            if wanted in name.casefold()
        ]

    def record(self, tmdb_id):
        self.fetch_calls.append(tmdb_id)
        if tmdb_id in self.failing:
            raise TransientError(f"TMDB request failed for {tmdb_id}", 503)
        return MovieRecord(
            tmdb_id=tmdb_id,
            title=self.titles.get(tmdb_id, f"Movie {tmdb_id}"),
            year=self.years.get(tmdb_id, 2000),
            genres=["Action"],
        )

    def resolve(self, tmdb_ids):
        records = {}
        for tmdb_id in tmdb_ids:
            try:
                records[tmdb_id] = self.record(tmdb_id)
            except TransientError:
                continue
        return records

    def scrape(self, url):
        return self.scraped.get(url, ParsedMovieList(source="Generic", error="Failed to fetch: 404"))

    def builder(self, **kwargs):
        """A DeckBuilder over these fakes; records resolve through the real catalog."""
        return DeckBuilder(discover=self.discover, search=self.search, scrape=self.scrape, **kwargs)


@pytest.fixture(autouse=True)
def reset_cache():
    """Each test starts with an empty lookup cache."""
    reset_global_cache()
    yield
    reset_global_cache()


@pytest.fixture
def app():
    """Fresh app bound to its own in-memory database."""
    flask_app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "TRUST_PROXY_USER_HEADER": True,
    })
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def fake_movies(monkeypatch):
    """Fake providers; the movie catalog fetches records from them."""
    fake = FakeMovies()
    monkeypatch.setattr(movies, "fetch_movie_record", fake.record)
    return fake


@pytest.fixture
def service(app, fake_movies):
    """Session service over the fake providers, installed for the routes too."""
    svc = SessionService(builder=fake_movies.builder(), exclude_idle=False)
    set_session_service(svc)
    yield svc
    set_session_service(None)


@pytest.fixture
def client_for(app):
    """Factory for test clients that act as a given user."""

    def make(user_id, nickname=None):
        client = app.test_client()
        client.environ_base["HTTP_X_USER_ID"] = user_id
        if nickname:
            client.environ_base["HTTP_X_USER_NAME"] = nickname
        return client

    return make
