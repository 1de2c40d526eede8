"""
End-to-end tests for the group session API.
"""

from unittest.mock import patch

import pytest

from cinematch.api_client import TransientError
from cinematch.app import create_app


FILTER_BODY = {"source": {"type": "filters", "filters": {"genres": [28], "yearFrom": 1990}}, "deckSize": 3}


@pytest.fixture
def host(service, client_for):
    return client_for("host-user", "Ana")


@pytest.fixture
def guest(service, client_for):
    return client_for("guest-user", "Bo")


def create(client, body=None):
    response = client.post("/api/sessions", json=body or FILTER_BODY)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def started(host, guest):
    created = create(host)
    guest.post("/api/sessions/join", json={"code": created["roomCode"]})
    host.post(f"/api/sessions/{created['sessionId']}/start")
    return created["sessionId"]


class TestCreateSession:

    def test_create(self, host):
        """Creating returns the id, room code and deck size."""
        data = create(host)

        assert data["status"] == "success"
        assert data["deckSize"] == 3
        assert len(data["roomCode"]) == 4

    def test_create_from_text_list(self, host):
        """Text lists are accepted in camelCase."""
        data = create(host, {"source": {"type": "text", "textList": "1. Movie 7\n2. Movie 9"}})
        assert data["deckSize"] == 2

    def test_unknown_source_type(self, host):
        """An unknown source type is an invalid source."""
        response = host.post("/api/sessions", json={"source": {"type": "vibes"}})

        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid_source"

    def test_missing_source(self, host):
        """A body without a source is an invalid source."""
        response = host.post("/api/sessions", json={})

        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid_source"

    def test_bad_deck_size(self, host):
        """Deck size must be positive."""
        response = host.post("/api/sessions", json={"source": {"type": "filters"}, "deckSize": 0})

        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid_request"

    def test_empty_deck(self, host, fake_movies):
        """No movies means 422 and no session."""
        fake_movies.pages = [[]]

        response = host.post("/api/sessions", json=FILTER_BODY)

        assert response.status_code == 422
        assert response.get_json()["error"] == "empty_deck"

    def test_discovery_unavailable(self, host, service):
        """Provider outages surface as 502."""

        def broken(filters, page):
            raise TransientError("TMDB request failed with status 503", 503)

        service.builder.discover = broken

        response = host.post("/api/sessions", json=FILTER_BODY)

        assert response.status_code == 502
        assert response.get_json()["error"] == "upstream_unavailable"

    def test_anonymous_user_keeps_identity(self, service, app):
        """Without X-User-Id the session cookie identifies the caller."""
        client = app.test_client()
        session_id = create(client)["sessionId"]

        response = client.get(f"/api/sessions/{session_id}")

        assert response.status_code == 200
        assert response.get_json()["isHost"] is True


class TestIdentity:

    @pytest.fixture
    def cookie_only(self, app):
        app.config["TRUST_PROXY_USER_HEADER"] = False

    def test_user_header_cannot_impersonate_host(self, service, app, cookie_only):
        """Without a trusted proxy, X-User-Id is ignored and start stays host-only."""
        host = app.test_client()
        guest = app.test_client()
        created = create(host)
        session_id = created["sessionId"]
        assert guest.post("/api/sessions/join", json={"code": created["roomCode"]}).status_code == 200
        host_id = guest.get(f"/api/sessions/{session_id}").get_json()["hostId"]

        response = guest.post(f"/api/sessions/{session_id}/start", headers={"X-User-Id": host_id})

        assert response.status_code == 403
        assert response.get_json()["error"] == "forbidden"
        assert host.get(f"/api/sessions/{session_id}").get_json()["status"] == "lobby"

    def test_user_header_ignored_by_default(self, service, app, cookie_only):
        """A header alone does not make the caller a participant."""
        created = create(app.test_client())

        response = app.test_client().get(
            f"/api/sessions/{created['sessionId']}", headers={"X-User-Id": "someone-else"}
        )

        assert response.status_code == 403

    def test_trusted_proxy_header(self, service, app):
        """Behind a trusted proxy the header identifies the caller."""
        owner = app.test_client()
        owner.environ_base["HTTP_X_USER_ID"] = "proxy-user"
        session_id = create(owner)["sessionId"]

        state = owner.get(f"/api/sessions/{session_id}").get_json()

        assert state["hostId"] == "proxy-user"

    def test_trust_flag_off_by_default(self, monkeypatch):
        """The proxy header is only trusted when configured."""
        monkeypatch.delenv("TRUST_PROXY_USER_HEADER", raising=False)
        assert create_app({"SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"}).config["TRUST_PROXY_USER_HEADER"] is False


class TestJoinAndLookup:

    def test_join(self, host, guest):
        """A guest joins with the code in any case."""
        created = create(host)

        response = guest.post("/api/sessions/join", json={"code": created["roomCode"].lower()})

        assert response.status_code == 200
        assert response.get_json()["sessionId"] == created["sessionId"]

        state = guest.get(f"/api/sessions/{created['sessionId']}").get_json()
        assert [p["nickname"] for p in state["participants"]] == ["Ana", "Bo"]

    def test_join_unknown_code(self, guest):
        """Unknown codes are 404."""
        response = guest.post("/api/sessions/join", json={"code": "ZZZZ"})

        assert response.status_code == 404
        assert response.get_json()["error"] == "not_found"

    def test_participant_rejoins_after_start(self, host, guest):
        """A guest re-entering the code after start is let back in."""
        session_id = started(host, guest)
        state = guest.get(f"/api/sessions/{session_id}").get_json()

        response = guest.post("/api/sessions/join", json={"code": state["code"]})

        assert response.status_code == 200
        assert response.get_json()["sessionId"] == session_id

    def test_late_join_rejected(self, host, guest, client_for):
        """A new user cannot join a swiping session."""
        created = create(host)
        host.post(f"/api/sessions/{created['sessionId']}/start")

        response = client_for("late-user").post("/api/sessions/join", json={"code": created["roomCode"]})

        assert response.status_code == 409
        assert response.get_json()["error"] == "already_started"

    def test_lookup(self, host):
        """Room codes resolve to session ids."""
        created = create(host)

        response = host.get(f"/api/sessions/lookup?code={created['roomCode'].lower()}")

        assert response.status_code == 200
        assert response.get_json() == {
            "sessionId": created["sessionId"],
            "code": created["roomCode"],
            "status": "lobby",
        }

    def test_lookup_requires_code(self, host):
        """The code parameter is required."""
        assert host.get("/api/sessions/lookup").status_code == 400


class TestStartAndSwipe:

    def test_only_host_starts(self, host, guest):
        """Guests get 403 and the session stays in the lobby."""
        created = create(host)
        guest.post("/api/sessions/join", json={"code": created["roomCode"]})

        response = guest.post(f"/api/sessions/{created['sessionId']}/start")

        assert response.status_code == 403
        assert guest.get(f"/api/sessions/{created['sessionId']}").get_json()["status"] == "lobby"

    def test_host_starts(self, host):
        """The host moves the session to swiping."""
        created = create(host)

        response = host.post(f"/api/sessions/{created['sessionId']}/start")

        assert response.status_code == 200
        assert response.get_json()["session"]["status"] == "swiping"

    def test_start_twice(self, host):
        """Starting again is 409 not_in_lobby."""
        created = create(host)
        host.post(f"/api/sessions/{created['sessionId']}/start")

        response = host.post(f"/api/sessions/{created['sessionId']}/start")

        assert response.status_code == 409
        assert response.get_json()["error"] == "not_in_lobby"

    def test_swipe_in_lobby(self, host):
        """Swipes before start are 409 not_swiping."""
        created = create(host)

        response = host.post(f"/api/sessions/{created['sessionId']}/swipe", json={"movieId": 1, "liked": True})

        assert response.status_code == 409
        assert response.get_json()["error"] == "not_swiping"

    def test_swipe_validation(self, host, guest):
        """movieId must be an integer and liked a boolean."""
        session_id = started(host, guest)

        bad_like = host.post(f"/api/sessions/{session_id}/swipe", json={"movieId": 1, "liked": "yes"})
        bad_id = host.post(f"/api/sessions/{session_id}/swipe", json={"movieId": "1", "liked": True})

        assert bad_like.status_code == 400
        assert bad_id.status_code == 400
        assert bad_like.get_json()["error"] == "invalid_request"

    def test_swipe_outside_deck(self, host, guest):
        """Movies outside the deck are 400 invalid_swipe."""
        session_id = started(host, guest)

        response = host.post(f"/api/sessions/{session_id}/swipe", json={"movieId": 999, "liked": True})

        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid_swipe"

    def test_state_forbidden_for_outsiders(self, host, client_for):
        """Only participants can poll a session."""
        created = create(host)

        response = client_for("stranger").get(f"/api/sessions/{created['sessionId']}")

        assert response.status_code == 403

    def test_state_of_missing_session(self, host):
        """Unknown session ids are 404."""
        assert host.get("/api/sessions/does-not-exist").status_code == 404


class TestFullRound:

    def test_swipe_reveal_match_select(self, host, guest):
        """Two users swipe the deck, reveal, read matches and pick a movie."""
        session_id = started(host, guest)

        for movie_id, liked in ((1, True), (2, True), (3, False)):
            data = host.post(f"/api/sessions/{session_id}/swipe", json={"movieId": movie_id, "liked": liked}).get_json()
        assert data == {"status": "success", "completed": True, "allCompleted": False}

        for movie_id, liked in ((1, False), (2, True), (3, True)):
            data = guest.post(f"/api/sessions/{session_id}/swipe", json={"movieId": movie_id, "liked": liked}).get_json()
        assert data["allCompleted"] is True

        state = guest.get(f"/api/sessions/{session_id}").get_json()
        assert state["allCompleted"] is True
        assert state["userSwipes"] == {"1": False, "2": True, "3": True}

        early = host.get(f"/api/sessions/{session_id}/matches")
        assert early.status_code == 409

        reveal = guest.post(f"/api/sessions/{session_id}/reveal")
        assert reveal.status_code == 200
        assert reveal.get_json()["session"]["status"] == "revealed"
        assert host.post(f"/api/sessions/{session_id}/reveal").status_code == 200

        matches = host.get(f"/api/sessions/{session_id}/matches").get_json()
        assert matches["matchIds"] == [2]
        assert [m["title"] for m in matches["matches"]] == ["Movie 2"]

        select = host.post(f"/api/sessions/{session_id}/select", json={"movieId": 2})
        assert select.status_code == 200
        assert select.get_json()["watched"]["watchedWith"] == 2

        history = guest.get("/api/history").get_json()["history"]
        assert [(h["movieId"], h["movie"]["title"]) for h in history] == [(2, "Movie 2")]

    def test_reveal_from_lobby(self, host):
        """Reveal needs a swiping session."""
        created = create(host)

        response = host.post(f"/api/sessions/{created['sessionId']}/reveal")

        assert response.status_code == 409

    def test_prematches(self, host, guest):
        """Shared watchlist movies are listed for the lobby."""
        created = create(host)
        guest.post("/api/sessions/join", json={"code": created["roomCode"]})
        host.post("/api/solo/list", json={"movieId": 50})
        guest.post("/api/solo/list", json={"movieId": 50})

        data = host.get(f"/api/sessions/{created['sessionId']}/prematches").get_json()

        assert [p["movieId"] for p in data["prematches"]] == [50]

    def test_empty_history(self, client_for, service):
        """Users with no sessions have no history."""
        assert client_for("nobody").get("/api/history").get_json() == {"history": []}


class TestErrorRendering:

    def test_unexpected_error_is_500(self, host, service):
        """Unexpected failures become a generic 500."""
        created = create(host)

        with patch.object(service, "get_state", side_effect=RuntimeError("boom")):
            response = host.get(f"/api/sessions/{created['sessionId']}")

        assert response.status_code == 500
        assert response.get_json()["error"] == "internal_error"
        assert "boom" not in response.get_data(as_text=True)

    def test_request_id_is_echoed(self, host):
        """Callers' X-Request-ID comes back on the response."""
        response = host.get("/api/sessions/lookup?code=ABCD", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
