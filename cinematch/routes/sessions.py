"""
Group session endpoints.

    POST /api/sessions                      create (host auto-joins)
    POST /api/sessions/join                 join by room code
    GET  /api/sessions/lookup?code=ABCD     room code -> session id
    GET  /api/sessions/<id>                 polled state
    POST /api/sessions/<id>/start           host only
    POST /api/sessions/<id>/swipe           {movieId, liked}
    POST /api/sessions/<id>/reveal
    GET  /api/sessions/<id>/matches
    GET  /api/sessions/<id>/prematches
    POST /api/sessions/<id>/select          {movieId}
    GET  /api/history
"""

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from cinematch import movies
from cinematch.exceptions import InvalidSourceError
from cinematch.logging_context import set_group_session_id
from cinematch.routes.common import current_nickname, current_user_id, error_response, parse_body, register_error_handlers
from cinematch.schemas import CreateSessionRequest, JoinSessionRequest, MovieIdRequest, SwipeRequest
from cinematch.sessions import get_session_service

bp = Blueprint("sessions", __name__)
history_bp = Blueprint("history", __name__)

register_error_handlers(bp)
register_error_handlers(history_bp)


@bp.before_request
def bind_session_context():
    session_id = (request.view_args or {}).get("session_id")
    if session_id:
        set_group_session_id(session_id)


@bp.route("", methods=["POST"])
def create_session():
    """
    POST /api/sessions

    {"source": {"type": "filters", "filters": {"genres": [28], "yearFrom": 1990}},
     "deckSize": 25}
    {"source": {"type": "url", "url": "https://letterboxd.com/..."}}
    {"source": {"type": "text", "textList": "Heat\\nRonin"}}
    """
    user_id = current_user_id()
    try:
        body = parse_body(CreateSessionRequest)
    except ValidationError as e:
        if any(err["loc"][:1] == ("source",) for err in e.errors()):
            raise InvalidSourceError("Invalid source") from e
        raise

    group = get_session_service().create(
        user_id,
        body.source,
        deck_size=body.deck_size,
        nickname=current_nickname(body.nickname, "Host"),
    )
    set_group_session_id(group.id)
    return jsonify({
        "status": "success",
        "sessionId": group.id,
        "roomCode": group.code,
        "deckSize": len(group.deck),
    }), 201


@bp.route("/join", methods=["POST"])
def join_session():
    user_id = current_user_id()
    body = parse_body(JoinSessionRequest)
    group = get_session_service().join(body.code, user_id, current_nickname(body.nickname, "Guest"))
    return jsonify({"status": "success", "sessionId": group.id})


@bp.route("/lookup", methods=["GET"])
def lookup_session():
    code = request.args.get("code", "").strip()
    if not code:
        return error_response("invalid_request", "Room code required. Use ?code=ABCD", 400)

    group = get_session_service().lookup(code)
    return jsonify({"sessionId": group.id, "code": group.code, "status": group.status})


@bp.route("/<session_id>", methods=["GET"])
def session_state(session_id):
    user_id = current_user_id()
    return jsonify(get_session_service().get_state(session_id, user_id))


@bp.route("/<session_id>/start", methods=["POST"])
def start_session(session_id):
    user_id = current_user_id()
    group = get_session_service().start(session_id, user_id)
    return jsonify({"status": "success", "session": group.to_dict()})


@bp.route("/<session_id>/swipe", methods=["POST"])
def record_swipe(session_id):
    user_id = current_user_id()
    body = parse_body(SwipeRequest)
    service = get_session_service()
    participant = service.swipe(session_id, user_id, body.movie_id, body.liked)
    return jsonify({
        "status": "success",
        "completed": participant.completed,
        "allCompleted": service.all_completed(service.get_session(session_id)),
    })


@bp.route("/<session_id>/reveal", methods=["POST"])
def reveal_session(session_id):
    user_id = current_user_id()
    service = get_session_service()
    group = service.reveal(session_id, user_id)
    return jsonify({
        "status": "success",
        "session": group.to_dict(),
        "allCompleted": service.all_completed(group),
    })


@bp.route("/<session_id>/matches", methods=["GET"])
def session_matches(session_id):
    user_id = current_user_id()
    match_ids = get_session_service().get_matches(session_id, user_id)
    return jsonify({
        "status": "success",
        "matchIds": match_ids,
        "matches": [m.to_dict() for m in movies.get_movies_by_ids(match_ids)],
    })


@bp.route("/<session_id>/prematches", methods=["GET"])
def session_prematches(session_id):
    user_id = current_user_id()
    return jsonify({"prematches": get_session_service().get_prematches(session_id, user_id)})


@bp.route("/<session_id>/select", methods=["POST"])
def select_movie(session_id):
    user_id = current_user_id()
    body = parse_body(MovieIdRequest)
    watched = get_session_service().select_movie(session_id, user_id, body.movie_id)
    return jsonify({"status": "success", "watched": watched.to_dict()})


@history_bp.route("", methods=["GET"])
def watch_history():
    """
    GET /api/history
    Movies picked in the caller's past sessions, newest first.
    """
    user_id = current_user_id()
    watched = get_session_service().history(user_id)
    if not watched:
        return jsonify({"history": []})

    records = {m.tmdb_id: m for m in movies.get_movies_by_ids([w.movie_id for w in watched])}
    history = []
    for item in watched:
        entry = item.to_dict()
        record = records.get(item.movie_id)
        entry["movie"] = record.to_dict() if record else None
        history.append(entry)
    return jsonify({"history": history})
