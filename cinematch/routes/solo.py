from flask import Blueprint, jsonify, request

from cinematch import movies, solo
from cinematch.routes.common import current_user_id, error_response, parse_body, register_error_handlers
from cinematch.schemas import MovieIdRequest

bp = Blueprint("solo", __name__)
register_error_handlers(bp)


def _list_endpoints(kind: str):
    """GET lists, POST adds (idempotent), DELETE removes; body {"movieId": 27205}."""

    def handler():
        user_id = current_user_id()
        if request.method == "GET":
            return jsonify({kind: solo.get_list(kind, user_id)})

        body = parse_body(MovieIdRequest)
        if request.method == "POST":
            created = solo.add_to_list(kind, user_id, body.movie_id)
            return jsonify({"status": "success", "created": created})

        removed = solo.remove_from_list(kind, user_id, body.movie_id)
        return jsonify({"status": "success", "removed": removed})

    handler.__name__ = f"{kind}_handler"
    return handler


bp.add_url_rule("/list", view_func=_list_endpoints("watchlist"), methods=["GET", "POST", "DELETE"])
bp.add_url_rule("/dismissed", view_func=_list_endpoints("dismissed"), methods=["GET", "POST", "DELETE"])


@bp.route("/movies", methods=["GET"])
def solo_movies():
    """
    GET /api/solo/movies?source=random|genre|similar&genre=28&movie=Heat
    A deck of enriched movies the caller has neither saved nor dismissed.
    """
    user_id = current_user_id()
    source = request.args.get("source", "random")
    genre = request.args.get("genre", type=int)
    movie = request.args.get("movie", "").strip() or None

    records = solo.solo_deck(user_id, source, genre=genre, movie=movie)
    return jsonify({"movies": [m.to_dict() for m in records]})


@bp.route("/search", methods=["GET"])
def solo_search():
    query = request.args.get("q", "").strip()
    if len(query) < 2:
        return error_response("invalid_request", "Query too short", 400)
    return jsonify({"movies": [m.to_dict() for m in movies.search_candidates(query)]})
