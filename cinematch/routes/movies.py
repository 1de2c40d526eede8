from flask import Blueprint, jsonify, request

from cinematch import movies
from cinematch.exceptions import MovieNotFoundError
from cinematch.routes.common import error_response, register_error_handlers

bp = Blueprint("movies", __name__)
register_error_handlers(bp)


@bp.route("/search", methods=["GET"])
def search():
    """
    GET /api/movies/search?q=heat
    Up to 10 lightweight candidates (no ratings or providers).
    """
    query = request.args.get("q", "").strip()
    if not query:
        return error_response("invalid_request", "Missing q parameter.", 400)
    return jsonify({"movies": [m.to_dict() for m in movies.search_candidates(query)]})


@bp.route("/<int:movie_id>", methods=["GET"])
def movie_detail(movie_id):
    record = movies.get_or_fetch_movie(movie_id)
    if record is None:
        raise MovieNotFoundError()
    return jsonify({"movie": record.to_dict()})
