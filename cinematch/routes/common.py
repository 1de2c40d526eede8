"""
Helpers shared by the API blueprints: caller identity, request body
validation and error rendering.
"""

import uuid
from typing import Optional, Type, TypeVar

from flask import Blueprint, current_app, jsonify, request, session
from pydantic import BaseModel, ValidationError
from werkzeug.exceptions import HTTPException

from cinematch.api_client import APIError
from cinematch.exceptions import MatchError, UpstreamError
from cinematch.logging_config import get_logger
from cinematch.logging_context import set_user_id
from cinematch.models import db

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


def current_user_id() -> str:
    """
    The caller's user id.

    Normally an anonymous id kept in the signed session cookie. When the
    app runs behind an auth proxy (``TRUST_PROXY_USER_HEADER``), the
    proxy's ``X-User-Id`` header wins; otherwise the header is ignored.
    """
    user_id = ""
    if current_app.config.get("TRUST_PROXY_USER_HEADER"):
        user_id = (request.headers.get("X-User-Id") or "").strip()
    if not user_id:
        if "user_id" not in session:
            session["user_id"] = str(uuid.uuid4())
        user_id = session["user_id"]
    set_user_id(user_id)
    return user_id


def current_nickname(from_body: Optional[str], default: str) -> str:
    nickname = (from_body or request.headers.get("X-User-Name") or "").strip()
    return nickname or default


def parse_body(model: Type[T]) -> T:
    """Validate the JSON body; ValidationError is rendered as a 400."""
    return model.model_validate(request.get_json(silent=True) or {})


def error_response(code: str, message: str, status: int, **extra):
    payload = {"status": "error", "error": code, "message": message}
    payload.update(extra)
    return jsonify(payload), status


def register_error_handlers(bp: Blueprint) -> None:
    @bp.errorhandler(MatchError)
    def handle_match_error(e: MatchError):
        if e.status_code >= 500:
            logger.error("request_rejected", error=e.code, message=e.message)
        else:
            logger.info("request_rejected", error=e.code, message=e.message)
        return jsonify(e.to_dict()), e.status_code

    @bp.errorhandler(ValidationError)
    def handle_validation_error(e: ValidationError):
        details = e.errors(include_url=False, include_context=False, include_input=False)
        return error_response("invalid_request", "Invalid request body", 400, details=details)

    @bp.errorhandler(APIError)
    def handle_api_error(e: APIError):
        db.session.rollback()
        logger.warning("upstream_failed", error_type=e.error_type.value, status_code=e.status_code)
        upstream = UpstreamError()
        return jsonify(upstream.to_dict()), upstream.status_code

    @bp.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        if isinstance(e, HTTPException):
            return e
        db.session.rollback()
        logger.error("request_error", error=str(e), exc_info=True)
        return error_response("internal_error", "An unexpected error occurred while processing your request.", 500)
