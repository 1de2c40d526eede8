"""
Flask hooks that bind per-request logging context.

Every request gets a request id (taken from ``X-Request-ID`` when the
caller sends one) and, for routes under ``/api/sessions/<session_id>``,
the group session id. Probe endpoints log at debug level only.
"""

import time
from flask import Flask, request, g
from cinematch.logging_config import get_logger
from cinematch.logging_context import set_request_id, set_group_session_id, clear_context

logger = get_logger(__name__)

QUIET_PATHS = ("/health", "/api/metrics")


def _log_for(path):
    return logger.debug if path in QUIET_PATHS else logger.info


def init_logging_middleware(app: Flask):
    """Register the request logging hooks on ``app``."""

    @app.before_request
    def bind_request_context():
        g.request_id = set_request_id(request.headers.get("X-Request-ID") or None)
        g.request_start_time = time.time()

        session_id = (request.view_args or {}).get("session_id")
        if session_id:
            set_group_session_id(session_id)

        _log_for(request.path)(
            "request_started",
            method=request.method,
            path=request.path,
            endpoint=request.endpoint,
            remote_addr=request.remote_addr,
        )

    @app.after_request
    def log_response(response):
        started = g.get("request_start_time")
        _log_for(request.path)(
            "request_completed",
            method=request.method,
            path=request.path,
            status_code=response.status_code,
            duration_ms=round((time.time() - started) * 1000, 2) if started else None,
        )

        if "request_id" in g:
            response.headers["X-Request-ID"] = g.request_id
        return response

    @app.teardown_request
    def release_request_context(exception=None):
        if exception is not None:
            logger.error("request_failed", path=request.path, error=str(exception), exc_info=True)
        clear_context()
