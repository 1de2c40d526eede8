# Provider keys must be in the environment before the tools module reads them
import cinematch.secret_helper as secret_helper
secret_helper.inject_api_keys()

# Initialize structured logging early
from cinematch.logging_config import get_logger, configure_structlog
configure_structlog()

import os
import time
from typing import Any, Dict, Optional

from flask import Flask, Response, jsonify, request
from sqlalchemy.pool import StaticPool

from cinematch.logging_middleware import init_logging_middleware
from cinematch.metrics import http_requests_total, http_request_duration_seconds, get_metrics
from cinematch.models import db
from cinematch.routes import history_bp, movies_bp, sessions_bp, solo_bp

logger = get_logger(__name__)

# Project root (parent of the cinematch package)
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _database_uri() -> str:
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        # Heroku/Render style URLs
        if database_url.startswith("postgres://"):
            database_url = "postgresql://" + database_url[len("postgres://"):]
        return database_url

    if os.getenv("GAE_ENV", "").startswith("standard") or os.getenv("CLOUD_RUN_SERVICE"):
        logger.warning(
            "database_config_warning",
            message="Using temporary SQLite database. Data will not persist between deployments.",
            recommendation="Configure Cloud SQL and set DATABASE_URL environment variable for production",
        )
        return "sqlite:////tmp/cinematch.db"

    return "sqlite:///" + os.path.join(BASE_DIR, "cinematch.db")


def create_app(overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """
    Build the Flask application.

    Args:
        overrides: config values applied last (tests pass an in-memory
            database and TESTING=True)
    """
    app = Flask(__name__)

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")
    app.config["PERMANENT_SESSION_LIFETIME"] = 60 * 60 * 24 * 30
    # Only enable behind a proxy that strips client-supplied X-User-Id
    app.config["TRUST_PROXY_USER_HEADER"] = os.getenv("TRUST_PROXY_USER_HEADER", "0") == "1"
    app.config["SQLALCHEMY_DATABASE_URI"] = _database_uri()
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config.update(overrides or {})

    if app.config["SQLALCHEMY_DATABASE_URI"] in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, or every request would see an empty database
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        })

    init_logging_middleware(app)
    db.init_app(app)

    app.register_blueprint(sessions_bp, url_prefix="/api/sessions")
    app.register_blueprint(solo_bp, url_prefix="/api/solo")
    app.register_blueprint(movies_bp, url_prefix="/api/movies")
    app.register_blueprint(history_bp, url_prefix="/api/history")

    @app.before_request
    def before_request_metrics():
        request._start_time = time.time()

    @app.after_request
    def after_request_metrics(response):
        if hasattr(request, "_start_time"):
            duration = time.time() - request._start_time
            endpoint = request.endpoint or "unknown"
            http_requests_total.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
            http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(duration)
        return response

    @app.route("/health")
    def health():
        """Health check endpoint for deployment monitoring."""
        return jsonify({"status": "healthy", "service": "cinematch"}), 200

    @app.route("/api/metrics")
    def metrics():
        """
        GET /api/metrics
        Prometheus text format: HTTP traffic, provider calls, cache
        effectiveness and session lifecycle counters. No user data.
        """
        metrics_text, content_type = get_metrics()
        return Response(metrics_text, content_type=content_type)

    init_db(app)
    return app


def init_db(app: Flask) -> None:
    """Initialize database tables."""
    with app.app_context():
        db.create_all()
    logger.info("database_initialized", uri_scheme=app.config["SQLALCHEMY_DATABASE_URI"].split(":", 1)[0])


app = create_app()


if __name__ == "__main__":
    app.run(debug=True)
