"""
Structured JSON logging configuration for Cinematch.

This module sets up structured logging using structlog with:
- JSON formatting for production
- Console formatting for development
- Request/user/group-session ID propagation via contextvars
- Log scrubbing for sensitive data (provider API keys, tokens, emails)
- Configurable log levels via environment variables
"""

import os
import re
import logging
import structlog
from typing import Any, Dict, Optional

# Log level configuration via environment variable
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Key/value shaped secrets that show up inside free-form strings
SENSITIVE_PATTERNS = {
    "api_key": re.compile(r'(api[_\-]?key["\s:=]+)([a-zA-Z0-9_\-]{16,})', re.IGNORECASE),
    "tmdb_key": re.compile(r'(tmdb[_\-]?api[_\-]?key["\s:=]+)([a-zA-Z0-9_\-]{16,})', re.IGNORECASE),
    "omdb_key": re.compile(r'(apikey=)([a-zA-Z0-9]{6,})', re.IGNORECASE),
    "gemini_key": re.compile(r'(gemini[_\-]?api[_\-]?key["\s:=]+)([a-zA-Z0-9_\-]{16,})', re.IGNORECASE),
    "bearer_token": re.compile(r'(bearer\s+)([a-zA-Z0-9_\-\.]{16,})', re.IGNORECASE),
}

# Field names whose values are always redacted
SENSITIVE_FIELD_NAMES = {
    "api_key", "apikey", "api-key",
    "tmdb_api_key", "omdb_api_key", "gemini_api_key",
    "password", "secret", "secret_key", "token",
    "authorization", "access_token", "refresh_token", "cookie",
}

# Fields that are never scrubbed (identifiers we rely on for tracing)
SAFE_FIELD_NAMES = {
    "request_id", "user_id", "group_session_id", "room_code", "event",
    "timestamp", "level", "service", "environment", "duration_ms",
    "status_code",
}

EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
GOOGLE_KEY_PATTERN = re.compile(r'AIza[A-Za-z0-9_\-]{20,}')


def scrub_sensitive_data(value: Any, parent_key: Optional[str] = None) -> Any:
    """
    Recursively scrub sensitive data from a log entry.

    Args:
        value: Value to scrub (dict, list, str or scalar)
        parent_key: Key the value was stored under, used for field-level redaction

    Returns:
        The value with secrets replaced by ``[REDACTED]``
    """
    if isinstance(value, dict):
        return {k: scrub_sensitive_data(v, k) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [scrub_sensitive_data(item, parent_key) for item in value]

    key = parent_key.lower() if isinstance(parent_key, str) else None
    if key in SAFE_FIELD_NAMES:
        return value
    if key in SENSITIVE_FIELD_NAMES:
        return "[REDACTED]"
    if not isinstance(value, str):
        return value

    scrubbed = GOOGLE_KEY_PATTERN.sub('[REDACTED]', value)
    for pattern in SENSITIVE_PATTERNS.values():
        scrubbed = pattern.sub(r'\1[REDACTED]', scrubbed)
    return EMAIL_PATTERN.sub('[EMAIL_REDACTED]', scrubbed)


def add_app_context(logger: Any, method_name: str, event_dict: Dict) -> Dict:
    """Stamp every entry with the service name and deployment environment."""
    event_dict["service"] = "cinematch"

    if os.getenv("GAE_ENV"):
        event_dict["environment"] = "gcp-app-engine"
    elif os.getenv("CLOUD_RUN_SERVICE"):
        event_dict["environment"] = "gcp-cloud-run"
    else:
        event_dict["environment"] = "local"

    return event_dict


def add_scrubbing(logger: Any, method_name: str, event_dict: Dict) -> Dict:
    """Processor wrapper around scrub_sensitive_data."""
    return scrub_sensitive_data(event_dict)


def configure_structlog():
    """
    Configure structlog for the application.

    Console rendering is used when FLASK_ENV=development or DEBUG=1,
    JSON rendering otherwise.
    """
    is_dev = os.getenv("FLASK_ENV") == "development" or os.getenv("DEBUG") == "1"

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_app_context,
        add_scrubbing,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if is_dev:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(LOG_LEVEL)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Return a configured structlog logger."""
    return structlog.get_logger(name)


configure_structlog()
