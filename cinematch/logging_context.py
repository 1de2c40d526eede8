"""
Context management for request, user and group-session ID propagation.

Values live in contextvars so they are isolated per request thread and are
merged into every structlog entry by ``merge_contextvars``.
"""

import uuid
from contextvars import ContextVar
from typing import Optional
import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
group_session_id_var: ContextVar[Optional[str]] = ContextVar("group_session_id", default=None)


def generate_request_id() -> str:
    return str(uuid.uuid4())


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID in context.

    Args:
        request_id: Optional request ID (a new one is generated when omitted,
            e.g. when the caller did not send X-Request-ID)

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = generate_request_id()

    request_id_var.set(request_id)
    structlog.contextvars.bind_contextvars(request_id=request_id)
    return request_id


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_user_id(user_id: str) -> str:
    """Bind the acting user to the logging context."""
    user_id_var.set(user_id)
    structlog.contextvars.bind_contextvars(user_id=user_id)
    return user_id


def get_user_id() -> Optional[str]:
    return user_id_var.get()


def set_group_session_id(session_id: str) -> str:
    """Bind the swiping session being operated on to the logging context."""
    group_session_id_var.set(session_id)
    structlog.contextvars.bind_contextvars(group_session_id=session_id)
    return session_id


def get_group_session_id() -> Optional[str]:
    return group_session_id_var.get()


def clear_context():
    """Clear all context variables after a request finishes."""
    request_id_var.set(None)
    user_id_var.set(None)
    group_session_id_var.set(None)
    structlog.contextvars.clear_contextvars()


def bind_context(**kwargs):
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys):
    structlog.contextvars.unbind_contextvars(*keys)
