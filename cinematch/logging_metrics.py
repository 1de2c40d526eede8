"""
Timing helpers that emit structured log events.

``track_phase`` wraps a multi-step operation (deck building, movie
enrichment) and logs started/completed/failed; ``track_external_api_call``
wraps one outbound call (a scraped page, a Gemini extraction).
"""

import time
from contextlib import contextmanager
from cinematch.logging_config import get_logger

logger = get_logger(__name__)


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


@contextmanager
def track_external_api_call(api_name: str, operation: str, **extra_context):
    """
    Log one outbound call with its latency. Failures are warnings and
    are re-raised.

    Example:
        with track_external_api_call("scrape", "letterboxd"):
            html = fetch(url)
    """
    start_time = time.time()
    try:
        yield
    except Exception as e:
        logger.warning(
            "external_api_call_failed",
            api_name=api_name,
            operation=operation,
            duration_ms=_elapsed_ms(start_time),
            error=str(e),
            **extra_context
        )
        raise
    logger.debug(
        "external_api_call_completed",
        api_name=api_name,
        operation=operation,
        duration_ms=_elapsed_ms(start_time),
        **extra_context
    )


def log_phase(phase: str, status: str, **extra_context):
    """Log a phase transition; failures are logged at error level."""
    log_level = logger.error if status == "failed" else logger.info
    log_level("pipeline_phase", phase=phase, status=status, **extra_context)


@contextmanager
def track_phase(phase: str, **extra_context):
    """
    Track a pipeline phase from start to finish.

    Example:
        with track_phase("deck_build", source="filters"):
            builder.build(source, limit)
    """
    start_time = time.time()
    log_phase(phase, "started", **extra_context)
    try:
        yield
    except Exception as e:
        log_phase(phase, "failed", duration_ms=_elapsed_ms(start_time), error=str(e), **extra_context)
        raise
    log_phase(phase, "completed", duration_ms=_elapsed_ms(start_time), **extra_context)
