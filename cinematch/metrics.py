"""
Prometheus metrics for Cinematch.

Covers HTTP traffic, provider calls, lookup cache effectiveness and the
swiping session lifecycle (creation, swipes, completion, reveal).
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# HTTP
http_requests_total = Counter(
    'cinematch_http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration_seconds = Histogram(
    'cinematch_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint']
)

# External providers (TMDB, OMDb, Gemini, scraped pages)
external_api_calls_total = Counter(
    'cinematch_external_api_calls_total',
    'Total number of external API calls',
    ['api_name', 'status']
)

external_api_duration_seconds = Histogram(
    'cinematch_external_api_duration_seconds',
    'External API call duration in seconds',
    ['api_name']
)

# Lookup cache
cache_hits_total = Counter(
    'cinematch_cache_hits_total',
    'Total number of cache hits',
    ['cache_type']
)

cache_misses_total = Counter(
    'cinematch_cache_misses_total',
    'Total number of cache misses',
    ['cache_type']
)

# Session lifecycle
sessions_created_total = Counter(
    'cinematch_sessions_created_total',
    'Total number of swiping sessions created',
    ['source']  # filters, url, text
)

swipes_recorded_total = Counter(
    'cinematch_swipes_recorded_total',
    'Total number of swipes recorded',
    ['liked']
)

participants_completed_total = Counter(
    'cinematch_participants_completed_total',
    'Total number of participants who swiped their whole deck'
)

sessions_revealed_total = Counter(
    'cinematch_sessions_revealed_total',
    'Total number of sessions moved to revealed'
)

# Deck building
deck_size = Histogram(
    'cinematch_deck_size',
    'Number of movies in built decks',
    ['source'],
    buckets=(0, 5, 10, 15, 20, 25, 30, 40, 50)
)

deck_build_duration_seconds = Histogram(
    'cinematch_deck_build_duration_seconds',
    'Deck build duration in seconds',
    ['source']
)


def track_external_call(api_name, success=True, duration=None):
    """
    Record one call to an external provider.

    Args:
        api_name: Provider name (e.g., 'tmdb', 'omdb')
        success: Whether the call returned usable data
        duration: Duration in seconds (optional)
    """
    status = 'success' if success else 'error'
    external_api_calls_total.labels(api_name=api_name, status=status).inc()
    if duration is not None:
        external_api_duration_seconds.labels(api_name=api_name).observe(duration)


def track_cache_operation(cache_type, hit=True):
    """Record a cache hit or miss for the given cache type."""
    if hit:
        cache_hits_total.labels(cache_type=cache_type).inc()
    else:
        cache_misses_total.labels(cache_type=cache_type).inc()


def track_session_created(source):
    sessions_created_total.labels(source=source).inc()


def track_swipe(liked):
    swipes_recorded_total.labels(liked='true' if liked else 'false').inc()


def track_participant_completed():
    participants_completed_total.inc()


def track_reveal():
    sessions_revealed_total.inc()


def track_deck_built(source, size, duration):
    """
    Record a finished deck build.

    Args:
        source: Source type ('filters', 'url', 'text')
        size: Number of movie ids in the deck
        duration: Build duration in seconds
    """
    deck_size.labels(source=source).observe(size)
    deck_build_duration_seconds.labels(source=source).observe(duration)


def get_metrics():
    """
    Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics_text, content_type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
