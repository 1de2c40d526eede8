"""
MovieDataClient: HTTP client shared by the TMDB, OMDb and list-page fetchers.

Every outbound call goes through ``MovieDataClient.get`` which adds timeouts,
retries with exponential backoff, provider metrics and a uniform error
taxonomy:

- TransientError: network failures and 5xx, retried
- QuotaError: 429, retried then raised
- AuthError: 401/403, raised immediately
- NotFoundError: 404, raised immediately
- APIError: anything else

The client keeps one requests.Session per instance for connection pooling
and is safe to share between the worker threads used for enrichment.
"""

import os
import time
import logging
import requests
from typing import Dict, Any, Optional
from enum import Enum

from cinematch.metrics import track_external_call

logger = logging.getLogger(__name__)


class APIErrorType(Enum):
    """Classification of provider errors."""
    TRANSIENT = "transient"
    AUTH = "auth"
    QUOTA = "quota"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


class APIError(Exception):
    """Base exception for all provider errors."""

    def __init__(self, message: str, error_type: APIErrorType = APIErrorType.UNKNOWN,
                 status_code: Optional[int] = None, original_error: Optional[Exception] = None):
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.original_error = original_error
        super().__init__(message)


class TransientError(APIError):
    def __init__(self, message: str, status_code: Optional[int] = None,
                 original_error: Optional[Exception] = None):
        super().__init__(message, APIErrorType.TRANSIENT, status_code, original_error)


class AuthError(APIError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, APIErrorType.AUTH, status_code)


class QuotaError(APIError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, APIErrorType.QUOTA, status_code)


class NotFoundError(APIError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, APIErrorType.NOT_FOUND, status_code)


_ERROR_CLASSES = {
    APIErrorType.AUTH: AuthError,
    APIErrorType.QUOTA: QuotaError,
    APIErrorType.NOT_FOUND: NotFoundError,
}

RETRYABLE = (APIErrorType.TRANSIENT, APIErrorType.QUOTA)


def classify_status(status: int) -> APIErrorType:
    """Map an HTTP status code to an error type."""
    if status in (401, 403):
        return APIErrorType.AUTH
    if status == 404:
        return APIErrorType.NOT_FOUND
    if status == 429:
        return APIErrorType.QUOTA
    if 500 <= status < 600:
        return APIErrorType.TRANSIENT
    return APIErrorType.UNKNOWN


def build_error(error_type: APIErrorType, message: str, status_code: Optional[int] = None,
                original_error: Optional[Exception] = None) -> APIError:
    """Instantiate the exception class matching ``error_type``."""
    if error_type == APIErrorType.TRANSIENT:
        return TransientError(message, status_code, original_error)
    error_cls = _ERROR_CLASSES.get(error_type)
    if error_cls is not None:
        return error_cls(message, status_code)
    return APIError(message, error_type, status_code, original_error)


class MovieDataClient:
    """
    HTTP client for movie providers with retry logic and error handling.

    Configuration via environment variables:
    - API_CLIENT_TIMEOUT: Default timeout in seconds (default: 3.0)
    - API_CLIENT_MAX_RETRIES: Maximum retry attempts (default: 3)
    - API_CLIENT_BACKOFF_BASE: Base delay for exponential backoff in seconds (default: 0.5)
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        user_agent: Optional[str] = None
    ):
        self.timeout = timeout or float(os.getenv("API_CLIENT_TIMEOUT", "3.0"))
        self.max_retries = max_retries if max_retries is not None else int(os.getenv("API_CLIENT_MAX_RETRIES", "3"))
        self.backoff_base = backoff_base or float(os.getenv("API_CLIENT_BACKOFF_BASE", "0.5"))

        self.session = requests.Session()
        self.session.headers["User-Agent"] = user_agent or "Mozilla/5.0 (compatible; Cinematch/1.0)"

        logger.info(
            "MovieDataClient initialized: timeout=%ss, max_retries=%s, backoff_base=%ss",
            self.timeout, self.max_retries, self.backoff_base
        )

    def _calculate_backoff(self, attempt: int) -> float:
        # 0.5s, 1s, 2s with the defaults
        return self.backoff_base * (2 ** attempt)

    def _should_retry(self, error_type: APIErrorType, attempt: int) -> bool:
        return attempt < self.max_retries and error_type in RETRYABLE

    def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        api_name: str = "API"
    ) -> requests.Response:
        """
        Make a GET request with retry logic and error handling.

        Args:
            url: Request URL
            params: Query parameters
            headers: Extra request headers
            timeout: Override default timeout for this request
            api_name: Provider name used for logging and metrics

        Returns:
            The successful (2xx) response

        Raises:
            AuthError, QuotaError, NotFoundError, TransientError, APIError
        """
        request_timeout = timeout or self.timeout
        started = time.time()
        attempt = 0

        while True:
            try:
                response = self.session.get(url, params=params, headers=headers, timeout=request_timeout)
            except requests.exceptions.RequestException as e:
                error_type = APIErrorType.TRANSIENT
                error = build_error(error_type, f"{api_name} request failed: {type(e).__name__}: {e}", None, e)
            else:
                if response.ok:
                    if attempt > 0:
                        logger.info("[%s] Request succeeded after %s attempt(s)", api_name, attempt + 1)
                    track_external_call(api_name.lower(), True, time.time() - started)
                    return response
                error_type = classify_status(response.status_code)
                error = build_error(
                    error_type,
                    f"{api_name} request failed with status {response.status_code}: {response.text[:200]}",
                    response.status_code
                )

            if not self._should_retry(error_type, attempt):
                logger.warning("[%s] %s", api_name, error.message)
                track_external_call(api_name.lower(), False, time.time() - started)
                raise error

            delay = self._calculate_backoff(attempt)
            logger.info(
                "[%s] Retrying after %ss (attempt %s/%s, error_type=%s)",
                api_name, delay, attempt + 1, self.max_retries, error_type.value
            )
            time.sleep(delay)
            attempt += 1

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None,
                 api_name: str = "API", **kwargs) -> Dict[str, Any]:
        """GET and decode a JSON body; a malformed body is an APIError."""
        response = self.get(url, params=params, api_name=api_name, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"{api_name} returned invalid JSON", APIErrorType.UNKNOWN,
                           response.status_code, e)

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
