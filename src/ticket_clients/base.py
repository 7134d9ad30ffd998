"""Shared error types and retry helper for HTTP collaborators."""

import time
from collections.abc import Callable
from typing import TypeVar

from tenacity import wait_exponential

from src.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Statuses treated as transient: rate limiting and server-side failures
TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class NetworkError(Exception):
    """Raised when an API call fails due to a transient condition.

    Used to distinguish retryable failures from permanent ones so callers
    can retry with backoff before giving up.

    Examples of network errors that should raise this exception:
    - Connection timeout or refused connection
    - Temporary DNS failures
    - HTTP 429 (rate limited) or 5xx responses

    This exception should NOT be raised for:
    - Authentication errors (bad or expired token)
    - Permission errors
    - Invalid requests (bad JQL, unknown issue key)
    """

    pass


class JiraClientError(Exception):
    """Raised when the Jira API rejects a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class _BackoffState:
    """Minimal state object for tenacity's wait_exponential.

    Tenacity's wait functions expect a RetryCallState with an attempt_number.
    This provides a lightweight alternative to avoid importing the full class.
    """

    def __init__(self, attempt_number: int):
        self.attempt_number = attempt_number


def retry_with_backoff(
    func: Callable[[], T],
    max_attempts: int = 3,
    initial_delay: float = 2.0,
    max_delay: float = 30.0,
    description: str = "operation",
) -> T:
    """Retry a function with exponential backoff on NetworkError.

    Args:
        func: Zero-argument callable to retry
        max_attempts: Maximum number of attempts (default 3)
        initial_delay: Starting delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        description: Description for log messages

    Returns:
        The function result

    Raises:
        NetworkError: After exhausting retry attempts
    """
    backoff = wait_exponential(multiplier=1, min=initial_delay, max=max_delay)

    for attempt in range(1, max_attempts + 1):
        try:
            return func()
        except NetworkError as e:
            if attempt >= max_attempts:
                raise NetworkError(f"{description} failed after {attempt} attempts: {e}") from e

            delay = backoff(_BackoffState(attempt))  # type: ignore[arg-type]

            logger.warning(
                f"{description} failed (attempt {attempt}/{max_attempts}): {e}. "
                f"Retrying in {delay:.0f}s..."
            )
            time.sleep(delay)

    raise RuntimeError("Unexpected: retry loop exhausted without raising")
