"""Retry logic with exponential backoff for Confluence API rate limits.

This module provides retry functionality specifically for handling 429 rate limit
responses from the Confluence API. It implements exponential backoff with full
jitter, honours a server-provided Retry-After delay, and fails fast for every
other error.
"""

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from .errors import ConfluenceError, RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar('T')

MAX_RETRIES = 5
BASE_DELAY = 1.0
MAX_DELAY = 30.0


def retry_on_rate_limit(func: Callable[..., T], *args, **kwargs) -> T:
    """Retry function on 429 rate limit with exponential backoff and jitter.

    Executes the given function with the provided arguments, retrying up to
    MAX_RETRIES times when a rate limit error is encountered. The wait before
    retry ``n`` is a random value in ``[0, min(MAX_DELAY, BASE_DELAY * 2**n)]``
    unless the server asked for a specific delay via Retry-After.

    Args:
        func: The function to execute with retry logic
        *args: Positional arguments to pass to the function
        **kwargs: Keyword arguments to pass to the function

    Returns:
        The return value of the function

    Raises:
        RateLimitError: If rate limit persists after MAX_RETRIES retries
        Other exceptions: Passed through immediately without retry

    Example:
        >>> result = retry_on_rate_limit(api.fetch_content, "123")
    """
    retry_after: Optional[float] = None

    for retry_num in range(MAX_RETRIES + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not _is_rate_limit_error(e):
                raise

            retry_after = _retry_after_seconds(e)

            if retry_num >= MAX_RETRIES:
                logger.error(
                    f"Rate limit persisted after {MAX_RETRIES} retries, giving up"
                )
                raise RateLimitError(retry_after) from e

            wait_time = _backoff_delay(retry_num, retry_after)
            logger.info(
                f"Rate limit hit, retrying in {wait_time:.2f}s "
                f"(retry {retry_num + 1}/{MAX_RETRIES})"
            )
            time.sleep(wait_time)

    raise RateLimitError(retry_after)


def _backoff_delay(retry_num: int, retry_after: Optional[float]) -> float:
    """Compute the wait before the next attempt."""
    if retry_after is not None and retry_after >= 0:
        return min(retry_after, MAX_DELAY)
    ceiling = min(MAX_DELAY, BASE_DELAY * (2 ** retry_num))
    return random.uniform(0, ceiling)


def _retry_after_seconds(exception: Exception) -> Optional[float]:
    """Extract a Retry-After delay from the exception, if one was sent."""
    if isinstance(exception, RateLimitError):
        return exception.retry_after

    response = getattr(exception, 'response', None)
    headers = getattr(response, 'headers', None)
    if not headers:
        return None

    value = headers.get('Retry-After')
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _is_rate_limit_error(exception: Exception) -> bool:
    """Check if an exception represents a rate limit (429) error.

    This checks for common patterns in HTTP 429 responses from various
    HTTP libraries including atlassian-python-api.

    Args:
        exception: The exception to check

    Returns:
        True if this appears to be a rate limit error, False otherwise
    """
    if isinstance(exception, RateLimitError):
        return True
    # Already translated into another kind, so its message may quote IDs
    if isinstance(exception, ConfluenceError):
        return False

    # Specific phrases only: "rate limit" alone shows up in unrelated messages
    error_msg = str(exception).lower()
    rate_limit_patterns = [
        '429',
        'too many requests',
        'rate limit exceeded',
        'rate limit hit',
        'rate limited',
    ]
    if any(pattern in error_msg for pattern in rate_limit_patterns):
        return True

    if getattr(exception, 'status_code', None) == 429:
        return True

    response = getattr(exception, 'response', None)
    if getattr(response, 'status_code', None) == 429:
        return True

    return False
