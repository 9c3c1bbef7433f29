"""Retry with exponential backoff and jitter for embedding requests."""

from __future__ import annotations

import asyncio
import logging
import random
import re
import time
from email.utils import parsedate_to_datetime
from typing import Any, Callable

import httpx

from .errors import ProviderError

logger = logging.getLogger(__name__)

# Network/API errors that are safe to retry
RETRYABLE_NETWORK_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.PoolTimeout,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    ConnectionError,
    TimeoutError,
)

# HTTP status codes that indicate transient errors worth retrying
RETRYABLE_STATUS_CODES = {
    408,  # Request Timeout
    429,  # Too Many Requests (rate limit)
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}

MAX_RETRY_DELAY = 3600.0


def is_retryable_error(error: BaseException) -> bool:
    """
    Check if an error is a transient network/server issue.

    A ProviderError is judged by the status code it carries, or by the
    transport error it wraps.

    Does NOT retry:
    - Programming errors (TypeError, ValueError, ...)
    - Client errors (400-499 except 408, 429), including auth failures
    - Malformed responses

    Does retry:
    - Network connectivity issues and timeouts
    - Server errors (5xx) and rate limits (429)
    """
    if isinstance(error, ProviderError):
        status = error.context.get("status_code")
        if status is not None:
            return status in RETRYABLE_STATUS_CODES
        cause = error.__cause__
        return cause is not None and is_retryable_error(cause)

    if isinstance(error, RETRYABLE_NETWORK_EXCEPTIONS):
        return True

    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES

    if isinstance(error, (TypeError, ValueError, AttributeError, KeyError, IndexError, AssertionError)):
        return False

    error_str = str(error).lower()

    # Non-retryable patterns (check first)
    non_retryable_hints = ["invalid", "unauthorized", "forbidden", "not found", "bad request"]
    if any(hint in error_str for hint in non_retryable_hints):
        return False

    retryable_keywords = ["timeout", "connection", "temporarily", "rate limit", "unavailable"]
    if any(hint in error_str for hint in retryable_keywords):
        return True

    # Status codes with word boundaries (avoid matching IDs like "user 503")
    retryable_codes = "|".join(str(c) for c in RETRYABLE_STATUS_CODES)
    status_pattern = rf'\b(?:http\s*)?(?:status\s*)?(?:code\s*)?(?:error\s*)?({retryable_codes})\b'
    return re.search(status_pattern, error_str, re.IGNORECASE) is not None


def parse_retry_after(response: httpx.Response | None) -> float | None:
    """
    Parse a Retry-After header (seconds or HTTP date).

    Returns:
        Delay in seconds, or None if not present/parseable
    """
    if response is None:
        return None

    retry_after = response.headers.get("retry-after")
    if not retry_after:
        return None

    delay = None
    try:
        delay = float(retry_after)
    except ValueError:
        try:
            delay = parsedate_to_datetime(retry_after).timestamp() - time.time()
        except (ValueError, TypeError) as e:
            logger.debug("Failed to parse retry-after as HTTP date '%s': %s", retry_after, e)

    if delay is None:
        return None
    return max(0.0, min(delay, MAX_RETRY_DELAY))


def _response_of(error: BaseException) -> httpx.Response | None:
    cause = error.__cause__ if isinstance(error, ProviderError) else error
    if isinstance(cause, httpx.HTTPStatusError):
        return cause.response
    return None


async def retry_with_backoff(
    coro_func: Callable[..., Any],
    *args: Any,
    max_retries: int = 3,
    base_delay: float = 2.0,
    max_delay: float = 60.0,
    jitter: float = 2.0,
    **kwargs: Any,
) -> Any:
    """
    Retry an async function with exponential backoff and jitter.

    Pattern: delay = min(base_delay * 2^attempt + random(0, jitter), max_delay)
    A Retry-After header on the failed response takes precedence.

    Raises:
        The last exception if all retries fail, or the first non-retryable one
    """
    for attempt in range(max_retries + 1):
        try:
            return await coro_func(*args, **kwargs)
        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error("All %d retries failed: %s", max_retries, str(e)[:100])
                raise

            delay = parse_retry_after(_response_of(e))
            if delay is None:
                delay = min(
                    base_delay * (2**attempt) + (random.random() * jitter),
                    max_delay,
                )

            logger.warning(
                "Retry %d/%d after error: %s. Waiting %.2fs",
                attempt + 1,
                max_retries,
                str(e)[:50],
                delay,
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Unexpected retry loop exit")


__all__ = [
    "retry_with_backoff",
    "parse_retry_after",
    "is_retryable_error",
    "RETRYABLE_NETWORK_EXCEPTIONS",
    "RETRYABLE_STATUS_CODES",
]
