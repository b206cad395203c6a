"""Retryable error classification with exponential backoff.

Classifies errors as retryable (transient) or non-retryable (permanent).
Lifecycle commands are never retried automatically; classification is
used for logging and by the push channel to decide whether reconnecting
is worthwhile. Read-only fetches may use with_retry().

Usage:
    from fleetdash.core.retryable import backoff_delay, classify_error

    if classify_error(exc) != "permanent":
        await asyncio.sleep(backoff_delay(attempt))
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
from websockets.exceptions import ConnectionClosed, InvalidStatus, InvalidURI

from fleetdash.core.errors import CommandFailedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# httpx error classification
# =============================================================================

HTTPX_RETRYABLE = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.PoolTimeout,
    httpx.RemoteProtocolError,
)

HTTPX_NON_RETRYABLE = (
    httpx.InvalidURL,
    httpx.UnsupportedProtocol,
    httpx.TooManyRedirects,
)


def is_status_retryable(status: int) -> bool:
    """429 and 5xx are transient; other 4xx are not."""
    if status == 429:
        return True
    return status >= 500


def is_httpx_retryable(exc: Exception) -> bool:
    """Check if httpx exception is retryable."""
    if isinstance(exc, HTTPX_RETRYABLE):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return is_status_retryable(exc.response.status_code)
    return False


# =============================================================================
# Unified classification
# =============================================================================


def classify_error(exc: BaseException) -> str:
    """Classify error as 'retryable', 'permanent', or 'unknown'.

    Args:
        exc: Exception to classify

    Returns:
        'retryable': Transient error, can retry
        'permanent': Permanent error, should not retry
        'unknown': Cannot classify
    """
    if isinstance(exc, TimeoutError):
        return "retryable"

    # Command API failures carry the status code (None for transport errors)
    if isinstance(exc, CommandFailedError):
        if exc.status_code is None:
            return "retryable"
        return "retryable" if is_status_retryable(exc.status_code) else "permanent"

    # httpx errors
    if isinstance(exc, httpx.HTTPStatusError):
        return "retryable" if is_httpx_retryable(exc) else "permanent"
    if isinstance(exc, HTTPX_RETRYABLE):
        return "retryable"
    if isinstance(exc, HTTPX_NON_RETRYABLE):
        return "permanent"

    # websockets errors
    if isinstance(exc, InvalidURI):
        return "permanent"
    if isinstance(exc, InvalidStatus):
        return "retryable" if is_status_retryable(exc.response.status_code) else "permanent"
    if isinstance(exc, ConnectionClosed):
        return "retryable"

    # Undecodable or invalid response body (JSONDecodeError, ValidationError)
    if isinstance(exc, ValueError):
        return "permanent"

    # Connection refused, reset, unreachable host
    if isinstance(exc, OSError):
        return "retryable"

    return "unknown"


def is_retryable(exc: BaseException) -> bool:
    """Check if error is retryable (transient)."""
    return classify_error(exc) == "retryable"


# =============================================================================
# Backoff
# =============================================================================


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
) -> float:
    """Exponential backoff delay for a zero-based attempt number.

    Jitter spreads the delay to 50% ~ 150% of the nominal value, capped at
    max_delay.
    """
    delay = min(base_delay * (2**attempt), max_delay)
    if jitter:
        delay = min(delay * (0.5 + random.random()), max_delay)
    return delay


async def with_retry(
    coro_factory: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> T:
    """Execute a read-only async operation with exponential backoff retry.

    Only retries for retryable errors (transient failures).
    Non-retryable errors are raised immediately.

    Args:
        coro_factory: Factory function that creates new coroutine for each attempt
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 30.0)

    Returns:
        Result of successful operation

    Raises:
        Exception: The last exception if all retries fail, or immediately
                   for non-retryable errors
    """
    for attempt in range(max_retries + 1):
        try:
            return await coro_factory()
        except Exception as exc:
            error_class = classify_error(exc)

            if error_class == "permanent":
                logger.warning(
                    "Permanent error (not retrying): %s",
                    exc,
                    extra={"error_class": error_class, "attempt": attempt + 1},
                )
                raise

            if attempt == max_retries:
                logger.error(
                    "Max retries exceeded (%d attempts): %s",
                    max_retries + 1,
                    exc,
                    extra={"error_class": error_class, "attempt": attempt + 1},
                )
                raise

            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "Retryable error (attempt %d/%d, retry in %.1fs): %s",
                attempt + 1,
                max_retries + 1,
                delay,
                exc,
                extra={
                    "error_class": error_class,
                    "attempt": attempt + 1,
                    "delay": delay,
                },
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Unexpected state in with_retry")
