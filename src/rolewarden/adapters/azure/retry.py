"""Retry strategies for Azure Resource Manager and Microsoft Graph calls.

Only throttling (429) and transport timeouts are retried. Every other
failure surfaces immediately as a RemoteCallError.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import structlog
from tenacity import RetryCallState, retry_if_exception, wait_exponential

logger = structlog.get_logger()

MIN_RETRY_AFTER_SECONDS = 1.0
MAX_RETRY_AFTER_SECONDS = 120.0


def should_retry_on_rate_limit(exception: BaseException) -> bool:
    """Check if an exception is a throttled response."""
    return (
        isinstance(exception, httpx.HTTPStatusError)
        and exception.response.status_code == 429
    )


def should_retry_on_timeout(exception: BaseException) -> bool:
    """Check if an exception is a timeout or transient connection failure."""
    return isinstance(
        exception,
        (
            httpx.ConnectTimeout,
            httpx.ReadTimeout,
            httpx.WriteTimeout,
            httpx.PoolTimeout,
            httpx.ConnectError,
        ),
    )


def should_retry_on_rate_limit_or_timeout(exception: BaseException) -> bool:
    return should_retry_on_rate_limit(exception) or should_retry_on_timeout(exception)


retry_if_rate_limit_or_timeout = retry_if_exception(should_retry_on_rate_limit_or_timeout)


def wait_rate_limit_with_backoff(retry_state: RetryCallState) -> float:
    """Honour Retry-After on 429s, back off exponentially otherwise.

    Args:
        retry_state: tenacity retry state.

    Returns:
        Seconds to wait before the next attempt.
    """
    exception = retry_state.outcome.exception() if retry_state.outcome else None

    if isinstance(exception, httpx.HTTPStatusError) and exception.response.status_code == 429:
        retry_after = exception.response.headers.get("Retry-After")
        if retry_after:
            try:
                wait_seconds = float(retry_after)
            except ValueError:
                wait_seconds = None
            if wait_seconds is not None:
                return min(max(wait_seconds, MIN_RETRY_AFTER_SECONDS), MAX_RETRY_AFTER_SECONDS)
        return float(wait_exponential(multiplier=1, min=2, max=30)(retry_state))

    return float(wait_exponential(multiplier=1, min=2, max=10)(retry_state))


def log_retry_attempt(service_name: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    """Create a before_sleep callback that logs retry attempts."""

    def before_sleep(retry_state: RetryCallState) -> None:
        exception: Any = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exception, httpx.HTTPStatusError):
            error = f"HTTP {exception.response.status_code}"
        else:
            error = type(exception).__name__
        logger.warning(
            "remote_call_retrying",
            service=service_name,
            error=error,
            attempt=retry_state.attempt_number,
            max_attempts=max_attempts,
            wait_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    return before_sleep
