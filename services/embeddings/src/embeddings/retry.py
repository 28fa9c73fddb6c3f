"""
Retry policy for embedding calls.

Only errors that look transient are retried: transport failures and
timeouts, HTTP 408/429/5xx answers, and provider messages that mention
rate limiting or a dropped connection. Everything else, including a
malformed vector, fails the phrase on the first attempt.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger()

MAX_BACKOFF_S = 30.0
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
_RETRYABLE_MESSAGES = (
    "econnreset",
    "econnrefused",
    "etimedout",
    "rate limit",
    "too many requests",
    "service temporarily unavailable",
)


def is_retryable_error(exc: BaseException) -> bool:
    """Return ``True`` if *exc* is worth another attempt."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError)):
        return True
    message = str(exc).lower()
    return any(pattern in message for pattern in _RETRYABLE_MESSAGES)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "embedding_retry_scheduled",
        attempt=retry_state.attempt_number,
        delay_s=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc),
    )


def embedding_retrying(
    max_retries: int,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncRetrying:
    """Build the retry controller used for one phrase.

    Backoff doubles from 2s (2s, 4s, 8s, ...) and is capped at
    :data:`MAX_BACKOFF_S`. The last error is re-raised once
    ``max_retries`` retries are spent.

    Args:
        max_retries: Retries after the first attempt.
        sleep: Awaitable sleep used between attempts.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=2, max=MAX_BACKOFF_S),
        retry=retry_if_exception(is_retryable_error),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
