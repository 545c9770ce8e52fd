"""
Rate-limit and retry wrapper for page requests.

Error-aware, bounded retry:
- 401/403 -> fail immediately (no retry)
- 429 -> wait Retry-After (or the default) plus a buffer, then retry
- timeouts, connection errors, 5xx -> exponential backoff, then retry
- anything else -> fail immediately

The sleep function is injected so tests can simulate elapsed time.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from shopsync.config.sync_settings import SyncSettings
from shopsync.integrations.shopify.exceptions import (
    ShopifyError,
    ShopifyAPIError,
    ShopifyConnectionError,
    ShopifyRateLimitError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy configuration.

    Attributes:
        max_retries: Retries after the first attempt
        default_retry_after_seconds: Wait used when a 429 has no Retry-After
        buffer_seconds: Added to every throttling wait to avoid immediate re-throttling
        base_delay_seconds: Initial backoff for transient network/server errors
        max_delay_seconds: Backoff cap
    """
    max_retries: int = 3
    default_retry_after_seconds: float = 2.0
    buffer_seconds: float = 0.5
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0


def is_retryable(error: ShopifyError) -> bool:
    """Whether an error is transient at the page-request level."""
    if isinstance(error, (ShopifyRateLimitError, ShopifyConnectionError)):
        return True
    if isinstance(error, ShopifyAPIError):
        return error.is_server_error
    return False


def calculate_delay(error: ShopifyError, attempt: int, policy: RetryPolicy) -> float:
    """
    Seconds to wait before the next attempt.

    Args:
        error: The error from the failed attempt
        attempt: Failed attempt number (0-indexed)
        policy: Retry policy
    """
    if isinstance(error, ShopifyRateLimitError):
        wait = error.retry_after
        if wait is None or wait < 0:
            wait = policy.default_retry_after_seconds
        return wait + policy.buffer_seconds

    delay = policy.base_delay_seconds * (2 ** attempt)
    return min(delay, policy.max_delay_seconds)


async def call_with_retry(
    request: Callable[[], Awaitable[T]],
    policy: RetryPolicy = RetryPolicy(),
    sleep: Sleep = asyncio.sleep,
    resource: Optional[str] = None,
) -> T:
    """
    Run a request, retrying transient failures up to policy.max_retries times.

    Raises:
        ShopifyError: The last error once it is non-retryable or retries are exhausted
    """
    attempt = 0
    while True:
        try:
            return await request()
        except ShopifyError as e:
            if not is_retryable(e):
                raise

            if attempt >= policy.max_retries:
                logger.warning(
                    "Shopify request retries exhausted",
                    extra={
                        "resource": resource,
                        "error_type": type(e).__name__,
                        "attempts": attempt + 1,
                    },
                )
                raise

            delay = calculate_delay(e, attempt, policy)
            logger.info(
                "Retrying Shopify request after delay",
                extra={
                    "resource": resource,
                    "error_type": type(e).__name__,
                    "delay_seconds": delay,
                    "next_attempt": attempt + 2,
                    "max_attempts": policy.max_retries + 1,
                },
            )
            await sleep(delay)
            attempt += 1


def retry_policy_from_settings(settings: SyncSettings) -> RetryPolicy:
    """Build a RetryPolicy from SyncSettings."""
    return RetryPolicy(
        max_retries=settings.max_retries,
        default_retry_after_seconds=settings.default_retry_after_seconds,
        buffer_seconds=settings.retry_buffer_seconds,
    )
