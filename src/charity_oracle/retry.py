"""
Retry logic with capped exponential backoff.

Used by the chain submitter so a failed transaction is retried a bounded
number of times before the job is released for a later backlog pass.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from charity_oracle.config.defaults import (
    RETRY_BACKOFF_MULTIPLIER,
    RETRY_JITTER_FACTOR,
    SUBMIT_BASE_DELAY_SECONDS,
    SUBMIT_MAX_ATTEMPTS,
    SUBMIT_MAX_DELAY_SECONDS,
)

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = SUBMIT_MAX_ATTEMPTS
    base_delay: float = SUBMIT_BASE_DELAY_SECONDS
    max_delay: float = SUBMIT_MAX_DELAY_SECONDS
    backoff_multiplier: float = RETRY_BACKOFF_MULTIPLIER
    jitter: float = RETRY_JITTER_FACTOR
    retryable_exceptions: tuple = (Exception,)
    # Further filter on a caught exception; False means raise without retrying.
    retry_if: Optional[Callable[[BaseException], bool]] = None


@dataclass
class RetryStats:
    """Statistics for retry attempts."""
    attempts: int = 0
    total_delay: float = 0.0
    last_error: Optional[BaseException] = None


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay in seconds for a zero-based attempt.

    Formula: min(base * (multiplier ^ attempt), max_delay) +/- jitter
    """
    delay = config.base_delay * (config.backoff_multiplier ** attempt)
    delay = min(delay, config.max_delay)

    jitter_range = delay * config.jitter
    delay += random.uniform(-jitter_range, jitter_range)

    return max(0.0, min(delay, config.max_delay))


async def with_retry_async(
    func: Callable[..., Awaitable[Any]],
    *args,
    config: Optional[RetryConfig] = None,
    task_id: str = "unknown",
    on_retry: Optional[Callable[[int, BaseException], Awaitable[None]]] = None,
    stats: Optional[RetryStats] = None,
    **kwargs,
) -> Any:
    """
    Await ``func(*args, **kwargs)`` until it succeeds or attempts run out.

    Args:
        func: Async function to execute
        config: Retry configuration
        task_id: Identifier used in log messages
        on_retry: Optional coroutine called with (attempt, error) before sleeping
        stats: Optional RetryStats to fill in for the caller

    Raises:
        The last exception once ``max_attempts`` is exhausted, or immediately
        for exceptions outside ``retryable_exceptions``.
    """
    config = config or RetryConfig()
    stats = stats if stats is not None else RetryStats()

    while True:
        stats.attempts += 1
        try:
            return await func(*args, **kwargs)
        except asyncio.CancelledError:
            raise
        except config.retryable_exceptions as e:
            stats.last_error = e
            if config.retry_if is not None and not config.retry_if(e):
                logger.error(f"{task_id}: not retrying after attempt {stats.attempts}: {e}")
                raise
            if stats.attempts >= config.max_attempts:
                logger.error(f"{task_id}: giving up after {stats.attempts} attempts: {e}")
                raise

            delay = calculate_backoff(stats.attempts - 1, config)
            stats.total_delay += delay
            logger.warning(
                f"{task_id}: attempt {stats.attempts}/{config.max_attempts} failed ({e}); "
                f"retrying in {delay:.1f}s"
            )
            if on_retry is not None:
                await on_retry(stats.attempts, e)
            if delay > 0:
                await asyncio.sleep(delay)
