"""Bounded retry with exponential backoff for remote operations.

The Cloud Controller is eventually consistent and occasionally flaky, so
mutating calls are retried a fixed number of times before the caller gives up.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

ORDINALS: tuple[str, ...] = (
    "First",
    "Second",
    "Third",
    "Fourth",
    "Fifth",
    "Sixth",
    "Seventh",
    "Eighth",
    "Ninth",
    "Tenth",
)

DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_MIN_DELAY_SECONDS = 1.0
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_MAX_DELAY_SECONDS = 30.0


class RetryExhausted(Exception):
    """Raised when every attempt of a retried operation failed."""

    def __init__(self, operation_name: str, attempts: int, last_error: Exception) -> None:
        super().__init__(
            f"{operation_name} failed after {attempts} attempts: {last_error}"
        )
        self.operation_name = operation_name
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Retry bounds.

    Delays grow by ``factor`` per failed attempt starting at
    ``min_delay_seconds`` and are capped at ``max_delay_seconds``. Jitter only
    ever adds to the computed delay.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    min_delay_seconds: float = DEFAULT_MIN_DELAY_SECONDS
    factor: float = DEFAULT_BACKOFF_FACTOR
    max_delay_seconds: float = DEFAULT_MAX_DELAY_SECONDS
    jitter: float = 0.2

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.min_delay_seconds < 0:
            raise ValueError("min_delay_seconds must not be negative")
        if self.factor < 1:
            raise ValueError("factor must be at least 1")
        if self.max_delay_seconds < self.min_delay_seconds:
            raise ValueError("max_delay_seconds must be >= min_delay_seconds")

    def delay_after(self, attempt: int) -> float:
        """Seconds to wait after the given 1-based failed attempt."""
        backoff = min(
            self.min_delay_seconds * (self.factor ** (attempt - 1)),
            self.max_delay_seconds,
        )
        return backoff + random.uniform(0, backoff * self.jitter)


def ordinal(attempt: int) -> str:
    """Human-readable ordinal for a 1-based attempt number."""
    if 1 <= attempt <= len(ORDINALS):
        return ORDINALS[attempt - 1]
    return f"#{attempt}"


async def retry(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    *,
    operation_name: str,
    retry_on: tuple[type[Exception], ...] = (Exception,),
) -> T:
    """Run an async operation until it succeeds or the policy is exhausted.

    Args:
        operation: Coroutine factory called with the 1-based attempt number.
        policy: Attempt count and backoff bounds.
        operation_name: Name used in log records and errors.
        retry_on: Exception types that trigger another attempt. Anything else
            propagates immediately.

    Returns:
        The operation's result.

    Raises:
        RetryExhausted: If all attempts failed with retryable errors.
    """
    last_error: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation(attempt)
        except retry_on as e:
            last_error = e

            if attempt < policy.max_attempts:
                wait_time = policy.delay_after(attempt)
                logger.warning(
                    f"{operation_name} failed, retrying",
                    extra={
                        "attempt": attempt,
                        "max_attempts": policy.max_attempts,
                        "wait_seconds": wait_time,
                        "error": str(e),
                    },
                )
                await asyncio.sleep(wait_time)

    # SAFETY: the loop runs at least once (max_attempts >= 1)
    assert last_error is not None, "Retry loop completed without setting last_error"
    raise RetryExhausted(operation_name, policy.max_attempts, last_error) from last_error
