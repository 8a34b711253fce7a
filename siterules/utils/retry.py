"""
Retry utilities for catalog fetches.

A RetryPolicy bounds the number of attempts and spaces them with doubling
backoff. Only exceptions listed in the policy are retried; anything else is
re-raised immediately.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from siterules.errors import PartitionLoadError
from siterules.utils.logging import get_logger

logger = get_logger(__name__)


class RetryExhaustedError(Exception):
    """Raised when all retry attempts are exhausted.

    Attributes:
        message: Error description
        attempts: Number of attempts made
        last_error: The last exception that caused failure
    """

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Exception | None = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy for partition and catalog fetches.

    The delay after failed attempt n (0-indexed) is
    ``min(base_delay * 2**n, max_delay)``: 0.1 s, 0.2 s, 0.4 s, ... by default.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Delay after the first failed attempt, in seconds
        max_delay: Upper bound for any single delay, in seconds
        retryable_exceptions: Exception types worth another attempt

    Example:
        >>> RetryPolicy().delay_for(2)
        0.4
        >>> RetryPolicy().should_retry(KeyError("x"))
        False
    """

    max_attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 5.0
    retryable_exceptions: tuple[type[Exception], ...] = (
        PartitionLoadError,
        ConnectionError,
        TimeoutError,
        OSError,
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")

    def should_retry(self, exc: Exception) -> bool:
        return isinstance(exc, self.retryable_exceptions)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt."""
        if attempt < 0:
            raise ValueError("attempt must be non-negative")
        return min(self.base_delay * 2**attempt, self.max_delay)


T = TypeVar("T")


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy | None = None,
    operation_name: str | None = None,
    **kwargs: Any,
) -> T:
    """Execute async function with bounded retries.

    Sleeps between attempts only; no delay follows the final attempt.

    Args:
        func: Async function to call
        *args: Positional arguments for func
        policy: Retry policy (default: RetryPolicy())
        operation_name: Name for logging (default: func.__name__)
        **kwargs: Keyword arguments for func

    Returns:
        Result from func

    Raises:
        RetryExhaustedError: When all attempts failed with retryable errors
        Exception: When a non-retryable error occurs
    """
    if policy is None:
        policy = RetryPolicy()

    op_name = operation_name or getattr(func, "__name__", "operation")
    last_error: Exception | None = None

    for attempt in range(policy.max_attempts):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            last_error = e

            if not policy.should_retry(e):
                logger.warning(
                    "Non-retryable exception",
                    operation=op_name,
                    error_type=type(e).__name__,
                    error=str(e),
                    attempt=attempt + 1,
                )
                raise

            if attempt + 1 >= policy.max_attempts:
                logger.warning(
                    "Attempt failed, no retries left",
                    operation=op_name,
                    error=str(e),
                    attempt=attempt + 1,
                    max_attempts=policy.max_attempts,
                )
                break

            delay = policy.delay_for(attempt)
            logger.info(
                "Retrying after exception",
                operation=op_name,
                error_type=type(e).__name__,
                error=str(e),
                attempt=attempt + 1,
                max_attempts=policy.max_attempts,
                delay_seconds=round(delay, 3),
            )
            await asyncio.sleep(delay)

    raise RetryExhaustedError(
        f"{op_name} failed after {policy.max_attempts} attempts",
        attempts=policy.max_attempts,
        last_error=last_error,
    )
