"""Retry with exponential backoff for provider calls.

Only transient failures are retried: TransientProviderError, timeouts,
connection errors, and errors carrying a 429 or 5xx status. Anything else
propagates on the first attempt. When attempts run out, the last error is
re-raised unchanged.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from lean_intel.llm.errors import PermanentProviderError, TransientProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy.

    Attributes:
        max_retries: Total number of attempts
        initial_delay: Seconds to wait before the first retry
        backoff_multiplier: Factor applied to the delay after each retry
        max_delay: Upper bound for any single delay
    """

    max_retries: int = 3
    initial_delay: float = 2.0
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        """Validate policy."""
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1. Got: {self.max_retries}")
        if self.initial_delay < 0:
            raise ValueError(f"initial_delay cannot be negative. Got: {self.initial_delay}")
        if self.backoff_multiplier < 1:
            raise ValueError(
                f"backoff_multiplier must be at least 1. Got: {self.backoff_multiplier}"
            )

    def delay_for(self, retry_number: int) -> float:
        """Delay before the given retry (1-based)."""
        delay = self.initial_delay * self.backoff_multiplier ** (retry_number - 1)
        return min(delay, self.max_delay)


def is_retryable_error(error: BaseException) -> bool:
    """Check whether an error is a transient failure worth retrying."""
    if isinstance(error, PermanentProviderError):
        return False
    if isinstance(error, TransientProviderError):
        return True
    if isinstance(error, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
        return True

    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if isinstance(status, int):
        return status == 429 or 500 <= status < 600

    return False


def get_retry_after(error: BaseException) -> float | None:
    """Return the vendor-requested wait in seconds, if the error carries one."""
    retry_after = getattr(error, "retry_after", None)
    if isinstance(retry_after, (int, float)) and retry_after > 0:
        return float(retry_after)
    return None


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    sleep: SleepFn = asyncio.sleep,
    description: str = "API call",
) -> T:
    """Run an async operation, retrying transient failures.

    Args:
        operation: Zero-argument coroutine function
        policy: Retry policy (defaults to 3 attempts, 2s initial delay)
        sleep: Awaitable sleep function (injectable for tests)
        description: Label used in log messages

    Returns:
        The operation's result

    Raises:
        Exception: The last error from the operation, unmodified
    """
    policy = policy or RetryPolicy()

    for attempt in range(1, policy.max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt >= policy.max_retries or not is_retryable_error(e):
                raise

            retry_after = get_retry_after(e)
            delay = min(retry_after, policy.max_delay) if retry_after else policy.delay_for(attempt)

            logger.warning(
                "%s failed (attempt %d/%d): %s",
                description,
                attempt,
                policy.max_retries,
                e,
            )
            logger.info("Retrying in %.1fs...", delay)
            await sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RuntimeError("retry loop exited without a result")
