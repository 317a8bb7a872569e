"""Retry with exponential backoff for short, idempotent link operations.

The monitor loop never retries: the next cycle is the retry. This decorator
is for helper calls such as Wi-Fi rescans that fail transiently while the
radio is busy.
"""

import asyncio
import functools
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy.

    Attributes:
        max_attempts: Total attempts, including the first
        base_delay: Delay before the first retry in seconds
        max_delay: Upper bound for any single delay
        jitter: Randomize each delay between half and all of its value
        retry_on: Exception types that trigger another attempt
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: bool = True
    retry_on: tuple[type[Exception], ...] = (OSError,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based)."""
        delay = min(self.base_delay * 2 ** (attempt - 1), self.max_delay)
        if self.jitter:
            delay = random.uniform(delay / 2, delay)
        return delay


def async_retry(
    config: RetryConfig | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Retry an async callable according to ``config``.

    The last exception is re-raised once attempts run out; exceptions not
    listed in ``retry_on`` propagate immediately.

    Usage:
        @async_retry(RetryConfig(max_attempts=2, retry_on=(NetworkError,)))
        async def rescan():
            ...
    """
    policy = config or RetryConfig()

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except policy.retry_on as e:
                    if attempt >= policy.max_attempts:
                        logger.error(
                            "%s failed after %d attempt(s): %s", func.__qualname__, attempt, e
                        )
                        raise
                    delay = policy.delay_for(attempt)
                    logger.warning(
                        "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                        func.__qualname__,
                        attempt,
                        policy.max_attempts,
                        delay,
                        e,
                        extra={"error_type": type(e).__name__},
                    )
                    await sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
