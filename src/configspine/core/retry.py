"""Bounded retry with exponential backoff and jitter.

Used only around the network source's remote calls.

Delay before retry ``n`` (zero-based)::

    min(max_delay, min_delay * factor ** n) + uniform(0, delay * jitter_range)

Example:
    >>> policy = RetryPolicy(max_retries=3, min_delay=1.0, jitter=False)
    >>> [policy.next_delay(n) for n in range(4)]
    [1.0, 2.0, 4.0, 8.0]
    >>> content = await policy.execute(lambda: client.fetch("app.json"))
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from configspine.core.errors import ConfigSpineError, TransientSourceFailure
from configspine.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


@dataclass
class RetryPolicy:
    """Exponential backoff with optional jitter.

    Attributes:
        max_retries: Retries after the first failed call (total calls = max_retries + 1)
        min_delay: Initial delay in seconds
        factor: Exponential multiplier
        max_delay: Delay cap in seconds
        jitter: Add randomness to prevent thundering herd
        jitter_range: Upper bound of jitter as a fraction of the delay
        sleep: Awaitable sleep, injectable for tests
    """

    max_retries: int = 3
    min_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 60.0
    jitter: bool = True
    jitter_range: float = 0.5
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def next_delay(self, attempt: int) -> float:
        """Calculate the delay before retry number ``attempt`` (zero-based)."""
        delay = min(self.max_delay, self.min_delay * (self.factor ** attempt))

        if self.jitter:
            delay += random.uniform(0, delay * self.jitter_range)

        return delay

    def should_retry(self, attempt: int, error: Exception) -> bool:
        """Check whether another call is allowed after ``attempt`` failures.

        Errors that declare themselves permanent (``retryable=False``) are
        never retried; anything else is, up to ``max_retries``.
        """
        if attempt > self.max_retries:
            return False
        if isinstance(error, ConfigSpineError) and not error.retryable:
            return False
        return True

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        description: str = "operation",
    ) -> T:
        """Run ``operation`` until it succeeds or the retry budget is spent.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            description: Label used in log events

        Returns:
            The first successful result

        Raises:
            The underlying error when it is not retryable, or
            TransientSourceFailure wrapping the last error once retries are exhausted
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as e:
                if isinstance(e, ConfigSpineError) and not e.retryable:
                    raise

                if not self.should_retry(attempt, e):
                    logger.warning(
                        "retry_exhausted",
                        operation=description,
                        attempts=attempt,
                        error=str(e),
                    )
                    raise TransientSourceFailure(
                        f"{description} failed after {attempt} attempts: {e}",
                        attempts=attempt,
                        cause=e,
                    ) from e

                delay = self.next_delay(attempt - 1)
                logger.debug(
                    "retry_scheduled",
                    operation=description,
                    attempt=attempt,
                    delay_seconds=round(delay, 3),
                    error=str(e),
                )
                await self.sleep(delay)


__all__ = ["RetryPolicy"]
