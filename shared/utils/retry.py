"""
Bounded retry with exponential backoff for transient log errors.

Only ``LogIOError`` instances flagged as retryable are retried;
everything else propagates on the first failure.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import structlog

from .errors import LogIOError


logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 5.0
    exponential_base: float = 2.0

    def __post_init__(self):
        self.max_attempts = max(1, int(self.max_attempts))
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.exponential_base = float(self.exponential_base)

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay with equal jitter.

        Args:
            attempt: 0-indexed attempt number

        Returns:
            Delay in seconds
        """
        base_delay = self.base_delay * (self.exponential_base ** attempt)

        # Half fixed, half random
        jitter = random.uniform(0, base_delay / 2)
        delay = (base_delay / 2) + jitter

        return min(delay, self.max_delay)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """Determine if the error raised on the 0-indexed attempt should be retried."""
        if attempt >= self.max_attempts - 1:
            return False
        return isinstance(error, LogIOError) and error.retryable


NO_RETRY = RetryConfig(max_attempts=1)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    operation_name: str,
) -> T:
    """Run ``operation`` until it succeeds or the retry budget is spent."""
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if not config.should_retry(e, attempt):
                raise
            delay = config.get_delay(attempt)
            logger.warning(
                "Retryable error, will retry",
                operation=operation_name,
                attempt=attempt + 1,
                max_attempts=config.max_attempts,
                delay_seconds=round(delay, 3),
                error=str(e)[:200],
            )
            await asyncio.sleep(delay)
            attempt += 1
