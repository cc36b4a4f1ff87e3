"""Retry logic for calls to external services."""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from attribution_engine.core.exceptions import TransportError

logger = logging.getLogger(__name__)


def exponential_backoff(
    attempt: int, base_delay: float = 1.0, max_delay: float = 60.0
) -> float:
    """Delay before retry number ``attempt`` (0-based): ``base * 2**attempt``, capped."""
    return min(base_delay * (2**attempt), max_delay)


def exponential_backoff_with_jitter(
    attempt: int, base_delay: float = 1.0, max_delay: float = 60.0, jitter: float = 0.1
) -> float:
    """Calculate exponential backoff with jitter."""
    delay = exponential_backoff(attempt, base_delay, max_delay)
    jitter_amount = delay * jitter
    return max(0.0, delay + random.uniform(-jitter_amount, jitter_amount))


class RetryPolicy:
    """Configurable retry policy for store requests."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_func: Optional[Callable[[int], float]] = None,
        retriable_exceptions: Tuple[Type[Exception], ...] = (TransportError,),
        on_retry: Optional[Callable[[Exception, int], None]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize retry policy.

        Args:
            max_attempts: Total attempts including the first one
            backoff_func: Maps a 0-based attempt number to a delay in seconds
            retriable_exceptions: Exception types that trigger a retry
            on_retry: Callback invoked before each retry
            sleep: Awaitable sleep function (replaceable in tests)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_func = backoff_func or exponential_backoff_with_jitter
        self.retriable_exceptions = retriable_exceptions
        self.on_retry = on_retry
        self._sleep = sleep

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Execute an async callable with retry logic."""
        for attempt in range(self.max_attempts):
            try:
                return await func(*args, **kwargs)

            except self.retriable_exceptions as e:
                if isinstance(e, TransportError) and not e.retryable:
                    raise

                if attempt >= self.max_attempts - 1:
                    logger.error(f"Max retry attempts ({self.max_attempts}) reached")
                    raise

                delay = self.backoff_func(attempt)

                if self.on_retry:
                    self.on_retry(e, attempt + 1)

                logger.warning(
                    f"Attempt {attempt + 1}/{self.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.2f} seconds..."
                )

                await self._sleep(delay)

        raise AssertionError("unreachable")
