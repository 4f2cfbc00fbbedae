"""
Bounded retry with exponential backoff.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

T = TypeVar('T')

logger = logging.getLogger(__name__)


class BackoffPolicy:
    """Exponential backoff: initial * factor^(attempt-1), capped at max_delay.

    Delays are in seconds. ``attempt`` counts from 1 (the delay after the
    first failure)."""

    def __init__(self, initial_delay: float = 1.0, max_delay: float = 10.0,
                 factor: float = 2.0) -> None:
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.factor = factor

    def get_delay(self, attempt: int) -> float:
        return min(self.max_delay, self.initial_delay * (self.factor ** max(attempt - 1, 0)))


async def retry_async(operation: Callable[[], Awaitable[T]], max_attempts: int,
                      backoff: BackoffPolicy,
                      retry_on: Tuple[Type[BaseException], ...] = (Exception,),
                      description: str = "operation") -> T:
    """
    Run ``operation`` up to ``max_attempts`` times.

    Sleeps between attempts according to ``backoff``; no sleep follows the
    final attempt. The last error is re-raised once attempts are exhausted.
    """
    last_error: BaseException = RuntimeError(f"{description}: no attempts made")

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            last_error = e
            if attempt < max_attempts:
                delay = backoff.get_delay(attempt)
                logger.info(f"Retry {attempt}/{max_attempts} for {description} after {delay:.2f}s: {e}")
                await asyncio.sleep(delay)
            else:
                logger.warning(f"{description} failed after {max_attempts} attempts: {e}")

    raise last_error
