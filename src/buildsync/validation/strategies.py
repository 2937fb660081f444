"""
Retry strategies.

The only operation that is retried is the refresh request handed to the
consuming import step, which may report itself busy and ask to be called
again later.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


async def async_retry(
    func: Callable[[], Awaitable[T]],
    retry_on: Tuple[Type[BaseException], ...],
    delay: float = 1.0,
    max_attempts: int = 0,
    context: str = "operation"
) -> T:
    """
    Await ``func`` until it stops raising one of ``retry_on``.

    Args:
        func: Coroutine factory to call on every attempt
        retry_on: Exception types that mean "try again later"
        delay: Delay between attempts in seconds
        max_attempts: Maximum number of attempts, 0 for no limit
        context: Context description for log messages

    Returns:
        Result from func once it succeeds

    Raises:
        Exception: The last retryable exception once attempts are exhausted,
            or any non-retryable exception immediately
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            result = await func()
            if attempt > 1:
                logger.info(f"Operation '{context}' succeeded on attempt {attempt}")
            return result
        except retry_on as e:
            if max_attempts and attempt >= max_attempts:
                logger.error(f"All {max_attempts} attempts failed for {context}: {e}")
                raise
            logger.debug(f"Attempt {attempt} failed for {context}: {e}; retrying in {delay}s")
            await asyncio.sleep(delay)
