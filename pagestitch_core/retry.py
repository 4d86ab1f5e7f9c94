"""
Retry Logic for Document Probing

Retries async calls with exponential backoff. Used for conditions that
are expected to clear on their own, such as a document that has not
finished loading.

Usage:
    from pagestitch_core.retry import execute_with_retry

    geometry = await execute_with_retry(
        probe, target,
        max_attempts=3,
        retryable_exceptions=(TargetNotReadyError,),
    )
"""

import asyncio
import logging
from typing import Callable, Tuple, Type

from .errors import RetryExhaustedError

logger = logging.getLogger(__name__)


async def execute_with_retry(
    func: Callable,
    *args,
    max_attempts: int = 3,
    initial_delay: float = 0.2,
    max_delay: float = 5.0,
    exponential_base: float = 2.0,
    retryable_exceptions: Tuple[Type[BaseException], ...] = (TimeoutError,),
    **kwargs
):
    """
    Execute an async function with retry logic.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        max_attempts: Maximum attempts (at least one is always made)
        initial_delay: Delay before the second attempt in seconds
        max_delay: Maximum delay between attempts
        exponential_base: Base for exponential backoff calculation
        retryable_exceptions: Exceptions that trigger another attempt
        **kwargs: Keyword arguments for func

    Returns:
        Result of func

    Raises:
        RetryExhaustedError: every attempt raised a retryable exception
    """
    max_attempts = max(1, int(max_attempts))
    last_error = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            last_error = e

            if attempt == max_attempts:
                break

            delay = min(initial_delay * (exponential_base ** (attempt - 1)), max_delay)
            logger.warning(
                f"Attempt {attempt}/{max_attempts} of {getattr(func, '__name__', func)} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)

    logger.error(f"Retry exhausted after {max_attempts} attempts: {last_error}")
    raise RetryExhaustedError(f"Failed after {max_attempts} attempts: {last_error}") from last_error
