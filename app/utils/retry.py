"""
Retry helpers for transient record store failures.

Exponential backoff with jitter: base, 2*base, 4*base, ...
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from app.utils.exceptions import StoreUnavailableError, is_transient


T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float) -> float:
    """
    Delay before the next attempt.

    Args:
        attempt: Zero-based attempt number that just failed
        base_delay: Base delay in seconds

    Returns:
        Delay in seconds (0 when base_delay is 0)
    """
    if base_delay <= 0:
        return 0.0
    return base_delay * (2 ** attempt) + random.uniform(0, base_delay / 2)


async def retry_transient(
    operation: Callable[[StoreUnavailableError | None], Awaitable[T]],
    *,
    attempts: int,
    base_delay: float,
    operation_name: str,
) -> T:
    """
    Run operation, retrying transient failures with exponential backoff.

    The operation receives the last StoreUnavailableError (or None on the
    first attempt) so it can resume from the checkpoint the error carries
    instead of starting over.

    Args:
        operation: Factory producing the awaitable for one attempt
        attempts: Maximum number of attempts
        base_delay: Base backoff delay in seconds
        operation_name: Name used in log messages

    Returns:
        Result of the first successful attempt

    Raises:
        StoreUnavailableError: When all attempts failed
        Exception: Any non-transient error, immediately
    """
    last_error: StoreUnavailableError | None = None

    for attempt in range(attempts):
        try:
            result = await operation(last_error)

            if attempt > 0:
                logger.success(
                    f"{operation_name} succeeded on attempt {attempt + 1}"
                )
            return result

        except Exception as e:
            if not is_transient(e):
                raise

            if isinstance(e, StoreUnavailableError):
                last_error = e
            else:
                last_error = StoreUnavailableError(str(e))
                last_error.__cause__ = e

            if attempt < attempts - 1:
                delay = backoff_delay(attempt, base_delay)
                logger.warning(
                    f"{operation_name} failed on attempt {attempt + 1}/{attempts}, "
                    f"retrying in {delay:.2f}s",
                    extra={"error": str(e)},
                )
                await asyncio.sleep(delay)
            else:
                logger.error(
                    f"{operation_name} failed after {attempts} attempts",
                    extra={"error": str(e)},
                )

    assert last_error is not None
    raise last_error
