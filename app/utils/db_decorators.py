"""
Database decorators for automatic error handling and rollback.

Provides decorators to automatically handle database errors and rollbacks
in async functions and service methods that use SQLAlchemy sessions.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession


T = TypeVar("T")


def _resolve_session(args: tuple, kwargs: dict) -> AsyncSession | None:
    """
    Find the session of a decorated call.

    Looks at the 'session' keyword, then the first positional argument,
    then a 'session' attribute on the first positional argument (services).
    """
    session = kwargs.get('session')
    if session is not None:
        return session

    if not args:
        return None

    if isinstance(args[0], AsyncSession):
        return args[0]

    candidate = getattr(args[0], 'session', None)
    if isinstance(candidate, AsyncSession):
        return candidate
    return None


async def _rollback_after(
    session: AsyncSession, func_name: str, error: Exception
) -> None:
    """Roll back after a failed call; a failing rollback is logged only."""
    try:
        await session.rollback()
    except Exception as rollback_error:
        logger.error(
            "Rollback failed",
            extra={"function": func_name, "error": str(rollback_error)},
            exc_info=True,
        )
        return

    logger.info(
        "Rolled back",
        extra={"function": func_name, "error_type": type(error).__name__},
    )


def with_rollback_on_error(func: Callable[..., T]) -> Callable[..., T]:
    """
    Roll the session back when the wrapped call raises, then re-raise.

    Usage:
        class PinService:
            @with_rollback_on_error
            async def assign_next_unused(self, member_id: int):
                ...

    Args:
        func: Async function to wrap. Must accept 'session' as a keyword
              argument, take it as the first positional argument, or be
              a method of an object exposing 'session'.

    Returns:
        Wrapped function with automatic rollback on error
    """
    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        session = _resolve_session(args, kwargs)
        if session is None:
            logger.warning(
                "No session found, rollback disabled",
                extra={"function": func.__name__},
            )
            return await func(*args, **kwargs)

        try:
            return await func(*args, **kwargs)
        except Exception as e:
            await _rollback_after(session, func.__name__, e)
            raise

    return wrapper


def with_auto_commit(func: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator that commits the session on success and rolls back on error.

    Usage:
        class PinService:
            @with_auto_commit
            async def generate_bulk(self, count: int, admin_id: int | None):
                ...
                # Commit happens automatically

    Args:
        func: Async function to wrap (same session lookup as
              with_rollback_on_error).

    Returns:
        Wrapped function with automatic commit/rollback
    """
    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        session = _resolve_session(args, kwargs)
        if session is None:
            logger.warning(
                "No session found, auto-commit disabled",
                extra={"function": func.__name__},
            )
            return await func(*args, **kwargs)

        try:
            result = await func(*args, **kwargs)
            await session.commit()
        except Exception as e:
            await _rollback_after(session, func.__name__, e)
            raise

        logger.debug("Committed", extra={"function": func.__name__})
        return result

    return wrapper
