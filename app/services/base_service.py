"""
Base service class.

Provides common functionality for workflow services: session management,
a logger bound to the service name and an operation timing decorator.
"""

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession


T = TypeVar("T")


class BaseService:
    """
    Base service class.

    Holds the session shared with repositories and a logger bound to
    the concrete service name.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize base service.

        Args:
            session: Async database session
        """
        self.session = session
        self.logger = logger.bind(service=self.__class__.__name__)

    async def commit(self) -> None:
        """Commit current transaction."""
        await self.session.commit()

    async def rollback(self) -> None:
        """Rollback current transaction."""
        await self.session.rollback()


def log_operation(func: Callable[..., T]) -> Callable[..., T]:
    """
    Log a workflow step with its target id and duration.

    The first positional argument (a request or member id) is logged as
    ``target_id``. Errors are logged and re-raised; tuple results whose
    second item is an error message are logged as refused.

    Usage:
        @log_operation
        async def approve(self, request_id: int, admin_id: int):
            ...
    """
    @functools.wraps(func)
    async def wrapper(self: BaseService, *args: Any, **kwargs: Any) -> Any:
        started = time.monotonic()
        context = {
            "operation": func.__name__,
            "target_id": args[0] if args else None,
        }

        try:
            result = await func(self, *args, **kwargs)
        except Exception as e:
            self.logger.error(
                f"{func.__name__} failed",
                extra={
                    **context,
                    "duration_seconds": round(time.monotonic() - started, 3),
                    "error": str(e),
                },
                exc_info=True,
            )
            raise

        refused = isinstance(result, tuple) and len(result) == 2 and result[1]
        self.logger.info(
            f"{func.__name__} {'refused' if refused else 'done'}",
            extra={
                **context,
                "duration_seconds": round(time.monotonic() - started, 3),
                "reason": result[1] if refused else None,
            },
        )
        return result

    return wrapper
