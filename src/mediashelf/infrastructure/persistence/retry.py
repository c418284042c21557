# Hey future me - "database is locked" is TEMPORARY. The scan writer and an upsert from a
# reconciliation (or another process holding the file) can collide; waiting and retrying
# almost always works. This decorator adds exponential backoff to single-statement writes.
#
# USAGE:
#   @with_db_retry(max_attempts=3)
#   async def upsert_one(self, record: MediaRecord) -> None:
#       ...
"""Database retry utilities for handling SQLite lock errors."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def is_lock_error(exception: BaseException) -> bool:
    """Check if an exception is a retryable SQLite lock error."""
    if not isinstance(exception, OperationalError):
        return False
    error_msg = str(exception).lower()
    return "locked" in error_msg or "busy" in error_msg


def with_db_retry(
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    backoff_factor: float = 2.0,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for retrying async database operations on lock errors.

    The backoff is exponential: 0.5s -> 1s -> 2s (capped at max_delay).
    Only lock/busy OperationalErrors are retried; everything else is
    raised immediately. The last lock error is re-raised when attempts
    run out.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            delay = initial_delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except OperationalError as e:
                    if not is_lock_error(e) or attempt == max_attempts:
                        if is_lock_error(e):
                            logger.error(
                                "Database locked after %d attempts, giving up: %s",
                                max_attempts,
                                func.__qualname__,
                            )
                        raise
                    logger.warning(
                        "Database locked (attempt %d/%d), retrying in %.1fs: %s",
                        attempt,
                        max_attempts,
                        delay,
                        func.__qualname__,
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * backoff_factor, max_delay)
            raise RuntimeError("Unexpected state in retry decorator")

        return wrapper

    return decorator
