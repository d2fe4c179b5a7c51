"""Retry with exponential backoff for async callables.

Only errors accepted by the ``is_retryable`` predicate are retried; anything
else propagates on the first raise.
"""

import asyncio
import functools
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import exc as sa_exc

from libs.common.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})


def is_transient_db_error(error: BaseException) -> bool:
    """
    True for database failures that are expected to succeed on retry.

    Classification is by exception type and SQLSTATE, never by message.
    Constraint violations and programming errors are permanent.
    """
    if isinstance(error, sa_exc.TimeoutError):
        # Connection pool exhausted
        return True
    if not isinstance(error, sa_exc.DBAPIError):
        return False
    if error.connection_invalidated:
        return True
    if isinstance(error, sa_exc.OperationalError):
        # Lost connections, lock timeouts, sqlite "database is locked"
        return True
    sqlstate = getattr(error.orig, "sqlstate", None) or getattr(error.orig, "pgcode", None)
    return sqlstate in TRANSIENT_SQLSTATES


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    initial_delay: float = 0.1,
    backoff_factor: float = 2.0,
    is_retryable: Callable[[BaseException], bool] = is_transient_db_error,
    operation: Optional[str] = None,
) -> T:
    """
    Await ``func()`` until it succeeds or a non-retryable error is raised.

    The delay starts at ``initial_delay`` seconds and is multiplied by
    ``backoff_factor`` after each failed attempt. The last transient error is
    re-raised once ``max_attempts`` is spent.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    name = operation or getattr(func, "__name__", "operation")
    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except Exception as exc:
            if attempt == max_attempts or not is_retryable(exc):
                raise
            logger.warning(
                "Transient failure in %s (attempt %s/%s), retrying in %.2fs",
                name,
                attempt,
                max_attempts,
                delay,
                extra={"extra_fields": {"error": type(exc).__name__}},
            )
            await asyncio.sleep(delay)
            delay *= backoff_factor
    raise AssertionError("unreachable")


def retry_with_backoff(
    *,
    max_attempts: int = 3,
    initial_delay: float = 0.1,
    backoff_factor: float = 2.0,
    is_retryable: Callable[[BaseException], bool] = is_transient_db_error,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator form of ``retry_async`` with a fixed policy."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await retry_async(
                functools.partial(func, *args, **kwargs),
                max_attempts=max_attempts,
                initial_delay=initial_delay,
                backoff_factor=backoff_factor,
                is_retryable=is_retryable,
                operation=func.__name__,
            )

        return wrapper

    return decorator
