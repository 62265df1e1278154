"""Retry decorator with exponential backoff for outbound calls."""

import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)
T = TypeVar("T")


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Retry an async callable with exponential backoff.

    The delay before attempt ``n + 1`` is ``base_delay * 2**n``, capped at
    ``max_delay``. Exceptions outside ``exceptions`` propagate immediately.

    Args:
        max_attempts: Maximum number of attempts, including the first
        base_delay: Delay in seconds after the first failure
        max_delay: Upper bound for any single delay
        exceptions: Exception types that trigger a retry

    Returns:
        Decorated coroutine function
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        # Callable instances and partials have no __qualname__.
        name = getattr(func, "__qualname__", repr(func))

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            last_exception: Exception | None = None

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt == max_attempts - 1:
                        logger.error(
                            f"{name}: all {max_attempts} attempts failed: {e}"
                        )
                        break
                    delay = min(base_delay * (2**attempt), max_delay)
                    logger.warning(
                        f"{name}: attempt {attempt + 1}/{max_attempts} "
                        f"failed: {e}. Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)

            raise last_exception  # type: ignore[misc]

        return wrapper

    return decorator
