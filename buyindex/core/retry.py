"""Retry logic wrapper with exponential backoff."""

import asyncio
import inspect
import time
from functools import wraps
from typing import Any, Callable, Tuple, Type, TypeVar, cast

from buyindex.core.logger import logger

F = TypeVar('F', bound=Callable[..., Any])


def with_retries(
    max_retries: int = 2,
    initial_delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> Callable[[F], F]:
    """
    A decorator that retries a function upon failure using exponential backoff.

    Works for plain functions and coroutine functions alike. Exceptions that
    are not instances of ``retry_on`` propagate immediately.

    Args:
        max_retries (int): Maximum number of retry attempts.
        initial_delay (float): Delay in seconds before the first retry.
                               Subsequent delays double with each attempt.
        retry_on (tuple): Exception types worth another attempt.

    Returns:
        Callable: The decorated function.
    """
    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                delay = initial_delay
                for attempt in range(max_retries + 1):
                    try:
                        return await func(*args, **kwargs)
                    except retry_on as e:
                        if attempt == max_retries:
                            logger.error(f"'{func.__name__}' failed after {max_retries} retries: {e}")
                            raise
                        _log_retry(func.__name__, attempt, max_retries, delay, e)
                        await asyncio.sleep(delay)
                        delay *= 2
            return cast(F, async_wrapper)

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            delay = initial_delay
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    if attempt == max_retries:
                        logger.error(f"'{func.__name__}' failed after {max_retries} retries: {e}")
                        raise
                    _log_retry(func.__name__, attempt, max_retries, delay, e)
                    time.sleep(delay)
                    delay *= 2
        return cast(F, wrapper)
    return decorator


def _log_retry(name: str, attempt: int, max_retries: int, delay: float, exc: BaseException) -> None:
    logger.warning(
        f"'{name}' failed (attempt {attempt + 1}/{max_retries}): {exc}. "
        f"Retrying in {delay} seconds..."
    )
