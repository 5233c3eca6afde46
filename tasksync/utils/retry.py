"""Retry utilities with exponential backoff."""

import time
from functools import wraps
from typing import Callable, Tuple, Type

import structlog

log = structlog.stdlib.get_logger()


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (zero-based): doubles each time, capped."""
    return min(base_delay * (2**attempt), max_delay)


def exponential_backoff_retry(
    max_retries: int = 3,
    base_delay: float = 5.0,
    max_delay: float = 60.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, float, Exception], None] | None = None,
) -> Callable:
    """
    Decorator that retries a function with exponential backoff.

    Only the listed exception types are retried; anything else propagates on
    the first occurrence. After ``max_retries`` retries the last error is
    re-raised.

    Args:
        max_retries: Maximum number of retry attempts after the first call
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exceptions: Tuple of exception types to catch and retry
        on_retry: Optional callback(attempt, delay_seconds, error) invoked before sleeping

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        log.error(
                            "max_retries_reached",
                            function=func.__name__,
                            max_retries=max_retries,
                            error=str(e),
                        )
                        raise

                    delay = backoff_delay(attempt, base_delay, max_delay)

                    log.warning(
                        "retrying_after_error",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay_seconds=delay,
                        error=str(e),
                    )
                    if on_retry is not None:
                        on_retry(attempt + 1, delay, e)

                    time.sleep(delay)

            raise AssertionError("unreachable")

        return wrapper

    return decorator
