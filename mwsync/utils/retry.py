"""Retry decorator with exponential backoff for wiki transport calls."""

import time
from functools import wraps
from typing import Callable, Tuple, Type

import structlog

log = structlog.stdlib.get_logger()


def exponential_backoff_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    sleep: Callable[[float], None] | None = None,
) -> Callable:
    """
    Decorator that retries a function with exponential backoff.

    The n-th retry waits ``min(base_delay * 2**n, max_delay)`` seconds.
    Exceptions outside ``exceptions`` propagate immediately.

    Args:
        max_retries: Maximum number of retry attempts after the first call
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exceptions: Tuple of exception types to catch and retry
        sleep: Function used to wait between attempts (defaults to time.sleep)

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        log.error(
                            "max_retries_reached",
                            function=func.__name__,
                            max_retries=max_retries,
                            error=str(e),
                        )
                        raise

                    delay = min(base_delay * (2**attempt), max_delay)
                    attempt += 1

                    log.warning(
                        "retrying_after_error",
                        function=func.__name__,
                        attempt=attempt,
                        max_retries=max_retries,
                        delay_seconds=delay,
                        error=str(e),
                    )

                    (sleep or time.sleep)(delay)

        return wrapper

    return decorator
