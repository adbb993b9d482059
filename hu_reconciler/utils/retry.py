"""Retry utilities for transient repository host failures.

Provides a decorator that retries async host calls with exponential backoff.
Only transient failures (rate limiting, 5xx responses, dropped connections)
should be retried; a 404 or an authentication error is final.

Example:
    >>> from hu_reconciler.utils.retry import async_retry
    >>>
    >>> @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(TransientServiceError,))
    ... async def get_json(path: str) -> dict:
    ...     ...

Backoff Formula:
    delay = backoff_factor ** attempt_number
    For backoff_factor=2.0: 2s, 4s, 8s, ...
"""

import asyncio
import functools
from collections.abc import Callable
from typing import Any

import structlog

log = structlog.get_logger(__name__)


def async_retry(
    max_attempts: int = 3,
    backoff_factor: float = 2.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator for async functions with exponential backoff retry logic.

    Args:
        max_attempts: Maximum number of attempts before giving up.
        backoff_factor: Base for exponential backoff calculation. The delay
            before attempt N+1 is backoff_factor^N seconds.
        exceptions: Exception types that trigger a retry. Anything else
            propagates immediately.

    Returns:
        A decorator function that wraps async functions with retry logic.

    Raises:
        The last caught exception if all retry attempts are exhausted.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        log.error(
                            "retry_exhausted",
                            function=func.__name__,
                            attempts=attempt,
                            error=str(e),
                        )
                        raise

                    delay = backoff_factor**attempt
                    log.warning(
                        "retry_attempt",
                        function=func.__name__,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

            raise RuntimeError("Retry logic error")

        return wrapper

    return decorator
