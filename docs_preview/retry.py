"""Retry logic for durable cache writes using tenacity."""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from loguru import logger
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .exceptions import CacheWriteError

F = TypeVar("F", bound=Callable[..., Any])


def with_write_retry(
    attempts: int = 3,
    min_wait: float = 0.05,
    max_wait: float = 0.5,
) -> Callable[[F], F]:
    """Decorator retrying a blocking filesystem write on ``OSError``.

    Args:
        attempts: Maximum number of attempts, the first one included.
        min_wait: Lower bound of the exponential backoff in seconds.
        max_wait: Upper bound of the exponential backoff in seconds.

    Returns:
        Decorated function raising ``CacheWriteError`` once attempts run out.

    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            retrying = Retrying(
                retry=retry_if_exception_type(OSError),
                stop=stop_after_attempt(attempts),
                wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
                reraise=True,
                before_sleep=lambda retry_state: logger.warning(
                    f"Cache write attempt {retry_state.attempt_number} failed: "
                    f"{retry_state.outcome.exception() if retry_state.outcome else 'Unknown error'}",
                ),
            )
            try:
                return retrying(func, *args, **kwargs)
            except OSError as e:
                raise CacheWriteError(f"Durable cache write failed: {e}") from e

        return wrapper  # type: ignore[return-value]

    return decorator
