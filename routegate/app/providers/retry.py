"""Retry with exponential backoff for provider calls.

A retried call counts as a single attempt for quota purposes: the gateway
only sees the final outcome.
"""

import asyncio
import functools
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

import httpx

from routegate.app.core.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


@dataclass
class RetryPolicy:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_retries: Maximum number of retry attempts (0 disables retrying)
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential calculation
        retryable_exceptions: Exception types that trigger a retry

    Example:
        >>> policy = RetryPolicy(max_retries=2, base_delay=1.0)
        >>> policy.calculate_delay(attempt=1)
        2.0
    """

    max_retries: int = 0
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0
    retryable_exceptions: Tuple[Type[Exception], ...] = (
        httpx.HTTPStatusError,
        httpx.TransportError,
    )

    def calculate_delay(self, attempt: int) -> float:
        """Delay for a 0-indexed retry attempt, capped at max_delay."""
        delay = self.base_delay * (self.exponential_base**attempt)
        return min(delay, self.max_delay)

    def is_retryable(self, exception: Exception) -> bool:
        """Check if an exception should trigger a retry.

        For HTTPStatusError only 5xx responses are retried; a 4xx (including
        the provider's own 429) will not improve by asking again.
        """
        if isinstance(exception, httpx.HTTPStatusError):
            return exception.response.status_code >= 500

        return isinstance(exception, self.retryable_exceptions)


def with_retry(policy: Optional[RetryPolicy] = None) -> Callable[[F], F]:
    """Decorator that retries an async callable per ``policy``.

    Example:
        >>> @with_retry(policy=RetryPolicy(max_retries=3))
        ... async def send():
        ...     return await client.get(url)
    """
    retry_policy = policy or RetryPolicy()

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(retry_policy.max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not retry_policy.is_retryable(e):
                        raise

                    if attempt >= retry_policy.max_retries:
                        if retry_policy.max_retries:
                            logger.warning(
                                f"Max retries ({retry_policy.max_retries}) exceeded for "
                                f"{func.__name__}: {type(e).__name__}: {e}"
                            )
                        raise

                    delay = retry_policy.calculate_delay(attempt)
                    logger.warning(
                        f"Retry {attempt + 1}/{retry_policy.max_retries} for {func.__name__} "
                        f"after {type(e).__name__}: {e}. Waiting {delay:.2f}s..."
                    )
                    await asyncio.sleep(delay)

        return wrapper  # type: ignore

    return decorator
