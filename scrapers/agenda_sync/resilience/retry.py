"""Bounded retry with a fixed pause and a longer pause after rate limiting."""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from ..errors import RateLimitedError

logger = structlog.get_logger()

T = TypeVar("T")


async def retry_call(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    delay: float = 1.0,
    rate_limit_delay: float = 30.0,
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    **kwargs: Any,
) -> T:
    """Execute an async function, retrying a bounded number of times.

    The pause between attempts is fixed (no backoff). A RateLimitedError
    always counts as retryable and waits rate_limit_delay instead.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        max_attempts: Maximum number of attempts (at least 1)
        delay: Seconds to wait after an ordinary failure
        rate_limit_delay: Seconds to wait after a rate-limit response
        retryable_exceptions: Exception types to retry on
        **kwargs: Keyword arguments for func

    Returns:
        Result of the first successful call

    Raises:
        The last exception once attempts are exhausted
    """
    max_attempts = max(1, max_attempts)
    last_exception: Exception | None = None

    for attempt in range(max_attempts):
        try:
            return await func(*args, **kwargs)
        except RateLimitedError as e:
            last_exception = e
            pause = rate_limit_delay
        except retryable_exceptions as e:
            last_exception = e
            pause = delay

        if attempt < max_attempts - 1:
            logger.warning(
                "retry_attempt",
                function=getattr(func, "__name__", repr(func)),
                attempt=attempt + 1,
                max_attempts=max_attempts,
                delay=round(pause, 2),
                error=str(last_exception),
            )
            await asyncio.sleep(pause)

    logger.error(
        "retry_exhausted",
        function=getattr(func, "__name__", repr(func)),
        max_attempts=max_attempts,
        error=str(last_exception),
    )
    raise last_exception  # type: ignore
