"""Exponential backoff for calls to model providers."""
import asyncio
import functools
import logging
import random
from typing import Any, Callable, Iterator, Tuple, Type, Union

logger = logging.getLogger(__name__)

RetryOn = Union[Type[BaseException], Tuple[Type[BaseException], ...]]


def backoff_delays(initial_delay: float, max_delay: float, backoff_factor: float) -> Iterator[float]:
    """Yield successive wait times, growing by ``backoff_factor`` up to ``max_delay``."""
    delay = min(initial_delay, max_delay)
    while True:
        yield delay
        delay = min(delay * backoff_factor, max_delay)


def async_retry(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    exceptions: RetryOn = (Exception,),
    jitter: bool = True,
) -> Callable:
    """
    Decorate a coroutine function so transient failures are retried.

    The wrapped call runs at most ``max_retries + 1`` times. Exceptions not
    listed in ``exceptions`` propagate on the first attempt; the last listed
    failure is re-raised once the budget is spent.

    Args:
        max_retries: Retries allowed after the first attempt
        initial_delay: Wait before the first retry, in seconds
        max_delay: Upper bound for any single wait
        backoff_factor: Growth of the wait between consecutive retries
        exceptions: Exception type(s) considered transient
        jitter: Scale each wait by a random factor in [0.5, 1.5)
    """
    def decorator(func: Callable) -> Callable:
        name = getattr(func, "__name__", repr(func))

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            delays = backoff_delays(initial_delay, max_delay, backoff_factor)
            for attempt in range(1, max_retries + 2):
                try:
                    return await func(*args, **kwargs)
                except exceptions as exc:
                    if attempt > max_retries:
                        logger.error(f"{name} gave up after {attempt} attempts: {exc}")
                        raise

                    wait = next(delays)
                    if jitter:
                        wait *= 0.5 + random.random()
                    logger.warning(
                        f"{name} raised {type(exc).__name__} ({exc}); "
                        f"retry {attempt}/{max_retries} in {wait:.2f}s"
                    )
                    await asyncio.sleep(wait)
        return wrapper
    return decorator
