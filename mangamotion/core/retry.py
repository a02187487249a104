"""
Retry and polling utilities.

Provides the retry combinator used for flaky remote calls (colorization)
and the polling budget used for long-running remote tasks.
"""

import asyncio
import random
from typing import Awaitable, Callable, TypeVar, Any, Optional, Tuple, Type
from dataclasses import dataclass

from mangamotion.core.logging_config import get_logger

logger = get_logger("core.retry")

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    base_delay: float = 1.0  # Base delay in seconds
    max_delay: float = 60.0  # Maximum delay in seconds
    exponential_base: float = 2.0  # 1.0 gives a fixed pause between attempts
    jitter: bool = True
    jitter_range: Tuple[float, float] = (0.5, 1.5)
    retryable_exceptions: Tuple[Type[Exception], ...] = (
        Exception,
    )

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    @classmethod
    def fixed(
        cls,
        attempts: int,
        delay: float,
        retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,)
    ) -> "RetryConfig":
        """Build a config making `attempts` tries with a constant pause."""
        return cls(
            max_retries=max(attempts - 1, 0),
            base_delay=delay,
            max_delay=delay,
            exponential_base=1.0,
            jitter=False,
            retryable_exceptions=retryable_exceptions,
        )


@dataclass
class PollConfig:
    """Budget for polling a remote task until it reaches a terminal state."""
    interval: float = 5.0
    max_attempts: int = 120


DEFAULT_RETRY_CONFIG = RetryConfig()


def calculate_delay(
    attempt: int,
    config: RetryConfig
) -> float:
    """
    Calculate delay before next retry attempt.

    Uses exponential backoff with optional jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds before next attempt
    """
    delay = config.base_delay * (config.exponential_base ** attempt)
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_multiplier = random.uniform(*config.jitter_range)
        delay *= jitter_multiplier

    return delay


async def retry_async_call(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
    sleep: Sleep = asyncio.sleep,
    **kwargs: Any
) -> T:
    """
    Retry an async function call with backoff.

    Args:
        func: Async function to call
        *args: Positional arguments for the function
        config: Retry configuration (uses defaults if not provided)
        on_retry: Optional callback called on each retry
        sleep: Coroutine used to wait between attempts
        **kwargs: Keyword arguments for the function

    Returns:
        Result of the function call

    Raises:
        The last exception raised by `func` once every attempt has failed.
        Exceptions not listed in `config.retryable_exceptions` propagate
        immediately.
    """
    config = config or DEFAULT_RETRY_CONFIG
    last_exception: Optional[Exception] = None

    for attempt in range(config.max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            last_exception = e

            if attempt < config.max_retries:
                delay = calculate_delay(attempt, config)
                logger.warning(
                    f"Attempt {attempt + 1}/{config.max_retries + 1} failed: {e}. "
                    f"Retrying in {delay:.2f}s..."
                )

                if on_retry:
                    on_retry(e, attempt)

                await sleep(delay)
            else:
                logger.error(
                    f"All {config.max_retries + 1} attempts failed. "
                    f"Last error: {e}"
                )

    if last_exception:
        raise last_exception

    raise RuntimeError("Retry logic failed unexpectedly")
