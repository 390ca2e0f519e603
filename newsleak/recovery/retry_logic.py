"""
Newsleak Retry Logic
====================

Bounded retry with exponential backoff for transient fetch failures
(timeouts, connection errors, HTTP 429/5xx). Anything else fails fast.
"""

import asyncio
import random
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..utils.exceptions import NewsleakError, is_retryable_error
from ..utils.logging import get_logger_for_component


class RetryStrategy(Enum):
    """Delay growth between attempts."""
    FIXED_DELAY = "fixed_delay"
    EXPONENTIAL_BACKOFF = "exponential"
    LINEAR_BACKOFF = "linear"


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 2                  # Total attempts, first one included
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL_BACKOFF
    base_delay: float = 1.0                # Seconds before the second attempt
    max_delay: float = 10.0                # Cap on any single delay
    jitter: bool = True                    # +/-25% randomization
    exponential_base: float = 2.0

    # Raw exceptions treated as transient when not already a NewsleakError
    retry_on_exceptions: tuple = (ConnectionError, asyncio.TimeoutError, TimeoutError)


class RetryManager:
    """Runs an async callable under a ``RetryConfig``."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep
        self.logger = get_logger_for_component('retry_manager')

    async def retry_async(
        self,
        func: Callable[..., Any],
        *args,
        config: Optional[RetryConfig] = None,
        operation: Optional[str] = None,
        **kwargs,
    ) -> Any:
        """Call ``func`` until it succeeds, fails permanently, or attempts run out.

        Args:
            func: Async (or sync) callable
            *args: Positional arguments for ``func``
            config: Override the manager's configuration
            operation: Name used in log messages (defaults to ``func.__name__``)
            **kwargs: Keyword arguments for ``func``

        Returns:
            Result of ``func``

        Raises:
            The last exception when every attempt fails, or the first
            non-retryable exception
        """
        retry_config = config or self.config
        name = operation or getattr(func, "__name__", "operation")
        attempts = max(1, retry_config.max_attempts)

        for attempt in range(1, attempts + 1):
            try:
                result = func(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result

                if attempt > 1:
                    self.logger.info(f"Retry successful for {name} on attempt {attempt}")
                return result

            except Exception as e:
                if not self.should_retry(e, retry_config):
                    raise

                if attempt >= attempts:
                    self.logger.warning(f"All {attempts} attempts failed for {name}: {e}")
                    raise

                delay = self.calculate_delay(attempt, retry_config)
                self.logger.warning(
                    f"Attempt {attempt} failed for {name}: {e}. "
                    f"Retrying in {delay:.2f}s (attempt {attempt + 1}/{attempts})"
                )
                await self._sleep(delay)

    def should_retry(self, exception: Exception, config: Optional[RetryConfig] = None) -> bool:
        """Determine if an exception is transient."""
        config = config or self.config

        if isinstance(exception, NewsleakError):
            return is_retryable_error(exception)

        return isinstance(exception, config.retry_on_exceptions)

    def calculate_delay(self, attempt: int, config: Optional[RetryConfig] = None) -> float:
        """Delay before attempt ``attempt + 1``."""
        config = config or self.config

        if config.strategy == RetryStrategy.FIXED_DELAY:
            delay = config.base_delay
        elif config.strategy == RetryStrategy.LINEAR_BACKOFF:
            delay = config.base_delay * attempt
        else:
            delay = config.base_delay * (config.exponential_base ** (attempt - 1))

        delay = min(delay, config.max_delay)

        if config.jitter and delay > 0:
            jitter_amount = delay * 0.25
            delay += random.uniform(-jitter_amount, jitter_amount)

        return max(0.0, min(delay, config.max_delay))
