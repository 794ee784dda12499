"""Retry helpers for EagleDeploy.

Provides a small retry loop with fixed or exponential backoff. OS detection
uses it with a fixed delay; the transport layer itself never retries.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Total attempts including the first (1 = no retries)
        initial_delay: Delay before the second attempt in seconds
        max_delay: Upper bound on any delay
        backoff_factor: Multiplier per attempt (1.0 = fixed delay)
    """

    max_attempts: int = 3
    initial_delay: float = 2.0
    max_delay: float = 60.0
    backoff_factor: float = 1.0

    def get_delay(self, attempt: int) -> float:
        """Calculate the delay after a failed attempt.

        Args:
            attempt: Attempt number that just failed (1-based)

        Returns:
            Delay in seconds before the next attempt
        """
        delay = self.initial_delay * (self.backoff_factor ** max(0, attempt - 1))
        return max(0.0, min(delay, self.max_delay))


@dataclass
class RetryState:
    """Tracks retry state for one operation.

    Attributes:
        name: Label for logging (usually the host address)
        attempts: Attempts made so far
        last_error: Message of the last failure
        succeeded: Whether an attempt succeeded
    """

    name: str
    attempts: int = 0
    last_error: str = ""
    succeeded: bool = False


async def retry_with_backoff(
    coro_factory: Callable[[], Awaitable[Any]],
    config: RetryConfig,
    name: str = "",
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    state: RetryState | None = None,
) -> Any:
    """Await a coroutine, retrying when it raises.

    Cancellation is never retried: a CancelledError raised while the
    coroutine or the delay is pending propagates immediately.

    Args:
        coro_factory: Callable returning a fresh coroutine per attempt
        config: Retry configuration
        name: Label for logging
        retry_on: Exception types that trigger a retry
        state: Optional RetryState updated in place

    Returns:
        The first successful result

    Raises:
        The last exception once attempts are exhausted
    """
    state = state if state is not None else RetryState(name=name)

    for attempt in range(1, config.max_attempts + 1):
        state.attempts = attempt
        try:
            result = await coro_factory()
        except retry_on as e:
            state.last_error = str(e)
            if attempt >= config.max_attempts:
                raise
            delay = config.get_delay(attempt)
            logger.info(
                f"Retry {attempt}/{config.max_attempts - 1} for {name}: {e} - waiting {delay:.1f}s"
            )
            await asyncio.sleep(delay)
        else:
            state.succeeded = True
            return result

    raise RuntimeError("retry_with_backoff called with max_attempts < 1")
