"""
Retry policy and backoff combinator.

``retry_with_backoff`` is transport agnostic: it runs an awaitable factory,
asks a policy whether a failure deserves another attempt, and sleeps between
attempts with exponential backoff.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from config.constants import BACKOFF_FACTOR, INITIAL_BACKOFF_SECONDS, MAX_ATTEMPTS, RETRYABLE_ERROR_MARKERS
from config.loggers import GenericLogger
from .exceptions import NetworkError, UpstreamOverloadedError

logger = GenericLogger("core", "retry")

SleepFunc = Callable[[float], Awaitable[Any]]


def is_retryable_message(message: str) -> bool:
    """True when an upstream error message signals a transient overload."""
    return any(marker in message for marker in RETRYABLE_ERROR_MARKERS)


def should_retry(error: BaseException) -> bool:
    """Retry policy for the AI backend: overloads and transport failures only."""
    return isinstance(error, (UpstreamOverloadedError, NetworkError))


async def retry_with_backoff(
    operation: Callable[[], Awaitable[Any]],
    policy: Callable[[BaseException], bool] = should_retry,
    max_attempts: int = MAX_ATTEMPTS,
    initial_delay: float = INITIAL_BACKOFF_SECONDS,
    backoff_factor: float = BACKOFF_FACTOR,
    sleep: Optional[SleepFunc] = None,
    label: str = "operation",
) -> Any:
    """
    Run ``operation`` until it succeeds, the policy rejects the failure, or
    ``max_attempts`` is reached.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Decides whether a raised exception is retryable
        max_attempts: Upper bound on total attempts
        initial_delay: Seconds to wait after the first failed attempt
        backoff_factor: Multiplier applied to the delay after each retry
        sleep: Awaitable sleep function (asyncio.sleep by default)
        label: Name used in log lines

    Returns:
        Whatever the first successful attempt returns

    Raises:
        The last exception raised by ``operation`` when no retry is allowed
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    sleep = sleep or asyncio.sleep
    delay = initial_delay

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not policy(e):
                logger.debug(f"🛑 [RETRY] {label}: attempt {attempt} failed with non-retryable {type(e).__name__}")
                raise
            if attempt >= max_attempts:
                logger.error(f"❌ [RETRY] {label}: giving up after {attempt} attempts: {e}")
                raise

            logger.warning(f"⚠️ [RETRY] {label}: attempt {attempt}/{max_attempts} failed ({e}). Retrying in {delay:.1f}s")
            await sleep(delay)
            delay *= backoff_factor
