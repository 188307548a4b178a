import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

logger = logging.getLogger("budgy")

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_DELAY = 1.0


def backoff_delay(delay: float, retry_number: int) -> float:
    """Wait before the retry_number-th retry (1-based): delay * 2**k, so 2x, 4x, 8x the base."""
    return delay * 2 ** retry_number


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    delay: float = DEFAULT_DELAY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "store operation",
) -> T:
    """Run ``operation`` until it succeeds or ``max_retries`` retries are spent.

    Every exception is retried the same way. Once the budget is exhausted the
    last exception is re-raised unchanged.
    """

    def wait(retry_state: RetryCallState) -> float:
        return backoff_delay(delay, retry_state.attempt_number)

    def before_sleep(retry_state: RetryCallState) -> None:
        logger.warning(
            f"Retrying {description} in {retry_state.next_action.sleep}s (attempt {retry_state.attempt_number})",
            extra={"extra_data": {"error": repr(retry_state.outcome.exception())}},
        )

    retrying = AsyncRetrying(
        sleep=sleep,
        stop=stop_after_attempt(max(0, max_retries) + 1),
        wait=wait,
        before_sleep=before_sleep,
        reraise=True,
    )
    try:
        async for attempt in retrying:
            with attempt:
                return await operation()
    except Exception as e:
        logger.error(f"Max retries reached for {description}: {e}")
        raise
