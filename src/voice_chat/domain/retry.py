import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from voice_chat.errors import ConfigurationError, RateLimitedError, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")

BACKOFF_STEP_SECONDS = 1.0


def is_retryable(exc: Exception) -> bool:
    if isinstance(exc, (RateLimitedError, ConfigurationError)):
        return False
    if isinstance(exc, UpstreamError):
        return exc.retryable
    return True


async def retry_with_backoff(
    call: Callable[[], Awaitable[T]],
    max_retries: int,
    backoff_step: float = BACKOFF_STEP_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_failure: Callable[[int, Exception], None] | None = None,
) -> T:
    attempt = 1
    while True:
        try:
            return await call()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if on_failure is not None:
                on_failure(attempt, exc)
            if attempt > max_retries or not is_retryable(exc):
                raise
            delay = attempt * backoff_step
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.1fs",
                attempt, max_retries + 1, exc, delay,
            )
            await sleep(delay)
            attempt += 1
