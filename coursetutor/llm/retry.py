# coursetutor/llm/retry.py
"""
Throttling-aware retry shared by the embedding and generation clients.

Only rate-limit rejections are retried. Everything else is re-raised on the
first attempt so callers can wrap it in their own error type.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import openai

from coursetutor.config import BACKOFF_BASE_SECONDS, BACKOFF_MAX_SECONDS
from coursetutor.errors import ThrottledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_throttling_error(error: BaseException) -> bool:

    if isinstance(error, openai.RateLimitError):
        return True

    return getattr(error, "status_code", None) == 429


def backoff_delay(
    attempt: int,
    base_delay: float = BACKOFF_BASE_SECONDS,
    max_delay: float = BACKOFF_MAX_SECONDS,
    rng: Callable[[float, float], float] = random.uniform,
) -> float:
    """
    Full-jitter delay before retry number `attempt` (1-based).

    uniform(0, min(max_delay, base_delay * 2 ** (attempt - 1)))
    """

    ceiling = min(max_delay, base_delay * (2 ** (attempt - 1)))

    return rng(0, ceiling)


async def call_with_throttle_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    operation: str,
    max_attempts: int,
    base_delay: float = BACKOFF_BASE_SECONDS,
    max_delay: float = BACKOFF_MAX_SECONDS,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    log_extra: Optional[Dict[str, Any]] = None,
    on_throttle: Optional[Callable[[int, float], None]] = None,
) -> T:
    """
    Run `fn`, retrying only throttling rejections.

    `on_throttle(attempt, delay)` is called before each backoff sleep.
    """

    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    extra = dict(log_extra or {})

    for attempt in range(1, max_attempts + 1):

        try:
            return await fn()

        except Exception as e:

            if not is_throttling_error(e):
                raise

            if attempt == max_attempts:
                logger.error(
                    f"{operation} throttled, attempts exhausted",
                    extra={**extra, "attempt": attempt, "max_attempts": max_attempts},
                )
                break

            delay = backoff_delay(attempt, base_delay, max_delay)

            logger.warning(
                f"{operation} throttled, backing off",
                extra={
                    **extra,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "delay_seconds": round(delay, 3),
                },
            )

            if on_throttle is not None:
                on_throttle(attempt, delay)

            await sleep(delay)

    raise ThrottledError(attempts=max_attempts, details={"operation": operation, **extra})
