"""Retry-with-backoff combinator.

Orchestrator tests inject a zero-delay backoff (or a recording sleep) so
the retry policy can be exercised without waiting.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from app.core.metrics import LLM_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")

Backoff = Callable[[int], float]
Sleep = Callable[[float], Awaitable[None]]


def exponential_backoff(attempt: int) -> float:
    """2^attempt seconds, where attempt is the 0-based index of the failed try."""
    return float(2**attempt)


def no_backoff(attempt: int) -> float:
    return 0.0


@dataclass
class RetryOutcome(Generic[T]):
    """What with_retry() observed: the value or the last error, and attempt count."""

    value: T | None = None
    error: BaseException | None = None
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.error is None


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    backoff: Backoff = exponential_backoff,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Sleep = asyncio.sleep,
    label: str = "operation",
) -> RetryOutcome[T]:
    """Run ``operation`` up to ``max_attempts`` times.

    Exceptions matching ``retry_on`` are caught and retried after
    ``backoff(attempt)`` seconds; anything else propagates. The outcome
    carries the last error instead of raising it, so the caller decides
    how exhaustion is reported.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    last_error: BaseException | None = None

    for attempt in range(max_attempts):
        try:
            value = await operation()
            return RetryOutcome(value=value, attempts=attempt + 1)
        except retry_on as e:
            last_error = e
            logger.info("%s failed (attempt %d/%d): %s", label, attempt + 1, max_attempts, e)

            if attempt + 1 < max_attempts:
                delay = backoff(attempt)
                LLM_RETRIES.inc()
                logger.info("Retrying %s in %.1fs", label, delay)
                if delay > 0:
                    await sleep(delay)

    logger.warning("%s failed after %d attempts: %s", label, max_attempts, last_error)
    return RetryOutcome(error=last_error, attempts=max_attempts)
