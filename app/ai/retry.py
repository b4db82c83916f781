from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from app.ai.classifier import classify_error
from app.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30000
    jitter_ms: int = 1000

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.ai_retry_max_attempts,
            initial_delay_ms=settings.ai_retry_initial_delay_ms,
            max_delay_ms=settings.ai_retry_max_delay_ms,
        )


def backoff_delay_ms(attempt: int, policy: RetryPolicy, jitter_ms: float = 0.0) -> float:
    """Delay before the retry that follows failed attempt ``attempt`` (1-indexed)."""
    base = policy.initial_delay_ms * (2 ** (attempt - 1))
    return min(base + jitter_ms, policy.max_delay_ms)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    operation_name: str = "AI operation",
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """Run ``operation`` with exponential backoff on transient errors.

    Non-transient errors and the error of the final attempt are re-raised
    unchanged.
    """
    policy = policy or RetryPolicy.from_settings()
    max_attempts = max(1, policy.max_attempts)

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= max_attempts or not classify_error(exc).is_transient:
                raise

            delay_ms = backoff_delay_ms(attempt, policy, rng() * policy.jitter_ms)
            logger.warning(
                "ai_retry_scheduled operation=%s attempt=%s/%s delay_ms=%s error=%s",
                operation_name,
                attempt,
                max_attempts,
                round(delay_ms),
                exc,
            )
            await sleep(delay_ms / 1000)
            attempt += 1
