from __future__ import annotations

import asyncio
import random

from ..config import RetryConfig


def compute_backoff(attempt: int, policy: RetryConfig) -> float:
    """Return the delay in seconds before the attempt following ``attempt``."""
    if policy.delay_ms <= 0 and policy.jitter_ms <= 0:
        return 0.0
    delay_ms = policy.delay_ms * policy.backoff ** max(attempt - 1, 0)
    return (delay_ms + random.uniform(0, policy.jitter_ms)) / 1000


async def schedule_retry(attempt: int, policy: RetryConfig) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, policy)
    if delay > 0:
        await asyncio.sleep(delay)
