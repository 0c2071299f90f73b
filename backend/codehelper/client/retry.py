"""Bounded exponential backoff for idempotent remote reads."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from ..errors import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 2
    base_delay: float = 1.0
    max_delay: float = 5.0
    jitter: float = 0.0

    def delay_for(self, retry_index: int) -> float:
        delay = self.base_delay * (2**retry_index)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return min(delay, self.max_delay)


NO_RETRY = RetryPolicy(attempts=0)


async def retry_transient(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "request",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation``, retrying only on TransientError, at most ``policy.attempts`` extra times."""
    retry_index = 0
    while True:
        try:
            return await operation()
        except TransientError as exc:
            if retry_index >= policy.attempts:
                raise
            delay = policy.delay_for(retry_index)
            logger.warning(
                "%s failed transiently (%s); retry %d/%d in %.2fs",
                label,
                exc,
                retry_index + 1,
                policy.attempts,
                delay,
            )
            retry_index += 1
            await sleep(delay)


__all__ = ["NO_RETRY", "RetryPolicy", "retry_transient"]
