"""Single-flight, TTL-cached "is this user blocked" check."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict

from ..errors import ApiError, BlockedError
from .navigation import is_exempt_path
from .tristate import LOADING, Known, TriState

logger = logging.getLogger(__name__)

BlockedLoader = Callable[[str], Awaitable[bool]]


@dataclass
class _CachedStatus:
    blocked: bool
    checked_at: float


class BlockStatusResolver:
    """One instance is shared by every consumer on a page.

    Concurrent ``resolve`` calls for the same user share a single request.
    Only successful answers are cached; a failed check yields ``LOADING`` and
    never an optimistic ``Known(False)``. An answer that was still in flight
    when the user's entry was invalidated is discarded.
    """

    def __init__(
        self,
        loader: BlockedLoader,
        *,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: Dict[str, _CachedStatus] = {}
        self._inflight: Dict[str, asyncio.Task[TriState[bool]]] = {}
        self._generations: Dict[str, int] = {}

    def cached(self, user_id: str) -> TriState[bool]:
        entry = self._cache.get(user_id)
        if entry is None or self._clock() - entry.checked_at >= self._ttl:
            return LOADING
        return Known(entry.blocked)

    async def resolve(self, user_id: str) -> TriState[bool]:
        while True:
            cached = self.cached(user_id)
            if cached is not LOADING:
                return cached
            generation = self._generations.get(user_id, 0)
            task = self._inflight.get(user_id)
            if task is None:
                task = asyncio.ensure_future(self._check(user_id, generation))
                self._inflight[user_id] = task
                task.add_done_callback(lambda done, user_id=user_id: self._forget(user_id, done))
            result = await asyncio.shield(task)
            if self._generations.get(user_id, 0) == generation:
                return result
            logger.debug("Block status for %s changed during the check; asking again", user_id)

    def mark_blocked(self, user_id: str) -> None:
        """Record a BlockedError observed on any other call."""
        self._bump(user_id)
        self._cache[user_id] = _CachedStatus(blocked=True, checked_at=self._clock())

    def invalidate(self, user_id: str) -> None:
        self._bump(user_id)
        self._cache.pop(user_id, None)

    def on_navigate(self, user_id: str, path: str) -> None:
        # Exempt pages are where a block is lifted from; leaving them must re-check.
        if is_exempt_path(path):
            self.invalidate(user_id)

    async def _check(self, user_id: str, generation: int) -> TriState[bool]:
        try:
            blocked = await self._loader(user_id)
        except BlockedError:
            if self._generations.get(user_id, 0) == generation:
                self.mark_blocked(user_id)
            return Known(True)
        except ApiError as exc:
            logger.warning("Block status check for %s failed (%s): %s", user_id, exc.kind.value, exc)
            return LOADING
        if self._generations.get(user_id, 0) == generation:
            self._cache[user_id] = _CachedStatus(blocked=blocked, checked_at=self._clock())
        return Known(blocked)

    def _bump(self, user_id: str) -> None:
        self._generations[user_id] = self._generations.get(user_id, 0) + 1
        self._inflight.pop(user_id, None)

    def _forget(self, user_id: str, task: asyncio.Task[TriState[bool]]) -> None:
        if self._inflight.get(user_id) is task:
            del self._inflight[user_id]


__all__ = ["BlockStatusResolver", "BlockedLoader"]
