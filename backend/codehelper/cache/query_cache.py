"""Tuple-keyed query cache with staleness, single-flight loads and prefix invalidation."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

QueryKey = Tuple[Any, ...]


@dataclass
class _Entry:
    value: Any
    cached_at: float


class QueryCache:
    """Process-local cache for remote reads.

    ``fetch`` shares one in-flight load per key. Invalidating a key drops its
    entry and discards the result of any load that was already in flight, so a
    refetch after a mutation never serves pre-mutation data.
    """

    def __init__(self, stale_after: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._stale_after = stale_after
        self._clock = clock
        self._entries: Dict[QueryKey, _Entry] = {}
        self._inflight: Dict[QueryKey, asyncio.Task[Any]] = {}
        self._generations: Dict[QueryKey, int] = {}
        self._listeners: List[Callable[[QueryKey], None]] = []

    def get(self, key: QueryKey) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None or self._is_stale(entry):
            return None
        return entry.value

    def set(self, key: QueryKey, value: Any) -> None:
        self._entries[key] = _Entry(value=value, cached_at=self._clock())

    async def fetch(self, key: QueryKey, loader: Callable[[], Awaitable[Any]], *, force: bool = False) -> Any:
        if not force:
            cached = self.get(key)
            if cached is not None:
                return cached
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, loader, self._generations.get(key, 0)))
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        return await asyncio.shield(task)

    def invalidate(self, prefix: QueryKey) -> List[QueryKey]:
        """Drop every key starting with ``prefix``; returns the affected keys."""
        affected = [key for key in {*self._entries, *self._inflight} if key[: len(prefix)] == prefix]
        for key in affected:
            self._entries.pop(key, None)
            self._inflight.pop(key, None)
            self._generations[key] = self._generations.get(key, 0) + 1
        if affected:
            logger.debug("Invalidated %d queries under %s", len(affected), prefix)
        for listener in list(self._listeners):
            listener(prefix)
        return affected

    def subscribe(self, listener: Callable[[QueryKey], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def clear(self) -> None:
        self._entries.clear()
        self._generations.clear()

    async def _load(self, key: QueryKey, loader: Callable[[], Awaitable[Any]], generation: int) -> Any:
        value = await loader()
        if self._generations.get(key, 0) == generation:
            self.set(key, value)
        return value

    def _forget(self, key: QueryKey, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def _is_stale(self, entry: _Entry) -> bool:
        return self._clock() - entry.cached_at > self._stale_after


__all__ = ["QueryCache", "QueryKey"]
