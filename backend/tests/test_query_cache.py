from __future__ import annotations

import asyncio

import pytest

from codehelper.cache import QueryCache
from codehelper.client.invalidation import GatingQuery, ProgressInvalidator, messages_key, task_key


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_concurrent_fetches_share_one_load() -> None:
    cache = QueryCache()
    release = asyncio.Event()
    calls = 0

    async def loader():
        nonlocal calls
        calls += 1
        await release.wait()
        return "profile"

    first = asyncio.ensure_future(cache.fetch(("profile",), loader))
    second = asyncio.ensure_future(cache.fetch(("profile",), loader))
    await asyncio.sleep(0)
    release.set()

    assert await asyncio.gather(first, second) == ["profile", "profile"]
    assert calls == 1
    assert cache.get(("profile",)) == "profile"


@pytest.mark.asyncio
async def test_entries_expire_after_stale_window() -> None:
    clock = Clock()
    cache = QueryCache(stale_after=10, clock=clock)
    cache.set(("tasks",), ["a"])
    clock.now = 5
    assert cache.get(("tasks",)) == ["a"]
    clock.now = 11
    assert cache.get(("tasks",)) is None


@pytest.mark.asyncio
async def test_force_bypasses_cached_value() -> None:
    cache = QueryCache()
    cache.set(("task", "t1"), "old")

    async def loader():
        return "new"

    assert await cache.fetch(("task", "t1"), loader) == "old"
    assert await cache.fetch(("task", "t1"), loader, force=True) == "new"
    assert cache.get(("task", "t1")) == "new"


@pytest.mark.asyncio
async def test_invalidation_discards_in_flight_result() -> None:
    cache = QueryCache()
    release = asyncio.Event()

    async def slow_loader():
        await release.wait()
        return "before-mutation"

    pending = asyncio.ensure_future(cache.fetch(("task", "t1"), slow_loader))
    await asyncio.sleep(0)
    assert cache.invalidate(("task",)) == [("task", "t1")]
    release.set()

    assert await pending == "before-mutation"
    assert cache.get(("task", "t1")) is None


@pytest.mark.asyncio
async def test_failed_load_is_not_cached() -> None:
    cache = QueryCache()

    async def broken():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await cache.fetch(("stats",), broken)
    assert cache.get(("stats",)) is None


def test_prefix_invalidation_and_listeners() -> None:
    cache = QueryCache()
    seen = []
    unsubscribe = cache.subscribe(seen.append)
    cache.set(("tasks", "python"), 1)
    cache.set(("tasks", "go"), 2)
    cache.set(("task", "t1"), 3)

    affected = cache.invalidate(("tasks",))

    assert sorted(affected) == [("tasks", "go"), ("tasks", "python")]
    assert cache.get(("task", "t1")) == 3
    assert seen == [("tasks",)]
    unsubscribe()
    cache.invalidate(("task",))
    assert seen == [("tasks",)]


def test_status_change_invalidates_list_task_and_stats() -> None:
    cache = QueryCache()
    for key in [("tasks",), task_key("t1"), task_key("t2"), ("stats",), messages_key("s1")]:
        cache.set(key, object())

    ProgressInvalidator(cache).after_status_change("t1")

    assert cache.get(("tasks",)) is None
    assert cache.get(task_key("t1")) is None
    assert cache.get(("stats",)) is None
    assert cache.get(task_key("t2")) is not None
    assert cache.get(messages_key("s1")) is not None


def test_onboarding_and_session_invalidation() -> None:
    cache = QueryCache()
    cache.set(("questions", "pre", "python"), [])
    cache.set(messages_key("s1"), [])
    invalidator = ProgressInvalidator(cache)

    assert invalidator.after_onboarding_change(GatingQuery.QUESTIONS) == [("questions", "pre", "python")]
    assert invalidator.after_session_change(None) == []
    assert invalidator.after_session_change("s1") == [messages_key("s1")]
