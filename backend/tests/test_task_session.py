from __future__ import annotations

import asyncio
from typing import List

import pytest

from codehelper.cache import QueryCache
from codehelper.client.invalidation import SESSIONS_KEY, messages_key, task_key
from codehelper.client.navigation import ChatRoute
from codehelper.client.retry import RetryPolicy
from codehelper.client.task_session import TaskSessionCoordinator
from codehelper.errors import NotFoundError, TransientError, ValidationError
from codehelper.progress import ProgressState
from codehelper.telemetry import recent_events

from conftest import USER_ID, FakeApi


@pytest.fixture()
def delays() -> List[float]:
    return []


@pytest.fixture()
def cache() -> QueryCache:
    return QueryCache()


@pytest.fixture()
def coordinator(fake_api: FakeApi, cache: QueryCache, delays: List[float]) -> TaskSessionCoordinator:
    async def record_sleep(delay: float) -> None:
        delays.append(delay)

    return TaskSessionCoordinator(
        USER_ID,
        api=fake_api,
        cache=cache,
        link_policy=RetryPolicy(attempts=2, base_delay=1.0, max_delay=5.0),
        max_message_length=500,
        sleep=record_sleep,
    )


@pytest.fixture()
def task(fake_api: FakeApi):
    return fake_api.add_task()


@pytest.mark.asyncio
async def test_start_opens_and_links_a_fresh_session(coordinator, fake_api, task) -> None:
    route = await coordinator.start(task)

    assert route == ChatRoute(session_id="session-1", task_id=task.id, fresh=True)
    assert fake_api.progress[task.id] == ProgressState(status="in_progress", chat_session_id="session-1")
    assert fake_api.calls[1] == ("create_chat_session", ("Task: Reverse a String",))
    assert recent_events("task_attempt_started")[-1].payload["session_id"] == "session-1"


@pytest.mark.asyncio
async def test_second_start_while_first_is_running_is_ignored(coordinator, fake_api, task) -> None:
    gate = fake_api.hold("get_task")
    first = asyncio.ensure_future(coordinator.start(task))
    await asyncio.sleep(0)

    assert coordinator.is_busy(task.id)
    calls_before = len(fake_api.calls)
    assert await coordinator.start(task) is None
    assert len(fake_api.calls) == calls_before

    gate.set()
    assert (await first).fresh is True
    assert fake_api.calls_to("create_chat_session") == 1
    assert not coordinator.is_busy(task.id)


@pytest.mark.asyncio
async def test_start_resumes_session_with_messages(coordinator, fake_api, task) -> None:
    session_id = fake_api.add_session(["Where do I begin?"])
    fake_api.progress[task.id] = ProgressState(status="in_progress", chat_session_id=session_id)

    route = await coordinator.start(task)

    assert route == ChatRoute(session_id=session_id)
    assert not route.wants_auto_send
    assert fake_api.calls_to("create_chat_session") == 0
    assert recent_events("task_attempt_resumed")


@pytest.mark.asyncio
async def test_empty_linked_session_is_healed_then_replaced(coordinator, fake_api, task) -> None:
    empty = fake_api.add_session()
    fake_api.progress[task.id] = ProgressState(status="in_progress", chat_session_id=empty, attempts=1)

    route = await coordinator.start(task)

    assert route.session_id != empty
    assert route.wants_auto_send
    assert fake_api.progress[task.id] == ProgressState(status="in_progress", chat_session_id=route.session_id, attempts=1)
    healed = recent_events("task_progress_self_healed")
    assert healed[-1].payload == {"user_id": USER_ID, "task_id": task.id, "session_id": empty}


@pytest.mark.asyncio
async def test_missing_linked_session_is_healed(coordinator, fake_api, task) -> None:
    fake_api.progress[task.id] = ProgressState(status="in_progress", chat_session_id="deleted-session")

    route = await coordinator.start(task)

    assert route.fresh is True
    assert fake_api.progress[task.id].chat_session_id == route.session_id
    assert recent_events("task_progress_self_healed")


@pytest.mark.asyncio
async def test_completed_task_opens_its_conversation(coordinator, fake_api, task) -> None:
    session_id = fake_api.add_session(["done"])
    fake_api.progress[task.id] = ProgressState(status="completed", chat_session_id=session_id)

    assert await coordinator.start(task) == ChatRoute(session_id=session_id)


@pytest.mark.asyncio
async def test_completed_task_without_session_asks_for_restart(coordinator, fake_api, task) -> None:
    fake_api.progress[task.id] = ProgressState(status="completed")

    with pytest.raises(ValidationError):
        await coordinator.start(task)
    assert not coordinator.is_busy(task.id)


@pytest.mark.asyncio
async def test_complete_then_restart_starts_a_new_attempt(coordinator, fake_api, cache, task) -> None:
    first = await coordinator.start(task)
    coordinator.drafts.set(task.id, "print('draft')")
    cache.set(task_key(task.id), task)

    response = await coordinator.complete(task)
    assert response.progress.status == "completed"
    assert cache.get(task_key(task.id)) is None

    assert await coordinator.restart(task, confirmed=False) is None
    assert fake_api.progress[task.id].status == "completed"

    progress = await coordinator.restart(task, confirmed=True)
    assert progress.status == "not_started"
    assert progress.chat_session_id is None
    assert progress.attempts == 1
    assert coordinator.drafts.get(task) == task.starter_code
    assert recent_events("task_attempt_restarted")[-1].payload["previous_session_id"] == first.session_id

    second = await coordinator.start(task)
    assert second.session_id != first.session_id
    assert second.wants_auto_send


@pytest.mark.asyncio
async def test_restart_of_unstarted_task_only_resets_draft(coordinator, fake_api, task) -> None:
    coordinator.drafts.set(task.id, "junk")

    progress = await coordinator.restart(task, confirmed=True)

    assert progress.status == "not_started"
    assert progress.attempts == 0
    assert fake_api.calls_to("update_task_progress") == 0
    assert coordinator.drafts.get(task) == task.starter_code


@pytest.mark.asyncio
async def test_link_is_retried_on_transient_failure(coordinator, fake_api, task, delays) -> None:
    fake_api.fail("update_task_progress", TransientError("Service unavailable"))

    route = await coordinator.start(task)

    assert route.fresh is True
    assert delays == [1.0]
    assert fake_api.progress[task.id].chat_session_id == route.session_id
    assert not recent_events("chat_session_orphaned")


@pytest.mark.asyncio
async def test_exhausted_link_retries_report_the_orphan(coordinator, fake_api, task, delays) -> None:
    fake_api.fail("update_task_progress", TransientError("Service unavailable"), times=3)

    with pytest.raises(TransientError):
        await coordinator.start(task)

    assert delays == [1.0, 2.0]
    assert task.id not in fake_api.progress
    orphaned = recent_events("chat_session_orphaned")
    assert orphaned[-1].payload["session_id"] == "session-1"
    assert orphaned[-1].payload["reason"] == "unavailable"


@pytest.mark.asyncio
async def test_concurrent_start_elsewhere_joins_the_winning_session(coordinator, fake_api, task) -> None:
    gate = fake_api.hold("create_chat_session")
    pending = asyncio.ensure_future(coordinator.start(task))
    while not fake_api.calls_to("create_chat_session"):
        await asyncio.sleep(0)

    winner = fake_api.add_session(["Hi, let's solve this"])
    fake_api.progress[task.id] = ProgressState(status="in_progress", chat_session_id=winner)
    gate.set()

    route = await pending
    assert route == ChatRoute(session_id=winner)
    assert fake_api.progress[task.id].chat_session_id == winner
    assert recent_events("chat_session_orphaned")[-1].payload["reason"] == "concurrent_start"


@pytest.mark.asyncio
async def test_submit_solution_opens_session_when_not_started(coordinator, fake_api, task) -> None:
    route = await coordinator.submit_solution(task, "def reverse(s):\n    return s[::-1]")

    assert route == ChatRoute(session_id="session-1")
    assert fake_api.progress[task.id].status == "in_progress"
    sent = [args for name, args in fake_api.calls if name == "send_message"]
    assert sent[0][1] == "session-1"
    assert "return s[::-1]" in sent[0][0]
    assert coordinator.drafts.get(task) == "def reverse(s):\n    return s[::-1]"


@pytest.mark.asyncio
async def test_submit_solution_reuses_attempt_session(coordinator, fake_api, task) -> None:
    started = await coordinator.start(task)

    route = await coordinator.submit_solution(task, "print('x')")

    assert route.session_id == started.session_id
    assert fake_api.calls_to("create_chat_session") == 1


@pytest.mark.asyncio
async def test_submit_solution_validates_code(coordinator, fake_api, task) -> None:
    with pytest.raises(ValidationError):
        await coordinator.submit_solution(task, "   \n")
    with pytest.raises(ValidationError):
        await coordinator.submit_solution(task, "x" * 600)
    assert fake_api.calls == []


@pytest.mark.asyncio
async def test_deleting_attempt_session_invalidates_task_queries(coordinator, fake_api, cache, task) -> None:
    route = await coordinator.start(task)
    cache.set(task_key(task.id), task)
    cache.set(SESSIONS_KEY, [])
    cache.set(messages_key(route.session_id), [])

    result = await coordinator.delete_session(route.session_id)

    assert result.reset_task_ids == [task.id]
    assert fake_api.progress[task.id] == ProgressState(status="not_started")
    assert cache.get(task_key(task.id)) is None
    assert cache.get(SESSIONS_KEY) is None
    assert cache.get(messages_key(route.session_id)) is None

    again = await coordinator.start(task)
    assert again.session_id != route.session_id
    assert again.wants_auto_send


@pytest.mark.asyncio
async def test_deleting_unknown_session_leaves_cache_alone(coordinator, cache) -> None:
    cache.set(SESSIONS_KEY, [])

    with pytest.raises(NotFoundError):
        await coordinator.delete_session("missing")
    assert cache.get(SESSIONS_KEY) == []
