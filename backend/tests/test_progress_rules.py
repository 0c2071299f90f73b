from __future__ import annotations

from datetime import datetime, timezone

import pytest

from codehelper.api_models import TaskProgressUpdate
from codehelper.progress import (
    ProgressState,
    SessionLinkConflict,
    TransitionError,
    plan_completion,
    plan_session_removed,
    plan_transition,
)

NOW = datetime(2024, 11, 1, 12, 0, tzinfo=timezone.utc)


def test_start_links_session() -> None:
    state = plan_transition(ProgressState(), TaskProgressUpdate(status="in_progress", chat_session_id="s1"))
    assert state == ProgressState(status="in_progress", chat_session_id="s1", attempts=0)


def test_start_without_session_is_rejected() -> None:
    with pytest.raises(TransitionError):
        plan_transition(ProgressState(), TaskProgressUpdate(status="in_progress"))


def test_relinking_same_session_is_idempotent() -> None:
    current = ProgressState(status="in_progress", chat_session_id="s1")
    assert plan_transition(current, TaskProgressUpdate(status="in_progress", chat_session_id="s1")) == current


def test_linking_a_second_session_conflicts() -> None:
    current = ProgressState(status="in_progress", chat_session_id="s1")
    with pytest.raises(SessionLinkConflict) as excinfo:
        plan_transition(current, TaskProgressUpdate(status="in_progress", chat_session_id="s2"))
    assert excinfo.value.linked_session_id == "s1"


def test_clearing_session_of_running_attempt_is_rejected() -> None:
    current = ProgressState(status="in_progress", chat_session_id="s1")
    with pytest.raises(TransitionError):
        plan_transition(current, TaskProgressUpdate(chat_session_id=None))


def test_self_heal_resets_without_touching_attempts() -> None:
    current = ProgressState(status="in_progress", chat_session_id="s1", attempts=2)
    state = plan_transition(current, TaskProgressUpdate(status="not_started", chat_session_id=None))
    assert state == ProgressState(status="not_started", chat_session_id=None, attempts=2)


def test_restart_from_completed_bumps_attempts_and_clears_session() -> None:
    current = ProgressState(status="completed", chat_session_id="s1", attempts=0, completed_at=NOW)
    state = plan_transition(
        current, TaskProgressUpdate(status="not_started", chat_session_id=None, attempts=1)
    )
    assert state == ProgressState(status="not_started", chat_session_id=None, attempts=1)


@pytest.mark.parametrize(
    "current, update",
    [
        (ProgressState(status="in_progress", chat_session_id="s1", attempts=3), TaskProgressUpdate(status="not_started", attempts=2)),
        (ProgressState(status="in_progress", chat_session_id="s1"), TaskProgressUpdate(attempts=1)),
        (ProgressState(), TaskProgressUpdate(status="not_started", attempts=1)),
        (ProgressState(), TaskProgressUpdate(status="completed")),
        (ProgressState(status="completed", chat_session_id="s1"), TaskProgressUpdate(status="in_progress", chat_session_id="s2")),
        (ProgressState(), TaskProgressUpdate(status="not_started", chat_session_id="s1")),
    ],
)
def test_illegal_changes_are_rejected(current, update) -> None:
    with pytest.raises(TransitionError):
        plan_transition(current, update)


def test_completion_keeps_session_and_stamps_time() -> None:
    current = ProgressState(status="in_progress", chat_session_id="s1", attempts=1)
    state, already = plan_completion(current, now=NOW)
    assert already is False
    assert state == ProgressState(status="completed", chat_session_id="s1", attempts=1, completed_at=NOW)


def test_completing_twice_reports_already_completed() -> None:
    current = ProgressState(status="completed", chat_session_id="s1", completed_at=NOW)
    state, already = plan_completion(current)
    assert already is True
    assert state is current


def test_completing_unstarted_task_is_rejected() -> None:
    with pytest.raises(TransitionError):
        plan_completion(ProgressState())


def test_explicit_null_session_is_distinguished_from_omitted() -> None:
    assert TaskProgressUpdate(chat_session_id=None).clears_session is True
    assert TaskProgressUpdate(status="in_progress").clears_session is False


@pytest.mark.parametrize(
    "current, expected",
    [
        (
            ProgressState(status="in_progress", chat_session_id="s1", attempts=3),
            ProgressState(status="not_started", chat_session_id=None, attempts=3),
        ),
        (
            ProgressState(status="completed", chat_session_id="s1", attempts=1, completed_at=NOW),
            ProgressState(status="completed", chat_session_id=None, attempts=1, completed_at=NOW),
        ),
        (ProgressState(status="in_progress", chat_session_id="s2"), None),
        (ProgressState(), None),
    ],
)
def test_deleted_session_releases_only_its_own_attempt(current, expected) -> None:
    assert plan_session_removed(current, "s1") == expected
