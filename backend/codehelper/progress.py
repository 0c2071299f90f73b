"""Task progress state machine.

Allowed status moves::

    not_started -> in_progress          start / continue
    in_progress -> in_progress          continue in the same session
    in_progress -> completed            explicit complete
    in_progress -> not_started          restart (attempts += 1) or empty-session self-heal
    completed   -> not_started          restart (attempts += 1)

Every move to ``not_started`` clears the linked chat session. Deleting a chat
session releases the attempt that was running in it. ``attempts`` can
only change together with a move to ``not_started`` and never decreases.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import FrozenSet, Optional, Tuple

from .api_models import TaskProgressUpdate, TaskStatus

ALLOWED_TRANSITIONS: FrozenSet[Tuple[str, str]] = frozenset(
    {
        ("not_started", "in_progress"),
        ("in_progress", "in_progress"),
        ("in_progress", "completed"),
        ("in_progress", "not_started"),
        ("completed", "not_started"),
    }
)


class TransitionError(ValueError):
    """The requested change is not a legal progress transition."""


class SessionLinkConflict(TransitionError):
    """An in-progress attempt is already linked to a different chat session."""

    def __init__(self, linked_session_id: str) -> None:
        super().__init__(f"Task attempt is already linked to session {linked_session_id}.")
        self.linked_session_id = linked_session_id


@dataclass(frozen=True)
class ProgressState:
    status: TaskStatus = "not_started"
    chat_session_id: Optional[str] = None
    attempts: int = 0
    completed_at: Optional[datetime] = None


def plan_transition(
    current: ProgressState,
    update: TaskProgressUpdate,
    *,
    now: Optional[datetime] = None,
) -> ProgressState:
    """Return the state that results from applying ``update`` to ``current``."""
    now = now or datetime.now(timezone.utc)
    target: TaskStatus = update.status or current.status

    if target != current.status and (current.status, target) not in ALLOWED_TRANSITIONS:
        raise TransitionError(f"Cannot move task progress from {current.status} to {target}.")

    attempts = current.attempts
    if update.attempts is not None and update.attempts != current.attempts:
        if update.attempts < current.attempts:
            raise TransitionError("Attempts can never decrease.")
        if target != "not_started" or current.status == "not_started":
            raise TransitionError("Attempts only increase when an attempt is restarted.")
        attempts = update.attempts

    if target == "not_started":
        if update.chat_session_id:
            raise TransitionError("A task that has not started cannot be linked to a chat session.")
        return ProgressState(status="not_started", chat_session_id=None, attempts=attempts)

    if target == "completed":
        if current.status == "completed":
            return current
        return ProgressState(
            status="completed",
            chat_session_id=current.chat_session_id,
            attempts=attempts,
            completed_at=now,
        )

    # target == "in_progress"
    session_id = current.chat_session_id
    if update.clears_session:
        raise TransitionError("An in-progress attempt must stay linked to its chat session.")
    if update.chat_session_id:
        if current.status == "in_progress" and session_id and session_id != update.chat_session_id:
            raise SessionLinkConflict(session_id)
        session_id = update.chat_session_id
    if not session_id:
        raise TransitionError("An in-progress attempt requires a chat session.")
    return ProgressState(status="in_progress", chat_session_id=session_id, attempts=attempts)


def plan_completion(current: ProgressState, *, now: Optional[datetime] = None) -> Tuple[ProgressState, bool]:
    """Apply the explicit complete transition; returns (state, already_completed)."""
    if current.status == "completed":
        return current, True
    if current.status != "in_progress":
        raise TransitionError("Only a task in progress can be completed.")
    return plan_transition(current, TaskProgressUpdate(status="completed"), now=now), False


def plan_session_removed(current: ProgressState, session_id: str) -> Optional[ProgressState]:
    """State once the chat session ``session_id`` is deleted, or None when the row is unaffected.

    An unfinished attempt goes back to ``not_started`` with ``attempts`` unchanged.
    A completed task keeps its status and only loses the dangling link.
    """
    if current.chat_session_id != session_id:
        return None
    if current.status == "completed":
        return replace(current, chat_session_id=None)
    return ProgressState(status="not_started", chat_session_id=None, attempts=current.attempts)


__all__ = [
    "ALLOWED_TRANSITIONS",
    "ProgressState",
    "SessionLinkConflict",
    "TransitionError",
    "plan_completion",
    "plan_session_removed",
    "plan_transition",
]
