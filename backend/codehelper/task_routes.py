"""Programming task catalogue and per-user progress endpoints."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .api_models import CompleteTaskResponse, TaskPayload, TaskProgressPayload, TaskProgressUpdate
from .auth import current_user
from .db.models import UserModel
from .db.session import get_session_dependency
from .errors import ErrorKind, api_error
from .progress import SessionLinkConflict, TransitionError, plan_completion, plan_transition
from .repositories import chats, tasks
from .telemetry import emit_event

router = APIRouter(prefix="/api/tasks", tags=["tasks"])
logger = logging.getLogger(__name__)


def _split_languages(values: List[str]) -> List[str]:
    languages: List[str] = []
    for value in values:
        for part in value.split(","):
            part = part.strip().lower()
            if part and part not in languages:
                languages.append(part)
    return languages


def _require_task(session: Session, task_id: str) -> None:
    if tasks.get_task_model(session, task_id) is None:
        raise api_error(ErrorKind.NOT_FOUND, f"Task {task_id} not found.")


@router.get("", response_model=List[TaskPayload])
def list_tasks(
    languages: List[str] = Query(default=[]),
    difficulty: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> List[TaskPayload]:
    return tasks.list_tasks(
        session,
        user.id,
        languages=_split_languages(languages),
        difficulty=difficulty,
        category=category,
    )


@router.get("/{task_id}", response_model=TaskPayload)
def get_task(
    task_id: str,
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> TaskPayload:
    task = tasks.get_task(session, user.id, task_id)
    if task is None:
        raise api_error(ErrorKind.NOT_FOUND, f"Task {task_id} not found.")
    return task


@router.patch("/{task_id}/progress", response_model=TaskProgressPayload)
def update_task_progress(
    task_id: str,
    update: TaskProgressUpdate,
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> TaskProgressPayload:
    _require_task(session, task_id)
    if update.chat_session_id and chats.get_session(session, user.id, update.chat_session_id) is None:
        raise api_error(ErrorKind.VALIDATION, f"Chat session {update.chat_session_id} does not exist.")

    current = tasks.progress_state(session, user.id, task_id)
    try:
        planned = plan_transition(current, update)
    except SessionLinkConflict as exc:
        logger.info(
            "Rejected link of task %s to %s for %s; already linked to %s",
            task_id,
            update.chat_session_id,
            user.id,
            exc.linked_session_id,
        )
        raise api_error(ErrorKind.CONFLICT, str(exc)) from exc
    except TransitionError as exc:
        raise api_error(ErrorKind.VALIDATION, str(exc)) from exc

    progress = tasks.save_progress(session, user.id, task_id, planned)
    if current != planned:
        emit_event(
            "task_progress_changed",
            user_id=user.id,
            task_id=task_id,
            from_status=current.status,
            to_status=planned.status,
            attempts=planned.attempts,
        )
    return progress


@router.post("/{task_id}/complete", response_model=CompleteTaskResponse)
def complete_task(
    task_id: str,
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> CompleteTaskResponse:
    _require_task(session, task_id)
    current = tasks.progress_state(session, user.id, task_id)
    try:
        planned, already_completed = plan_completion(current)
    except TransitionError as exc:
        raise api_error(ErrorKind.VALIDATION, str(exc)) from exc
    progress = tasks.save_progress(session, user.id, task_id, planned)
    if not already_completed:
        logger.info("Task %s completed by %s", task_id, user.id)
        emit_event("task_completed", user_id=user.id, task_id=task_id, attempts=planned.attempts)
    return CompleteTaskResponse(success=True, already_completed=already_completed, progress=progress)


__all__ = ["router"]
