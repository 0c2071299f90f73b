"""Chat session endpoints: listing, renaming, deletion, history and message exchange."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .api_models import (
    ChatSessionCreate,
    ChatSessionPayload,
    ChatSessionSummary,
    ChatSessionTitleUpdate,
    DeleteChatSessionResponse,
    MessagePayload,
    SendMessageRequest,
    SendMessageResponse,
)
from .auth import current_user
from .config import Settings, get_settings
from .db.models import ChatSessionModel, UserModel
from .db.session import get_session_dependency
from .errors import ErrorKind, api_error
from .rate_limit import RateLimiter
from .repositories import chats, tasks
from .responder import Responder, get_responder
from .telemetry import emit_event

router = APIRouter(prefix="/api/chat", tags=["chat"])
logger = logging.getLogger(__name__)

TITLE_PREVIEW_LENGTH = 50


@lru_cache
def get_chat_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(settings.chat_rate_limit, settings.chat_rate_window_seconds)


def _title_from_message(content: str) -> str:
    first_line = content.strip().splitlines()[0] if content.strip() else ""
    if len(first_line) <= TITLE_PREVIEW_LENGTH:
        return first_line or "New Chat"
    return first_line[: TITLE_PREVIEW_LENGTH - 3].rstrip() + "..."


@router.post("/sessions", response_model=ChatSessionPayload)
def create_chat_session(
    request: ChatSessionCreate,
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> ChatSessionPayload:
    created = chats.create_session(session, user.id, request.title.strip() or "New Chat")
    logger.debug("Created chat session %s for %s", created.id, user.id)
    return created


@router.get("/sessions", response_model=List[ChatSessionSummary])
def list_chat_sessions(
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> List[ChatSessionSummary]:
    return chats.list_sessions(session, user.id)


def _owned_session(session: Session, user: UserModel, session_id: str) -> ChatSessionModel:
    chat_session = chats.get_session(session, user.id, session_id)
    if chat_session is None:
        raise api_error(ErrorKind.NOT_FOUND, f"Chat session {session_id} not found.")
    return chat_session


@router.patch("/sessions/{session_id}", response_model=ChatSessionPayload)
def rename_chat_session(
    session_id: str,
    request: ChatSessionTitleUpdate,
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> ChatSessionPayload:
    return chats.rename_session(session, _owned_session(session, user, session_id), request.title)


@router.delete("/sessions/{session_id}", response_model=DeleteChatSessionResponse)
def delete_chat_session(
    session_id: str,
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> DeleteChatSessionResponse:
    """Delete a session and release any unfinished task attempt that was running in it."""
    chat_session = _owned_session(session, user, session_id)
    reset_task_ids = tasks.release_session(session, user.id, session_id)
    chats.delete_session(session, chat_session)
    logger.info("Deleted chat session %s for %s (tasks reset: %d)", session_id, user.id, len(reset_task_ids))
    emit_event(
        "chat_session_deleted",
        user_id=user.id,
        session_id=session_id,
        tasks_reset=len(reset_task_ids),
    )
    return DeleteChatSessionResponse(tasks_reset=len(reset_task_ids), reset_task_ids=reset_task_ids)


@router.get("/sessions/{session_id}/messages", response_model=List[MessagePayload])
def get_messages(
    session_id: str,
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> List[MessagePayload]:
    _owned_session(session, user, session_id)
    return chats.list_messages(session, session_id)


@router.post("/messages", response_model=SendMessageResponse)
async def send_message(
    request: SendMessageRequest,
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
    settings: Settings = Depends(get_settings),
    limiter: RateLimiter = Depends(get_chat_rate_limiter),
    responder: Responder = Depends(get_responder),
) -> SendMessageResponse:
    content = request.content.strip()
    if not content:
        raise api_error(ErrorKind.VALIDATION, "Message cannot be empty")
    if len(content) > settings.message_max_length:
        raise api_error(
            ErrorKind.VALIDATION,
            f"Message too long (max {settings.message_max_length} characters)",
        )

    verdict = limiter.hit(user.id)
    if not verdict.allowed:
        logger.warning("Rate limit exceeded for %s", user.id)
        emit_event("rate_limit_exceeded", user_id=user.id)
        raise api_error(
            ErrorKind.RATE_LIMITED,
            f"Rate limit exceeded. Try again in {verdict.retry_after_seconds} seconds.",
        )

    if request.session_id:
        chat_session = _owned_session(session, user, request.session_id)
    else:
        created = chats.create_session(session, user.id, _title_from_message(content))
        chat_session = _owned_session(session, user, created.id)

    chats.append_message(session, chat_session, role="user", content=content)
    history = chats.list_messages(session, chat_session.id)
    reply = await responder.reply(history)
    chats.append_message(session, chat_session, role="assistant", content=reply)
    emit_event("chat_message_sent", user_id=user.id, session_id=chat_session.id, length=len(content))
    return SendMessageResponse(session_id=chat_session.id, response=reply)


__all__ = ["get_chat_rate_limiter", "router"]
