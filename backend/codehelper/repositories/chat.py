"""Chat sessions and their append-only message log."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..api_models import ChatSessionPayload, ChatSessionSummary, MessagePayload
from ..db.models import ChatSessionModel, MessageModel


class ChatRepository:
    def create_session(self, session: Session, user_id: str, title: str) -> ChatSessionPayload:
        model = ChatSessionModel(user_id=user_id, title=title)
        session.add(model)
        session.flush()
        return self._session_payload(model)

    def get_session(self, session: Session, user_id: str, session_id: str) -> Optional[ChatSessionModel]:
        """Sessions are only visible to their owner."""
        stmt = select(ChatSessionModel).where(
            ChatSessionModel.id == session_id,
            ChatSessionModel.user_id == user_id,
        )
        return session.execute(stmt).scalar_one_or_none()

    def list_sessions(self, session: Session, user_id: str) -> List[ChatSessionSummary]:
        stmt = (
            select(ChatSessionModel)
            .where(ChatSessionModel.user_id == user_id)
            .order_by(ChatSessionModel.updated_at.desc(), ChatSessionModel.created_at.desc())
        )
        summaries: List[ChatSessionSummary] = []
        for model in session.execute(stmt).scalars():
            first = model.messages[0] if model.messages else None
            summaries.append(
                ChatSessionSummary(
                    id=model.id,
                    title=model.title,
                    created_at=model.created_at,
                    updated_at=model.updated_at,
                    first_message=self._message_payload(first) if first is not None else None,
                )
            )
        return summaries

    def rename_session(self, session: Session, chat_session: ChatSessionModel, title: str) -> ChatSessionPayload:
        chat_session.title = title
        session.flush()
        return self._session_payload(chat_session)

    def delete_session(self, session: Session, chat_session: ChatSessionModel) -> None:
        """Messages go with the session."""
        session.delete(chat_session)
        session.flush()

    def list_messages(self, session: Session, session_id: str) -> List[MessagePayload]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.chat_session_id == session_id)
            .order_by(MessageModel.position)
        )
        return [self._message_payload(model) for model in session.execute(stmt).scalars()]

    def append_message(
        self,
        session: Session,
        chat_session: ChatSessionModel,
        *,
        role: str,
        content: str,
        timestamp: Optional[datetime] = None,
    ) -> MessageModel:
        next_position = session.execute(
            select(func.coalesce(func.max(MessageModel.position), -1)).where(
                MessageModel.chat_session_id == chat_session.id
            )
        ).scalar_one() + 1
        model = MessageModel(
            chat_session_id=chat_session.id,
            user_id=chat_session.user_id,
            position=next_position,
            role=role,
            content=content,
        )
        if timestamp is not None:
            model.timestamp = timestamp
        session.add(model)
        session.flush()
        # Keeps the sidebar ordered by last activity.
        chat_session.updated_at = model.timestamp
        return model

    def count_user_messages(self, session: Session, user_id: str) -> int:
        stmt = select(func.count()).select_from(MessageModel).where(
            MessageModel.user_id == user_id,
            MessageModel.role == "user",
        )
        return int(session.execute(stmt).scalar_one())

    @staticmethod
    def _session_payload(model: ChatSessionModel) -> ChatSessionPayload:
        return ChatSessionPayload(id=model.id, title=model.title, created_at=model.created_at)

    @staticmethod
    def _message_payload(model: MessageModel) -> MessagePayload:
        return MessagePayload(
            id=model.id,
            role=model.role,  # type: ignore[arg-type]
            content=model.content,
            timestamp=model.timestamp,
        )


chats = ChatRepository()

__all__ = ["ChatRepository", "chats"]
