"""ORM models backing the Code Helper API."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserModel(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    role: Mapped[str] = mapped_column(String(16), default="user", nullable=False)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    profile_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    primary_language: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    preferred_languages: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    experience: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    focus_areas: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    confidence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    assessed_level: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    onboarding_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    assessments: Mapped[list["AssessmentModel"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    chat_sessions: Mapped[list["ChatSessionModel"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    task_progress: Mapped[list["TaskProgressModel"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


class AssessmentModel(Base):
    __tablename__ = "assessments"
    __table_args__ = (UniqueConstraint("user_id", "type", name="uq_assessment_user_type"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(8), nullable=False)
    language: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    answers: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    user: Mapped[UserModel] = relationship(back_populates="assessments")


class AssessmentQuestionModel(Base):
    __tablename__ = "assessment_questions"
    __table_args__ = (Index("ix_assessment_questions_language", "language", "difficulty"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(32), default="multiple_choice", nullable=False)
    options: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    correct_answer: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[str] = mapped_column(String(32), default="general", nullable=False)
    difficulty: Mapped[str] = mapped_column(String(16), default="beginner", nullable=False)


class TaskModel(TimestampMixin, Base):
    __tablename__ = "programming_tasks"

    id: Mapped[str] = mapped_column(String(128), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    difficulty: Mapped[str] = mapped_column(String(16), nullable=False)
    category: Mapped[str] = mapped_column(String(64), default="general", nullable=False)
    hints: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    starter_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class ChatSessionModel(TimestampMixin, Base):
    __tablename__ = "chat_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), default="New Chat", nullable=False)

    user: Mapped[UserModel] = relationship(back_populates="chat_sessions")
    messages: Mapped[list["MessageModel"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="MessageModel.position",
    )


class MessageModel(Base):
    __tablename__ = "messages"
    __table_args__ = (UniqueConstraint("chat_session_id", "position", name="uq_message_position"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    session: Mapped[ChatSessionModel] = relationship(back_populates="messages")


class TaskProgressModel(TimestampMixin, Base):
    __tablename__ = "user_task_progress"
    __table_args__ = (UniqueConstraint("user_id", "task_id", name="uq_task_progress_user_task"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    task_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("programming_tasks.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(16), default="not_started", nullable=False)
    chat_session_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[UserModel] = relationship(back_populates="task_progress")


__all__ = [
    "AssessmentModel",
    "AssessmentQuestionModel",
    "ChatSessionModel",
    "MessageModel",
    "TaskModel",
    "TaskProgressModel",
    "UserModel",
]
