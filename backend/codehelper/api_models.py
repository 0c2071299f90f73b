"""Pydantic payloads exchanged between the API service and the client core."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

TaskStatus = Literal["not_started", "in_progress", "completed"]
AssessmentType = Literal["pre", "post"]
QuestionType = Literal["multiple_choice", "code_snippet", "conceptual"]


class AccountPayload(BaseModel):
    user_id: str
    role: Literal["user", "admin"] = "user"
    is_blocked: bool = False
    created_at: Optional[datetime] = None


class BlockedStatusPayload(BaseModel):
    is_blocked: bool


class BlockToggleRequest(BaseModel):
    blocked: bool


class ProfilePayload(BaseModel):
    user_id: str
    completed: bool = False
    primary_language: Optional[str] = None
    preferred_languages: List[str] = Field(default_factory=list)
    experience: Optional[str] = None
    focus_areas: List[str] = Field(default_factory=list)
    confidence: Optional[int] = None


class ProfileUpdate(BaseModel):
    primary_language: Optional[str] = None
    preferred_languages: Optional[List[str]] = None
    experience: Optional[str] = None
    focus_areas: Optional[List[str]] = None
    confidence: Optional[int] = Field(default=None, ge=1, le=5)

    @field_validator("preferred_languages")
    @classmethod
    def _normalize_languages(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        seen: List[str] = []
        for entry in value:
            lowered = entry.strip().lower()
            if lowered and lowered not in seen:
                seen.append(lowered)
        return seen

    @field_validator("primary_language")
    @classmethod
    def _normalize_primary(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip().lower() or None


class OnboardingStatusPayload(BaseModel):
    completed: bool


class OnboardingStatusUpdate(BaseModel):
    completed: bool


class AssessmentPayload(BaseModel):
    id: str
    type: AssessmentType
    language: Optional[str] = None
    score: int
    total_questions: int
    confidence: int
    completed_at: datetime


class AssessmentQuestionPayload(BaseModel):
    id: str
    question: str
    type: QuestionType
    options: List[str] = Field(default_factory=list)
    language: str
    difficulty: str


class AssessmentAnswer(BaseModel):
    question_id: str = Field(..., min_length=1)
    answer: str


class AssessmentSubmission(BaseModel):
    type: AssessmentType
    language: Optional[str] = None
    answers: List[AssessmentAnswer] = Field(..., min_length=1)
    confidence: int = Field(..., ge=1, le=5)


class EligibilityPayload(BaseModel):
    is_eligible: bool
    days_since_registration: int
    questions_asked: int
    tasks_completed: int
    min_days_required: int
    min_questions_required: int
    min_tasks_required: int
    progress_percentage: int
    already_completed: bool = False
    message: str = ""


class ChatSessionCreate(BaseModel):
    title: str = Field(default="New Chat", max_length=200)


class ChatSessionPayload(BaseModel):
    id: str
    title: str
    created_at: Optional[datetime] = None


class MessagePayload(BaseModel):
    id: int
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime


class ChatSessionSummary(ChatSessionPayload):
    """Sidebar row: most recently active first, with the opening message as a preview."""

    updated_at: Optional[datetime] = None
    first_message: Optional[MessagePayload] = None


class ChatSessionTitleUpdate(BaseModel):
    title: str = Field(min_length=1, max_length=100)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Title is required")
        return stripped


class DeleteChatSessionResponse(BaseModel):
    success: bool = True
    tasks_reset: int = 0
    reset_task_ids: List[str] = Field(default_factory=list)


class SendMessageRequest(BaseModel):
    content: str
    session_id: Optional[str] = None


class SendMessageResponse(BaseModel):
    session_id: str
    response: str


class TaskProgressPayload(BaseModel):
    task_id: str
    status: TaskStatus = "not_started"
    chat_session_id: Optional[str] = None
    attempts: int = 0
    completed_at: Optional[datetime] = None


class TaskProgressUpdate(BaseModel):
    """Partial progress update.

    Fields left out of the request are untouched. An explicit
    ``chat_session_id: null`` clears the linked session.
    """

    status: Optional[TaskStatus] = None
    chat_session_id: Optional[str] = None
    attempts: Optional[int] = Field(default=None, ge=0)

    @property
    def clears_session(self) -> bool:
        return "chat_session_id" in self.model_fields_set and not self.chat_session_id


class TaskPayload(BaseModel):
    id: str
    title: str
    description: str
    language: str
    difficulty: str
    category: str = "general"
    hints: List[str] = Field(default_factory=list)
    starter_code: Optional[str] = None
    progress: Optional[TaskProgressPayload] = None

    @property
    def status(self) -> TaskStatus:
        return self.progress.status if self.progress else "not_started"


class CompleteTaskResponse(BaseModel):
    success: bool = True
    already_completed: bool = False
    progress: TaskProgressPayload


__all__ = [
    "AccountPayload",
    "AssessmentAnswer",
    "AssessmentPayload",
    "AssessmentQuestionPayload",
    "AssessmentSubmission",
    "AssessmentType",
    "BlockToggleRequest",
    "BlockedStatusPayload",
    "ChatSessionCreate",
    "ChatSessionPayload",
    "ChatSessionSummary",
    "ChatSessionTitleUpdate",
    "CompleteTaskResponse",
    "DeleteChatSessionResponse",
    "EligibilityPayload",
    "MessagePayload",
    "OnboardingStatusPayload",
    "OnboardingStatusUpdate",
    "ProfilePayload",
    "ProfileUpdate",
    "QuestionType",
    "SendMessageRequest",
    "SendMessageResponse",
    "TaskPayload",
    "TaskProgressPayload",
    "TaskProgressUpdate",
    "TaskStatus",
]
