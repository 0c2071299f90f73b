from __future__ import annotations

import asyncio
import itertools
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient

from codehelper.api_models import (
    AccountPayload,
    AssessmentPayload,
    AssessmentQuestionPayload,
    AssessmentSubmission,
    ChatSessionPayload,
    ChatSessionSummary,
    CompleteTaskResponse,
    DeleteChatSessionResponse,
    EligibilityPayload,
    MessagePayload,
    ProfilePayload,
    ProfileUpdate,
    SendMessageResponse,
    TaskPayload,
    TaskProgressPayload,
    TaskProgressUpdate,
)
from codehelper.errors import ConflictError, NotFoundError, ValidationError
from codehelper.progress import (
    ProgressState,
    SessionLinkConflict,
    TransitionError,
    plan_completion,
    plan_session_removed,
    plan_transition,
)
from codehelper.telemetry import clear_listeners

USER_ID = "learner-1"


@pytest.fixture(autouse=True)
def _reset_telemetry() -> Iterator[None]:
    clear_listeners()
    yield
    clear_listeners()


# Server ---------------------------------------------------------------------


@pytest.fixture()
def server(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    """FastAPI app on a fresh sqlite file with the starter catalogue loaded."""
    from codehelper.chat_routes import get_chat_rate_limiter
    from codehelper.config import get_settings
    from codehelper.db.session import dispose_engine, init_schema, session_scope
    from codehelper.main import app
    from codehelper.responder import reset_responder
    from codehelper.seed import seed_catalog

    monkeypatch.setenv("CODEHELPER_DATABASE_URL", f"sqlite:///{tmp_path / 'codehelper.sqlite'}")
    monkeypatch.setenv("CODEHELPER_ADMIN_USER_IDS", "admin-1")
    monkeypatch.setenv("CODEHELPER_CHAT_RATE_LIMIT", "3")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    get_settings.cache_clear()
    get_chat_rate_limiter.cache_clear()
    reset_responder()
    dispose_engine()

    init_schema()
    with session_scope() as session:
        seed_catalog(session)

    yield TestClient(app)

    dispose_engine()
    get_settings.cache_clear()
    get_chat_rate_limiter.cache_clear()
    reset_responder()


def headers_for(user_id: str) -> Dict[str, str]:
    return {"X-User-Id": user_id}


@pytest.fixture()
def registered(server: TestClient) -> TestClient:
    response = server.post("/api/account/register", headers=headers_for(USER_ID))
    assert response.status_code == 200
    return server


# Client fakes ----------------------------------------------------------------


class FakeNavigator:
    def __init__(self, path: str = "/") -> None:
        self.current_path = path
        self.history: List[tuple[str, str]] = []

    def push(self, path: str) -> None:
        self.history.append(("push", path))
        self.current_path = path

    def replace(self, path: str) -> None:
        self.history.append(("replace", path))
        self.current_path = path


class FakeNotifier:
    def __init__(self) -> None:
        self.messages: List[str] = []

    def notify(self, message: str, *, level: str = "error") -> None:
        self.messages.append(message)


class FakeApi:
    """In-memory ApiClient.

    ``fail(name, exc)`` queues an exception for the next call of ``name``;
    ``hold(name)`` makes calls of ``name`` wait until the returned event is set.
    Progress updates go through the real transition rules.
    """

    def __init__(self, user_id: str = USER_ID) -> None:
        self.user_id = user_id
        self.calls: List[tuple[str, tuple[Any, ...]]] = []
        self.blocked = False
        self.profile = ProfilePayload(user_id=user_id, completed=False)
        self.assessments: List[AssessmentPayload] = []
        self.onboarding_completed = False
        self.tasks: Dict[str, TaskPayload] = {}
        self.progress: Dict[str, ProgressState] = {}
        self.sessions: Dict[str, List[MessagePayload]] = {}
        self.titles: Dict[str, str] = {}
        self._failures: Dict[str, List[Exception]] = {}
        self._holds: Dict[str, asyncio.Event] = {}
        self._session_ids = itertools.count(1)
        self._message_ids = itertools.count(1)

    # Test controls

    def fail(self, name: str, exc: Exception, times: int = 1) -> None:
        self._failures.setdefault(name, []).extend([exc] * times)

    def hold(self, name: str) -> asyncio.Event:
        event = asyncio.Event()
        self._holds[name] = event
        return event

    def calls_to(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    def add_task(self, task_id: str = "task-1", **overrides: Any) -> TaskPayload:
        fields: Dict[str, Any] = {
            "id": task_id,
            "title": "Reverse a String",
            "description": "Return the input reversed.",
            "language": "python",
            "difficulty": "beginner",
            "category": "algorithms",
            "hints": ["Slicing helps"],
            "starter_code": "def reverse(s):\n    pass",
        }
        fields.update(overrides)
        task = TaskPayload(**fields)
        self.tasks[task_id] = task
        return task

    def add_session(self, messages: Sequence[str] = ()) -> str:
        session_id = f"session-{next(self._session_ids)}"
        self.sessions[session_id] = []
        for content in messages:
            self._append(session_id, "user", content)
        return session_id

    def _append(self, session_id: str, role: str, content: str) -> None:
        self.sessions[session_id].append(
            MessagePayload(
                id=next(self._message_ids),
                role=role,  # type: ignore[arg-type]
                content=content,
                timestamp=datetime.now(timezone.utc),
            )
        )

    async def _enter(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        hold = self._holds.get(name)
        if hold is not None:
            await hold.wait()
        queued = self._failures.get(name)
        if queued:
            raise queued.pop(0)

    def _progress_payload(self, task_id: str) -> TaskProgressPayload:
        state = self.progress.get(task_id, ProgressState())
        return TaskProgressPayload(
            task_id=task_id,
            status=state.status,
            chat_session_id=state.chat_session_id,
            attempts=state.attempts,
            completed_at=state.completed_at,
        )

    # ApiClient

    async def register(self) -> AccountPayload:
        await self._enter("register")
        return AccountPayload(user_id=self.user_id)

    async def get_blocked_status(self) -> bool:
        await self._enter("get_blocked_status")
        return self.blocked

    async def set_user_blocked(self, user_id: str, blocked: bool) -> AccountPayload:
        await self._enter("set_user_blocked", user_id, blocked)
        if user_id == self.user_id:
            self.blocked = blocked
        return AccountPayload(user_id=user_id, is_blocked=blocked)

    async def get_profile(self) -> ProfilePayload:
        await self._enter("get_profile")
        return self.profile

    async def update_profile(self, update: ProfileUpdate) -> ProfilePayload:
        await self._enter("update_profile", update)
        self.profile = self.profile.model_copy(
            update={**update.model_dump(exclude_unset=True), "completed": True}
        )
        return self.profile

    async def get_onboarding_status(self) -> bool:
        await self._enter("get_onboarding_status")
        return self.onboarding_completed

    async def update_onboarding_status(self, completed: bool) -> bool:
        await self._enter("update_onboarding_status", completed)
        self.onboarding_completed = self.onboarding_completed or completed
        return self.onboarding_completed

    async def get_assessments(self) -> List[AssessmentPayload]:
        await self._enter("get_assessments")
        return list(self.assessments)

    async def get_assessment_questions(
        self, assessment_type: str, language: Optional[str] = None
    ) -> List[AssessmentQuestionPayload]:
        await self._enter("get_assessment_questions", assessment_type, language)
        return [
            AssessmentQuestionPayload(
                id="q1",
                question="What is 1 + 1?",
                type="multiple_choice",
                options=["1", "2"],
                language=language or "general",
                difficulty="beginner",
            )
        ]

    async def submit_assessment(self, submission: AssessmentSubmission) -> AssessmentPayload:
        await self._enter("submit_assessment", submission)
        result = AssessmentPayload(
            id=f"assessment-{len(self.assessments) + 1}",
            type=submission.type,
            language=submission.language,
            score=len(submission.answers),
            total_questions=len(submission.answers),
            confidence=submission.confidence,
            completed_at=datetime.now(timezone.utc),
        )
        self.assessments.append(result)
        return result

    async def get_eligibility(self) -> EligibilityPayload:
        await self._enter("get_eligibility")
        raise NotImplementedError

    async def create_chat_session(self, title: str) -> ChatSessionPayload:
        await self._enter("create_chat_session", title)
        session_id = self.add_session()
        self.titles[session_id] = title
        return ChatSessionPayload(id=session_id, title=title)

    async def list_chat_sessions(self) -> List[ChatSessionSummary]:
        await self._enter("list_chat_sessions")
        return [
            ChatSessionSummary(id=session_id, title=self.titles.get(session_id, "New Chat"))
            for session_id in reversed(list(self.sessions))
        ]

    async def rename_chat_session(self, session_id: str, title: str) -> ChatSessionPayload:
        await self._enter("rename_chat_session", session_id, title)
        if session_id not in self.sessions:
            raise NotFoundError(f"Chat session {session_id} not found.")
        self.titles[session_id] = title
        return ChatSessionPayload(id=session_id, title=title)

    async def delete_chat_session(self, session_id: str) -> DeleteChatSessionResponse:
        await self._enter("delete_chat_session", session_id)
        if self.sessions.pop(session_id, None) is None:
            raise NotFoundError(f"Chat session {session_id} not found.")
        reset: List[str] = []
        for task_id, state in list(self.progress.items()):
            released = plan_session_removed(state, session_id)
            if released is None:
                continue
            if state.status != "completed":
                reset.append(task_id)
            self.progress[task_id] = released
        return DeleteChatSessionResponse(tasks_reset=len(reset), reset_task_ids=reset)

    async def get_messages(self, session_id: str) -> List[MessagePayload]:
        await self._enter("get_messages", session_id)
        if session_id not in self.sessions:
            raise NotFoundError(f"Chat session {session_id} not found.")
        return list(self.sessions[session_id])

    async def send_message(self, content: str, session_id: Optional[str] = None) -> SendMessageResponse:
        await self._enter("send_message", content, session_id)
        if session_id is None:
            session_id = self.add_session()
        if session_id not in self.sessions:
            raise NotFoundError(f"Chat session {session_id} not found.")
        self._append(session_id, "user", content)
        self._append(session_id, "assistant", "Looks good.")
        return SendMessageResponse(session_id=session_id, response="Looks good.")

    async def get_task(self, task_id: str) -> TaskPayload:
        await self._enter("get_task", task_id)
        if task_id not in self.tasks:
            raise NotFoundError(f"Task {task_id} not found.")
        task = self.tasks[task_id]
        progress = self._progress_payload(task_id) if task_id in self.progress else None
        return task.model_copy(update={"progress": progress})

    async def get_tasks(self, languages=(), difficulty=None, category=None) -> List[TaskPayload]:
        await self._enter("get_tasks", tuple(languages))
        return [await self.get_task(task_id) for task_id in self.tasks]

    async def update_task_progress(self, task_id: str, update: TaskProgressUpdate) -> TaskProgressPayload:
        await self._enter("update_task_progress", task_id, update)
        current = self.progress.get(task_id, ProgressState())
        try:
            self.progress[task_id] = plan_transition(current, update)
        except SessionLinkConflict as exc:
            raise ConflictError(str(exc)) from exc
        except TransitionError as exc:
            raise ValidationError(str(exc)) from exc
        return self._progress_payload(task_id)

    async def complete_task(self, task_id: str) -> CompleteTaskResponse:
        await self._enter("complete_task", task_id)
        current = self.progress.get(task_id, ProgressState())
        try:
            state, already = plan_completion(current)
        except TransitionError as exc:
            raise ValidationError(str(exc)) from exc
        self.progress[task_id] = state
        return CompleteTaskResponse(already_completed=already, progress=self._progress_payload(task_id))


@pytest.fixture()
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture()
def navigator() -> FakeNavigator:
    return FakeNavigator()


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()
