"""Remote API surface used by the client core, plus its httpx implementation."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Type, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter

from ..api_models import (
    AccountPayload,
    AssessmentPayload,
    AssessmentQuestionPayload,
    AssessmentSubmission,
    AssessmentType,
    BlockedStatusPayload,
    ChatSessionPayload,
    ChatSessionSummary,
    CompleteTaskResponse,
    DeleteChatSessionResponse,
    EligibilityPayload,
    MessagePayload,
    OnboardingStatusPayload,
    ProfilePayload,
    ProfileUpdate,
    SendMessageResponse,
    TaskPayload,
    TaskProgressPayload,
    TaskProgressUpdate,
)
from ..config import Settings
from ..errors import TransientError, error_from_response
from .retry import NO_RETRY, RetryPolicy, retry_transient

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ApiClient(Protocol):
    """Every remote call the client core makes. Errors surface as ``ApiError`` subclasses."""

    async def register(self) -> AccountPayload: ...

    async def get_blocked_status(self) -> bool: ...

    async def set_user_blocked(self, user_id: str, blocked: bool) -> AccountPayload: ...

    async def get_profile(self) -> ProfilePayload: ...

    async def update_profile(self, update: ProfileUpdate) -> ProfilePayload: ...

    async def get_onboarding_status(self) -> bool: ...

    async def update_onboarding_status(self, completed: bool) -> bool: ...

    async def get_assessments(self) -> List[AssessmentPayload]: ...

    async def get_assessment_questions(
        self, assessment_type: AssessmentType, language: Optional[str] = None
    ) -> List[AssessmentQuestionPayload]: ...

    async def submit_assessment(self, submission: AssessmentSubmission) -> AssessmentPayload: ...

    async def get_eligibility(self) -> EligibilityPayload: ...

    async def create_chat_session(self, title: str) -> ChatSessionPayload: ...

    async def list_chat_sessions(self) -> List[ChatSessionSummary]: ...

    async def rename_chat_session(self, session_id: str, title: str) -> ChatSessionPayload: ...

    async def delete_chat_session(self, session_id: str) -> DeleteChatSessionResponse: ...

    async def get_messages(self, session_id: str) -> List[MessagePayload]: ...

    async def send_message(self, content: str, session_id: Optional[str] = None) -> SendMessageResponse: ...

    async def get_task(self, task_id: str) -> TaskPayload: ...

    async def get_tasks(
        self,
        languages: Sequence[str] = (),
        difficulty: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[TaskPayload]: ...

    async def update_task_progress(self, task_id: str, update: TaskProgressUpdate) -> TaskProgressPayload: ...

    async def complete_task(self, task_id: str) -> CompleteTaskResponse: ...


class HttpApiClient:
    """ApiClient over ``httpx.AsyncClient``.

    Reads are retried on transient failures according to ``read_policy``;
    mutations are sent exactly once.
    """

    def __init__(
        self,
        user_id: str,
        *,
        base_url: str = "http://127.0.0.1:8000",
        timeout: float = 15.0,
        read_policy: RetryPolicy = NO_RETRY,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.user_id = user_id
        self._read_policy = read_policy
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, user_id: str, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "HttpApiClient":
        return cls(
            user_id,
            base_url=settings.api_base_url,
            timeout=settings.api_timeout_seconds,
            read_policy=RetryPolicy(
                attempts=settings.read_retry_attempts,
                base_delay=settings.retry_base_delay_seconds,
                max_delay=settings.retry_max_delay_seconds,
                jitter=settings.retry_base_delay_seconds,
            ),
            client=client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # Account -----------------------------------------------------------

    async def register(self) -> AccountPayload:
        return AccountPayload.model_validate(await self._send("POST", "/api/account/register"))

    async def get_blocked_status(self) -> bool:
        payload = await self._read("GET", "/api/account/blocked")
        return BlockedStatusPayload.model_validate(payload).is_blocked

    async def set_user_blocked(self, user_id: str, blocked: bool) -> AccountPayload:
        payload = await self._send("POST", f"/api/admin/users/{user_id}/block", json={"blocked": blocked})
        return AccountPayload.model_validate(payload)

    # Profile and onboarding ---------------------------------------------

    async def get_profile(self) -> ProfilePayload:
        return ProfilePayload.model_validate(await self._read("GET", "/api/profile"))

    async def update_profile(self, update: ProfileUpdate) -> ProfilePayload:
        payload = await self._send("PUT", "/api/profile", json=update.model_dump(exclude_unset=True))
        return ProfilePayload.model_validate(payload)

    async def get_onboarding_status(self) -> bool:
        payload = await self._read("GET", "/api/onboarding/status")
        return OnboardingStatusPayload.model_validate(payload).completed

    async def update_onboarding_status(self, completed: bool) -> bool:
        payload = await self._send("PUT", "/api/onboarding/status", json={"completed": completed})
        return OnboardingStatusPayload.model_validate(payload).completed

    # Assessments ----------------------------------------------------------

    async def get_assessments(self) -> List[AssessmentPayload]:
        return _validate_list(AssessmentPayload, await self._read("GET", "/api/assessments"))

    async def get_assessment_questions(
        self, assessment_type: AssessmentType, language: Optional[str] = None
    ) -> List[AssessmentQuestionPayload]:
        params: Dict[str, Any] = {"type": assessment_type}
        if language:
            params["language"] = language
        payload = await self._read("GET", "/api/assessments/questions", params=params)
        return _validate_list(AssessmentQuestionPayload, payload)

    async def submit_assessment(self, submission: AssessmentSubmission) -> AssessmentPayload:
        payload = await self._send("POST", "/api/assessments", json=submission.model_dump(mode="json"))
        return AssessmentPayload.model_validate(payload)

    async def get_eligibility(self) -> EligibilityPayload:
        return EligibilityPayload.model_validate(await self._read("GET", "/api/assessments/eligibility"))

    # Chat -----------------------------------------------------------------

    async def create_chat_session(self, title: str) -> ChatSessionPayload:
        payload = await self._send("POST", "/api/chat/sessions", json={"title": title})
        return ChatSessionPayload.model_validate(payload)

    async def list_chat_sessions(self) -> List[ChatSessionSummary]:
        return _validate_list(ChatSessionSummary, await self._read("GET", "/api/chat/sessions"))

    async def rename_chat_session(self, session_id: str, title: str) -> ChatSessionPayload:
        payload = await self._send("PATCH", f"/api/chat/sessions/{session_id}", json={"title": title})
        return ChatSessionPayload.model_validate(payload)

    async def delete_chat_session(self, session_id: str) -> DeleteChatSessionResponse:
        payload = await self._send("DELETE", f"/api/chat/sessions/{session_id}")
        return DeleteChatSessionResponse.model_validate(payload)

    async def get_messages(self, session_id: str) -> List[MessagePayload]:
        payload = await self._read("GET", f"/api/chat/sessions/{session_id}/messages")
        return _validate_list(MessagePayload, payload)

    async def send_message(self, content: str, session_id: Optional[str] = None) -> SendMessageResponse:
        body: Dict[str, Any] = {"content": content}
        if session_id:
            body["session_id"] = session_id
        return SendMessageResponse.model_validate(await self._send("POST", "/api/chat/messages", json=body))

    # Tasks ----------------------------------------------------------------

    async def get_task(self, task_id: str) -> TaskPayload:
        return TaskPayload.model_validate(await self._read("GET", f"/api/tasks/{task_id}"))

    async def get_tasks(
        self,
        languages: Sequence[str] = (),
        difficulty: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[TaskPayload]:
        params: Dict[str, Any] = {}
        if languages:
            params["languages"] = list(languages)
        if difficulty:
            params["difficulty"] = difficulty
        if category:
            params["category"] = category
        return _validate_list(TaskPayload, await self._read("GET", "/api/tasks", params=params))

    async def update_task_progress(self, task_id: str, update: TaskProgressUpdate) -> TaskProgressPayload:
        # exclude_unset keeps an explicit ``chat_session_id: None`` (clear) distinct from "leave alone".
        payload = await self._send(
            "PATCH",
            f"/api/tasks/{task_id}/progress",
            json=update.model_dump(exclude_unset=True),
        )
        return TaskProgressPayload.model_validate(payload)

    async def complete_task(self, task_id: str) -> CompleteTaskResponse:
        return CompleteTaskResponse.model_validate(await self._send("POST", f"/api/tasks/{task_id}/complete"))

    # Transport --------------------------------------------------------------

    async def _read(self, method: str, path: str, **kwargs: Any) -> Any:
        return await retry_transient(
            lambda: self._send(method, path, **kwargs),
            self._read_policy,
            label=f"{method} {path}",
        )

    async def _send(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {"X-User-Id": self.user_id}
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed before a response arrived: %s", method, path, exc)
            raise TransientError(str(exc) or exc.__class__.__name__) from exc

        if response.is_success:
            return response.json() if response.content else None

        try:
            body = response.json()
        except ValueError:
            body = {"detail": response.text}
        error = error_from_response(response.status_code, body)
        logger.debug("%s %s -> %s (%s)", method, path, response.status_code, error.kind.value)
        raise error


def _validate_list(model: Type[ModelT], payload: Any) -> List[ModelT]:
    return TypeAdapter(List[model]).validate_python(payload or [])  # type: ignore[valid-type]


__all__ = ["ApiClient", "HttpApiClient"]
