"""Task attempts and the chat sessions they run in.

A task attempt is the span between starting (or restarting) a task and
completing or restarting it. Each attempt owns at most one chat session. The
progress row is the link; when it points at a session that turns out to be
empty the link is stale and is reset before the task is treated as fresh.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set, Tuple

from ..api_models import (
    CompleteTaskResponse,
    DeleteChatSessionResponse,
    TaskPayload,
    TaskProgressPayload,
    TaskProgressUpdate,
)
from ..cache import QueryCache
from ..errors import ApiError, ConflictError, NotFoundError, StaleStateError, ValidationError
from ..telemetry import emit_event
from .api import ApiClient
from .invalidation import ProgressInvalidator, task_key
from .navigation import ChatRoute
from .prompts import format_solution_message, task_session_title
from .retry import RetryPolicy, retry_transient

logger = logging.getLogger(__name__)

InflightKey = Tuple[str, str, str]


class DraftStore:
    """Per-task code drafts for the editor."""

    def __init__(self) -> None:
        self._drafts: Dict[str, str] = {}

    def get(self, task: TaskPayload) -> str:
        return self._drafts.get(task.id, task.starter_code or "")

    def set(self, task_id: str, code: str) -> None:
        self._drafts[task_id] = code

    def reset(self, task: TaskPayload) -> str:
        code = task.starter_code or ""
        self._drafts[task.id] = code
        return code


class TaskSessionCoordinator:
    def __init__(
        self,
        user_id: str,
        *,
        api: ApiClient,
        cache: QueryCache,
        drafts: Optional[DraftStore] = None,
        inflight: Optional[Set[InflightKey]] = None,
        link_policy: RetryPolicy = RetryPolicy(attempts=2),
        max_message_length: int = 2000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.user_id = user_id
        self._api = api
        self._cache = cache
        self._invalidator = ProgressInvalidator(cache)
        self.drafts = drafts or DraftStore()
        self._link_policy = link_policy
        self._max_message_length = max_message_length
        self._sleep = sleep
        # One set per page context; every coordinator built from it sees the same starts.
        self._inflight: Set[InflightKey] = inflight if inflight is not None else set()

    def is_busy(self, task_id: str) -> bool:
        return any(key[1] == task_id and key[2] == self.user_id for key in self._inflight)

    # Start ------------------------------------------------------------------

    async def start(self, task: TaskPayload) -> Optional[ChatRoute]:
        """Resume the attempt's session or open a fresh one.

        Returns None, without any remote call, while another start of the same
        task is still running.
        """
        key = ("start", task.id, self.user_id)
        if key in self._inflight:
            logger.debug("Ignoring duplicate start of %s for %s", task.id, self.user_id)
            return None
        self._inflight.add(key)
        try:
            return await self._start(task)
        finally:
            self._inflight.discard(key)

    async def _start(self, task: TaskPayload) -> ChatRoute:
        progress = await self.read_progress(task.id)

        if progress.status == "in_progress" and progress.chat_session_id:
            try:
                await self._require_messages(task.id, progress.chat_session_id)
            except StaleStateError as stale:
                await self._self_heal(stale)
            else:
                emit_event("task_attempt_resumed", user_id=self.user_id, task_id=task.id, session_id=progress.chat_session_id)
                return ChatRoute(session_id=progress.chat_session_id)

        elif progress.status == "completed":
            if progress.chat_session_id:
                return ChatRoute(session_id=progress.chat_session_id)
            raise ValidationError("This task is already completed. Restart it to try again.")

        session_id, created = await self._open_linked_session(task)
        if not created:
            # A concurrent start linked its own session first; join it without re-sending the prompt.
            return ChatRoute(session_id=session_id)
        emit_event("task_attempt_started", user_id=self.user_id, task_id=task.id, session_id=session_id)
        return ChatRoute(session_id=session_id, task_id=task.id, fresh=True)

    async def read_progress(self, task_id: str) -> TaskProgressPayload:
        task = await self._cache.fetch(task_key(task_id), lambda: self._api.get_task(task_id), force=True)
        return task.progress or TaskProgressPayload(task_id=task_id)

    async def _require_messages(self, task_id: str, session_id: str) -> None:
        try:
            messages = await self._api.get_messages(session_id)
        except NotFoundError as exc:
            raise StaleStateError(task_id, session_id) from exc
        if not messages:
            raise StaleStateError(task_id, session_id)

    async def _self_heal(self, stale: StaleStateError) -> None:
        # attempts stays unchanged: self-heal is not a restart.
        logger.info(
            "Task %s for %s pointed at empty session %s; resetting progress",
            stale.task_id,
            self.user_id,
            stale.session_id,
        )
        await self._api.update_task_progress(
            stale.task_id,
            TaskProgressUpdate(status="not_started", chat_session_id=None),
        )
        self._invalidator.after_status_change(stale.task_id)
        emit_event("task_progress_self_healed", user_id=self.user_id, task_id=stale.task_id, session_id=stale.session_id)

    async def _open_linked_session(self, task: TaskPayload) -> Tuple[str, bool]:
        """Create a session, then link it to the task.

        Returns the session the task ends up linked to and whether it is the one created here.
        """
        session = await self._api.create_chat_session(task_session_title(task))
        update = TaskProgressUpdate(status="in_progress", chat_session_id=session.id)
        try:
            await retry_transient(
                lambda: self._api.update_task_progress(task.id, update),
                self._link_policy,
                label=f"link task {task.id}",
                sleep=self._sleep,
            )
        except ConflictError:
            winner = await self.read_progress(task.id)
            if winner.status == "in_progress" and winner.chat_session_id:
                self._report_orphan(task.id, session.id, reason="concurrent_start")
                self._invalidator.after_status_change(task.id)
                return winner.chat_session_id, False
            raise
        except ApiError as exc:
            self._report_orphan(task.id, session.id, reason=exc.kind.value)
            raise
        self._invalidator.after_status_change(task.id)
        return session.id, True

    def _report_orphan(self, task_id: str, session_id: str, *, reason: str) -> None:
        logger.error(
            "Chat session %s for task %s (user %s) was left unlinked: %s",
            session_id,
            task_id,
            self.user_id,
            reason,
        )
        emit_event(
            "chat_session_orphaned",
            user_id=self.user_id,
            task_id=task_id,
            session_id=session_id,
            reason=reason,
        )

    # Complete / restart -------------------------------------------------------------

    async def complete(self, task: TaskPayload) -> CompleteTaskResponse:
        response = await self._api.complete_task(task.id)
        self._invalidator.after_status_change(task.id)
        return response

    async def restart(self, task: TaskPayload, confirmed: bool) -> Optional[TaskProgressPayload]:
        """Start a new attempt. Without explicit confirmation nothing happens."""
        if not confirmed:
            return None
        progress = await self.read_progress(task.id)
        if progress.status == "not_started":
            self.drafts.reset(task)
            return progress
        updated = await self._api.update_task_progress(
            task.id,
            TaskProgressUpdate(status="not_started", chat_session_id=None, attempts=progress.attempts + 1),
        )
        self.drafts.reset(task)
        self._invalidator.after_status_change(task.id)
        emit_event(
            "task_attempt_restarted",
            user_id=self.user_id,
            task_id=task.id,
            attempts=updated.attempts,
            previous_session_id=progress.chat_session_id,
        )
        return updated

    async def delete_session(self, session_id: str) -> DeleteChatSessionResponse:
        """Delete a chat session; any unfinished attempt running in it starts over."""
        result = await self._api.delete_chat_session(session_id)
        self._invalidator.after_session_deleted(session_id, result.reset_task_ids)
        if result.tasks_reset:
            logger.info(
                "Deleting session %s reset %d task attempt(s) for %s",
                session_id,
                result.tasks_reset,
                self.user_id,
            )
        return result

    # Solutions ----------------------------------------------------------------

    async def submit_solution(self, task: TaskPayload, code: str) -> Optional[ChatRoute]:
        """Send code for review into the attempt's session, linking one if needed."""
        if not code.strip():
            raise ValidationError("Write some code before submitting.")
        message = format_solution_message(task, code)
        if len(message) > self._max_message_length:
            raise ValidationError(f"Solution is too long (max {self._max_message_length} characters).")

        key = ("submit", task.id, self.user_id)
        if key in self._inflight:
            return None
        self._inflight.add(key)
        try:
            self.drafts.set(task.id, code)
            progress = await self.read_progress(task.id)
            if progress.chat_session_id and progress.status != "not_started":
                session_id = progress.chat_session_id
            else:
                session_id, _ = await self._open_linked_session(task)
            await self._api.send_message(message, session_id)
            self._invalidator.after_session_change(session_id)
            emit_event("task_solution_submitted", user_id=self.user_id, task_id=task.id, session_id=session_id)
            return ChatRoute(session_id=session_id)
        finally:
            self._inflight.discard(key)


__all__ = ["DraftStore", "InflightKey", "TaskSessionCoordinator"]
