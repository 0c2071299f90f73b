"""Chat page controller, including the one-time task prompt."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Set

from ..api_models import MessagePayload, SendMessageResponse, TaskPayload
from ..errors import ApiError
from ..telemetry import emit_event
from .api import ApiClient
from .navigation import ChatRoute, Navigator, Notifier
from .prompts import format_task_prompt

logger = logging.getLogger(__name__)


class ChatSessionView:
    """Loads a session and, for a freshly created task session, sends the task prompt once.

    The prompt is only sent when the route carries the task marker, the session
    is still empty right before sending, and this session has not been sent a
    prompt before. After a successful send the marker is stripped from the
    navigation state, so reopening the page does not send again.
    """

    def __init__(
        self,
        *,
        api: ApiClient,
        navigator: Navigator,
        notifier: Notifier,
        auto_send_delay: float = 0.3,
        prompted_sessions: Optional[Set[str]] = None,
    ) -> None:
        self._api = api
        self._navigator = navigator
        self._notifier = notifier
        self._delay = auto_send_delay
        self._prompted: Set[str] = prompted_sessions if prompted_sessions is not None else set()
        self._route: Optional[ChatRoute] = None
        self._pending: Optional[asyncio.Task[None]] = None
        self.messages: List[MessagePayload] = []

    @property
    def route(self) -> Optional[ChatRoute]:
        return self._route

    @property
    def pending_send(self) -> Optional[asyncio.Task[None]]:
        if self._pending is not None and self._pending.done():
            return None
        return self._pending

    async def open(self, route: ChatRoute, task: Optional[TaskPayload] = None) -> List[MessagePayload]:
        if self._route is None or (self._route.session_id, self._route.task_id) != (route.session_id, route.task_id):
            self._cancel_pending()
        self._route = route
        try:
            self.messages = await self._api.get_messages(route.session_id)
        except ApiError as exc:
            logger.warning("Could not load chat session %s: %s", route.session_id, exc)
            self._notifier.notify("Could not load this conversation.")
            self.messages = []
            return self.messages

        task_id = route.task_id if route.wants_auto_send else None
        if task_id and not self.messages and route.session_id not in self._prompted:
            if self.pending_send is None:
                self._pending = asyncio.ensure_future(self._auto_send(route, task_id, task))
        return self.messages

    def close(self) -> None:
        self._cancel_pending()
        self._route = None

    async def send(self, content: str) -> SendMessageResponse:
        if self._route is None:
            raise RuntimeError("Open a chat session before sending messages.")
        response = await self._api.send_message(content, self._route.session_id)
        self.messages = await self._api.get_messages(response.session_id)
        return response

    async def _auto_send(self, route: ChatRoute, task_id: str, task: Optional[TaskPayload]) -> None:
        await asyncio.sleep(self._delay)
        try:
            if task is None or task.id != task_id:
                task = await self._api.get_task(task_id)
            if await self._api.get_messages(route.session_id):
                logger.info("Session %s already has messages; skipping task prompt", route.session_id)
                self._strip_marker(route)
                return
            if route.session_id in self._prompted:
                return
            self._prompted.add(route.session_id)
            try:
                await self._api.send_message(format_task_prompt(task), route.session_id)
            except ApiError:
                # A later open may try again; the emptiness re-check guards duplicates.
                self._prompted.discard(route.session_id)
                raise
        except ApiError as exc:
            logger.warning("Sending the task prompt to %s failed: %s", route.session_id, exc)
            self._notifier.notify("Could not send the task description. Please try again.")
            return

        emit_event("task_prompt_sent", task_id=task_id, session_id=route.session_id)
        self._strip_marker(route)
        try:
            self.messages = await self._api.get_messages(route.session_id)
        except ApiError as exc:
            logger.warning("Refreshing messages for %s failed: %s", route.session_id, exc)

    def _strip_marker(self, route: ChatRoute) -> None:
        stripped = route.without_task()
        if self._route == route:
            self._route = stripped
        self._navigator.replace(stripped.path)

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            logger.debug("Cancelling pending task prompt")
            self._pending.cancel()
        self._pending = None


__all__ = ["ChatSessionView"]
