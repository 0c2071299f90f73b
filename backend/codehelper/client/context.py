"""Wires the client components for one signed-in user."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Set

import httpx

from ..api_models import AccountPayload
from ..cache import QueryCache
from ..config import Settings, get_settings
from .api import ApiClient, HttpApiClient
from .block_status import BlockedLoader, BlockStatusResolver
from .chat_view import ChatSessionView
from .consent import ConsentGate
from .local_state import LocalStateStore
from .navigation import Navigator, Notifier
from .onboarding import OnboardingController
from .retry import RetryPolicy
from .task_session import DraftStore, InflightKey, TaskSessionCoordinator


@dataclass
class ClientContext:
    """Page-scoped objects shared by every component of one user's session.

    Replaces process-global caches: each context owns its resolver, consent
    gate, query cache, prompt-sent registry, start guard and code drafts.
    """

    user_id: str
    api: ApiClient
    navigator: Navigator
    notifier: Notifier
    settings: Settings
    cache: QueryCache
    block_status: BlockStatusResolver
    consent: ConsentGate
    prompted_sessions: Set[str] = field(default_factory=set)
    inflight: Set[InflightKey] = field(default_factory=set)
    drafts: DraftStore = field(default_factory=DraftStore)

    @classmethod
    def create(
        cls,
        user_id: str,
        *,
        navigator: Navigator,
        notifier: Notifier,
        settings: Optional[Settings] = None,
        api: Optional[ApiClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "ClientContext":
        settings = settings or get_settings()
        if api is None:
            api = HttpApiClient.from_settings(user_id, settings, client=http_client)
        return cls(
            user_id=user_id,
            api=api,
            navigator=navigator,
            notifier=notifier,
            settings=settings,
            cache=QueryCache(stale_after=settings.query_stale_seconds),
            block_status=BlockStatusResolver(
                _own_block_status(user_id, api),
                ttl_seconds=settings.block_status_ttl_seconds,
            ),
            consent=ConsentGate(LocalStateStore(Path(settings.local_state_dir))),
        )

    def onboarding(self) -> OnboardingController:
        return OnboardingController(
            self.user_id,
            api=self.api,
            block_status=self.block_status,
            consent=self.consent,
            cache=self.cache,
            navigator=self.navigator,
            notifier=self.notifier,
        )

    def task_sessions(self) -> TaskSessionCoordinator:
        return TaskSessionCoordinator(
            self.user_id,
            api=self.api,
            cache=self.cache,
            drafts=self.drafts,
            inflight=self.inflight,
            link_policy=RetryPolicy(
                attempts=self.settings.link_retry_attempts,
                base_delay=self.settings.retry_base_delay_seconds,
                max_delay=self.settings.retry_max_delay_seconds,
            ),
            max_message_length=self.settings.message_max_length,
        )

    def chat_view(self) -> ChatSessionView:
        return ChatSessionView(
            api=self.api,
            navigator=self.navigator,
            notifier=self.notifier,
            auto_send_delay=self.settings.auto_send_delay_seconds,
            prompted_sessions=self.prompted_sessions,
        )

    async def set_user_blocked(self, user_id: str, blocked: bool) -> AccountPayload:
        """Admin block toggle; the cached answer for ``user_id`` is dropped so the change shows at once."""
        account = await self.api.set_user_blocked(user_id, blocked)
        self.block_status.invalidate(user_id)
        return account


def _own_block_status(signed_in_user: str, api: ApiClient) -> BlockedLoader:
    """The API only reports the caller's own status, so other ids are refused."""

    async def load(user_id: str) -> bool:
        if user_id != signed_in_user:
            raise ValueError(f"Block status is only available for the signed-in user, not {user_id!r}.")
        return await api.get_blocked_status()

    return load


__all__ = ["ClientContext"]
