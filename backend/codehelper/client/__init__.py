"""Asyncio client core: onboarding gate, block status and task/session continuity."""

from .api import ApiClient, HttpApiClient
from .block_status import BlockStatusResolver
from .chat_view import ChatSessionView
from .consent import ConsentGate, ConsentRecord
from .context import ClientContext
from .invalidation import GatingQuery, ProgressInvalidator
from .local_state import LocalStateStore
from .navigation import ChatRoute, LoggingNotifier, Navigator, Notifier
from .onboarding import GatingInputs, OnboardingController, Step, decide_step
from .prompts import format_task_prompt
from .task_catalog import select_task_slate
from .task_session import DraftStore, TaskSessionCoordinator
from .tristate import LOADING, Known, TriState

__all__ = [
    "ApiClient",
    "BlockStatusResolver",
    "ChatRoute",
    "ChatSessionView",
    "ClientContext",
    "ConsentGate",
    "ConsentRecord",
    "DraftStore",
    "GatingInputs",
    "GatingQuery",
    "HttpApiClient",
    "Known",
    "LOADING",
    "LocalStateStore",
    "LoggingNotifier",
    "Navigator",
    "Notifier",
    "OnboardingController",
    "ProgressInvalidator",
    "Step",
    "TaskSessionCoordinator",
    "TriState",
    "decide_step",
    "format_task_prompt",
    "select_task_slate",
]
