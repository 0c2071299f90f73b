"""Which cached queries a mutation makes stale."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, List, Optional

from ..cache import QueryCache, QueryKey

logger = logging.getLogger(__name__)

TASKS_KEY: QueryKey = ("tasks",)
STATS_KEY: QueryKey = ("stats",)
SESSIONS_KEY: QueryKey = ("sessions",)


def task_key(task_id: str) -> QueryKey:
    return ("task", task_id)


def messages_key(session_id: str) -> QueryKey:
    return ("messages", session_id)


class GatingQuery(str, Enum):
    PROFILE = "profile"
    ASSESSMENTS = "assessments"
    ONBOARDING_STATUS = "onboarding_status"
    QUESTIONS = "questions"

    @property
    def key(self) -> QueryKey:
        return (self.value,)


class ProgressInvalidator:
    def __init__(self, cache: QueryCache) -> None:
        self.cache = cache

    def after_status_change(self, task_id: str) -> List[QueryKey]:
        """Task list, the task's own progress and aggregate stats."""
        affected: List[QueryKey] = []
        for prefix in (TASKS_KEY, task_key(task_id), STATS_KEY):
            affected.extend(self.cache.invalidate(prefix))
        logger.debug("Status change on task %s invalidated %d queries", task_id, len(affected))
        return affected

    def after_onboarding_change(self, kind: GatingQuery) -> List[QueryKey]:
        return self.cache.invalidate(kind.key)

    def after_session_change(self, session_id: Optional[str]) -> List[QueryKey]:
        if not session_id:
            return []
        return self.cache.invalidate(messages_key(session_id))

    def after_session_deleted(self, session_id: str, reset_task_ids: Iterable[str]) -> List[QueryKey]:
        """The session list, the session's messages and every task whose attempt it ended."""
        affected = self.cache.invalidate(SESSIONS_KEY) + self.cache.invalidate(messages_key(session_id))
        for task_id in reset_task_ids:
            affected.extend(self.after_status_change(task_id))
        return affected


__all__ = [
    "GatingQuery",
    "ProgressInvalidator",
    "SESSIONS_KEY",
    "STATS_KEY",
    "TASKS_KEY",
    "messages_key",
    "task_key",
]
