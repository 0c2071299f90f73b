"""Choosing which tasks to show on the task page."""

from __future__ import annotations

import math
from typing import Dict, List, Sequence

from ..api_models import TaskPayload

DEFAULT_SLATE_SIZE = 5


def select_task_slate(
    tasks: Sequence[TaskPayload],
    languages: Sequence[str],
    limit: int = DEFAULT_SLATE_SIZE,
) -> List[TaskPayload]:
    """Spread the slate evenly over the preferred languages, then fill from the rest.

    Task order inside each language is preserved.
    """
    if limit <= 0 or not tasks:
        return []
    if len(languages) <= 1:
        return list(tasks[:limit])

    per_language = math.ceil(limit / len(languages))
    by_language: Dict[str, List[TaskPayload]] = {}
    for task in tasks:
        by_language.setdefault(task.language.lower(), []).append(task)

    slate: List[TaskPayload] = []
    for language in languages:
        remaining = limit - len(slate)
        if remaining <= 0:
            break
        candidates = by_language.get(language.lower(), [])
        slate.extend(candidates[: min(per_language, remaining)])

    if len(slate) < limit:
        chosen = {task.id for task in slate}
        for task in tasks:
            if task.id not in chosen:
                slate.append(task)
                if len(slate) >= limit:
                    break
    return slate[:limit]


__all__ = ["DEFAULT_SLATE_SIZE", "select_task_slate"]
