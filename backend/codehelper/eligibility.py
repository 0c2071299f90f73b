"""Post-assessment eligibility derived from activity thresholds."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

MIN_DAYS_REQUIRED = 14
MIN_QUESTIONS_REQUIRED = 20
MIN_TASKS_REQUIRED = 5


@dataclass(frozen=True)
class Eligibility:
    is_eligible: bool
    days_since_registration: int
    questions_asked: int
    tasks_completed: int
    min_days_required: int = MIN_DAYS_REQUIRED
    min_questions_required: int = MIN_QUESTIONS_REQUIRED
    min_tasks_required: int = MIN_TASKS_REQUIRED
    progress_percentage: int = 0


def _capped_percentage(value: int, required: int) -> float:
    if required <= 0:
        return 100.0
    return min(100.0, value / required * 100)


def check_post_assessment_eligibility(
    registered_at: datetime,
    questions_asked: int,
    tasks_completed: int,
    *,
    now: Optional[datetime] = None,
) -> Eligibility:
    now = now or datetime.now(timezone.utc)
    if registered_at.tzinfo is None:
        registered_at = registered_at.replace(tzinfo=timezone.utc)
    days = max(0, (now - registered_at).days)

    percentages = [
        _capped_percentage(days, MIN_DAYS_REQUIRED),
        _capped_percentage(questions_asked, MIN_QUESTIONS_REQUIRED),
        _capped_percentage(tasks_completed, MIN_TASKS_REQUIRED),
    ]
    return Eligibility(
        is_eligible=(
            days >= MIN_DAYS_REQUIRED
            and questions_asked >= MIN_QUESTIONS_REQUIRED
            and tasks_completed >= MIN_TASKS_REQUIRED
        ),
        days_since_registration=days,
        questions_asked=questions_asked,
        tasks_completed=tasks_completed,
        progress_percentage=round(sum(percentages) / len(percentages)),
    )


def _remaining(count: int, noun: str) -> str:
    return f"{count} more {noun}{'' if count == 1 else 's'}"


def post_assessment_message(eligibility: Eligibility) -> str:
    if eligibility.is_eligible:
        return "You're ready for post-assessment!"
    parts: List[str] = []
    days_left = eligibility.min_days_required - eligibility.days_since_registration
    questions_left = eligibility.min_questions_required - eligibility.questions_asked
    tasks_left = eligibility.min_tasks_required - eligibility.tasks_completed
    if days_left > 0:
        parts.append(_remaining(days_left, "day"))
    if questions_left > 0:
        parts.append(_remaining(questions_left, "question"))
    if tasks_left > 0:
        parts.append(_remaining(tasks_left, "task"))
    return f"Complete {', '.join(parts)} to unlock post-assessment"


__all__ = [
    "Eligibility",
    "MIN_DAYS_REQUIRED",
    "MIN_QUESTIONS_REQUIRED",
    "MIN_TASKS_REQUIRED",
    "check_post_assessment_eligibility",
    "post_assessment_message",
]
