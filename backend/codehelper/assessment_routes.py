"""Pre/post assessment endpoints: question delivery, scoring and eligibility."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .api_models import (
    AssessmentPayload,
    AssessmentQuestionPayload,
    AssessmentSubmission,
    AssessmentType,
    EligibilityPayload,
)
from .auth import current_user
from .db.models import AssessmentQuestionModel, UserModel
from .db.session import get_session_dependency
from .eligibility import check_post_assessment_eligibility, post_assessment_message
from .errors import ErrorKind, api_error
from .repositories import accounts, assessments, chats, tasks
from .telemetry import emit_event

router = APIRouter(prefix="/api/assessments", tags=["assessments"])
logger = logging.getLogger(__name__)

QUESTIONS_PER_ASSESSMENT = 15
LEVELS = ("beginner", "intermediate", "advanced")


def level_for_score(score: int, total: int) -> str:
    percentage = score / total * 100 if total else 0
    if percentage >= 80:
        return "advanced"
    if percentage >= 60:
        return "intermediate"
    return "beginner"


def _baseline_difficulty(user: UserModel) -> str:
    level = user.assessed_level or user.experience or "beginner"
    if level == "expert":
        return "advanced"
    if level == "advanced":
        return "intermediate"
    return "beginner"


def _post_difficulty(user: UserModel, pre_score: int, pre_total: int) -> str:
    level = user.assessed_level or "beginner"
    current = level if level in LEVELS else ("advanced" if level == "expert" else "beginner")
    if pre_total and pre_score / pre_total * 100 >= 80:
        return LEVELS[min(LEVELS.index(current) + 1, len(LEVELS) - 1)]
    return current


def _is_correct(question: AssessmentQuestionModel, answer: str) -> bool:
    if question.type == "multiple_choice":
        return answer.strip() == question.correct_answer.strip()
    return answer.strip().lower() == question.correct_answer.strip().lower()


@router.get("", response_model=List[AssessmentPayload])
def list_assessments(
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> List[AssessmentPayload]:
    return assessments.list_for_user(session, user.id)


@router.get("/questions", response_model=List[AssessmentQuestionPayload])
def get_assessment_questions(
    type: AssessmentType = Query(...),  # noqa: A002
    language: Optional[str] = Query(default=None),
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> List[AssessmentQuestionPayload]:
    excluded: List[str] = []
    difficulty = _baseline_difficulty(user)
    if type == "post":
        pre = assessments.get_by_type(session, user.id, "pre")
        if pre is not None:
            excluded = [
                str(item.get("question_id"))
                for item in (pre.answers or [])
                if isinstance(item, dict) and item.get("question_id")
            ]
            difficulty = _post_difficulty(user, pre.score, pre.total_questions)
    questions = assessments.select_questions(
        session,
        language=language.lower() if language else None,
        difficulty=difficulty,
        exclude=excluded,
        limit=QUESTIONS_PER_ASSESSMENT,
    )
    logger.debug(
        "Selected %d %s-assessment questions for %s (language=%s difficulty=%s)",
        len(questions),
        type,
        user.id,
        language,
        difficulty,
    )
    return questions


@router.post("", response_model=AssessmentPayload)
def submit_assessment(
    submission: AssessmentSubmission,
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> AssessmentPayload:
    if assessments.get_by_type(session, user.id, submission.type) is not None:
        raise api_error(ErrorKind.CONFLICT, f"A {submission.type}-assessment was already submitted.")

    questions = assessments.questions_by_id(session, (item.question_id for item in submission.answers))
    missing = sorted({item.question_id for item in submission.answers} - set(questions))
    if missing:
        raise api_error(ErrorKind.VALIDATION, f"Unknown assessment questions: {', '.join(missing)}")

    checked = [
        {
            "question_id": item.question_id,
            "answer": item.answer,
            "is_correct": _is_correct(questions[item.question_id], item.answer),
        }
        for item in submission.answers
    ]
    score = sum(1 for item in checked if item["is_correct"])
    total = len(checked)
    result = assessments.add(
        session,
        user.id,
        assessment_type=submission.type,
        language=submission.language.lower() if submission.language else None,
        score=score,
        total_questions=total,
        confidence=submission.confidence,
        answers=checked,
    )
    if submission.type == "pre":
        accounts.set_assessed_level(session, user.id, level_for_score(score, total))
    logger.info("Stored %s-assessment for %s: %d/%d", submission.type, user.id, score, total)
    emit_event(
        "assessment_submitted",
        user_id=user.id,
        assessment_type=submission.type,
        score=score,
        total_questions=total,
    )
    return result


@router.get("/eligibility", response_model=EligibilityPayload)
def get_post_assessment_eligibility(
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> EligibilityPayload:
    eligibility = check_post_assessment_eligibility(
        user.created_at,
        chats.count_user_messages(session, user.id),
        tasks.count_completed(session, user.id),
    )
    return EligibilityPayload(
        is_eligible=eligibility.is_eligible,
        days_since_registration=eligibility.days_since_registration,
        questions_asked=eligibility.questions_asked,
        tasks_completed=eligibility.tasks_completed,
        min_days_required=eligibility.min_days_required,
        min_questions_required=eligibility.min_questions_required,
        min_tasks_required=eligibility.min_tasks_required,
        progress_percentage=eligibility.progress_percentage,
        already_completed=assessments.get_by_type(session, user.id, "post") is not None,
        message=post_assessment_message(eligibility),
    )


__all__ = ["level_for_score", "router"]
