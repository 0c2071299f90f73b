"""Assessment results and the question bank."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..api_models import AssessmentPayload, AssessmentQuestionPayload
from ..db.models import AssessmentModel, AssessmentQuestionModel

GENERAL_LANGUAGE = "general"


class AssessmentRepository:
    def list_for_user(self, session: Session, user_id: str) -> List[AssessmentPayload]:
        stmt = (
            select(AssessmentModel)
            .where(AssessmentModel.user_id == user_id)
            .order_by(AssessmentModel.completed_at)
        )
        return [self._to_payload(model) for model in session.execute(stmt).scalars()]

    def get_by_type(self, session: Session, user_id: str, assessment_type: str) -> Optional[AssessmentModel]:
        stmt = select(AssessmentModel).where(
            AssessmentModel.user_id == user_id,
            AssessmentModel.type == assessment_type,
        )
        return session.execute(stmt).scalar_one_or_none()

    def add(
        self,
        session: Session,
        user_id: str,
        *,
        assessment_type: str,
        language: Optional[str],
        score: int,
        total_questions: int,
        confidence: int,
        answers: Sequence[dict],
    ) -> AssessmentPayload:
        model = AssessmentModel(
            user_id=user_id,
            type=assessment_type,
            language=language,
            score=score,
            total_questions=total_questions,
            confidence=confidence,
            answers=list(answers),
        )
        session.add(model)
        session.flush()
        return self._to_payload(model)

    def questions_by_id(self, session: Session, question_ids: Iterable[str]) -> dict[str, AssessmentQuestionModel]:
        ids = list(question_ids)
        if not ids:
            return {}
        stmt = select(AssessmentQuestionModel).where(AssessmentQuestionModel.id.in_(ids))
        return {model.id: model for model in session.execute(stmt).scalars()}

    def select_questions(
        self,
        session: Session,
        *,
        language: Optional[str],
        difficulty: str,
        exclude: Iterable[str] = (),
        limit: int = 15,
    ) -> List[AssessmentQuestionPayload]:
        """Language-specific questions first, topped up from the general pool.

        Excluded ids are only reused when the pool would otherwise come up short.
        """
        excluded = set(exclude)
        languages = [language] if language and language != GENERAL_LANGUAGE else []
        languages.append(GENERAL_LANGUAGE)

        preferred: List[AssessmentQuestionModel] = []
        reused: List[AssessmentQuestionModel] = []
        for lang in languages:
            stmt = (
                select(AssessmentQuestionModel)
                .where(
                    AssessmentQuestionModel.language == lang,
                    AssessmentQuestionModel.difficulty == difficulty,
                )
                .order_by(AssessmentQuestionModel.id)
            )
            for model in session.execute(stmt).scalars():
                (reused if model.id in excluded else preferred).append(model)

        chosen = (preferred + reused)[:limit]
        return [
            AssessmentQuestionPayload(
                id=model.id,
                question=model.question,
                type=model.type,  # type: ignore[arg-type]
                options=list(model.options or []),
                language=model.language,
                difficulty=model.difficulty,
            )
            for model in chosen
        ]

    @staticmethod
    def _to_payload(model: AssessmentModel) -> AssessmentPayload:
        return AssessmentPayload(
            id=model.id,
            type=model.type,  # type: ignore[arg-type]
            language=model.language,
            score=model.score,
            total_questions=model.total_questions,
            confidence=model.confidence,
            completed_at=model.completed_at,
        )


assessments = AssessmentRepository()

__all__ = ["AssessmentRepository", "GENERAL_LANGUAGE", "assessments"]
