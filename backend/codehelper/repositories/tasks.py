"""Programming tasks and per-user progress rows."""

from __future__ import annotations

from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..api_models import TaskPayload, TaskProgressPayload
from ..db.models import TaskModel, TaskProgressModel
from ..progress import ProgressState, plan_session_removed


class TaskRepository:
    def list_tasks(
        self,
        session: Session,
        user_id: str,
        *,
        languages: Iterable[str] = (),
        difficulty: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[TaskPayload]:
        stmt = select(TaskModel).where(TaskModel.is_active.is_(True))
        wanted = [language.lower() for language in languages if language]
        if wanted:
            stmt = stmt.where(TaskModel.language.in_(wanted))
        if difficulty:
            stmt = stmt.where(TaskModel.difficulty == difficulty)
        if category:
            stmt = stmt.where(TaskModel.category == category)
        stmt = stmt.order_by(TaskModel.language, TaskModel.created_at, TaskModel.id)
        models = list(session.execute(stmt).scalars())

        progress_by_task = {
            row.task_id: row
            for row in session.execute(
                select(TaskProgressModel).where(TaskProgressModel.user_id == user_id)
            ).scalars()
        }
        return [self._to_payload(model, progress_by_task.get(model.id)) for model in models]

    def get_task(self, session: Session, user_id: str, task_id: str) -> Optional[TaskPayload]:
        model = self.get_task_model(session, task_id)
        if model is None:
            return None
        return self._to_payload(model, self.get_progress_model(session, user_id, task_id))

    def get_task_model(self, session: Session, task_id: str) -> Optional[TaskModel]:
        stmt = select(TaskModel).where(TaskModel.id == task_id, TaskModel.is_active.is_(True))
        return session.execute(stmt).scalar_one_or_none()

    def get_progress_model(self, session: Session, user_id: str, task_id: str) -> Optional[TaskProgressModel]:
        stmt = select(TaskProgressModel).where(
            TaskProgressModel.user_id == user_id,
            TaskProgressModel.task_id == task_id,
        )
        return session.execute(stmt).scalar_one_or_none()

    def progress_state(self, session: Session, user_id: str, task_id: str) -> ProgressState:
        model = self.get_progress_model(session, user_id, task_id)
        if model is None:
            return ProgressState()
        return self._state(model)

    def save_progress(self, session: Session, user_id: str, task_id: str, state: ProgressState) -> TaskProgressPayload:
        """Upsert keyed by (user, task); progress rows are created lazily."""
        model = self.get_progress_model(session, user_id, task_id)
        if model is None:
            model = TaskProgressModel(user_id=user_id, task_id=task_id)
            session.add(model)
        model.status = state.status
        model.chat_session_id = state.chat_session_id
        model.attempts = state.attempts
        model.completed_at = state.completed_at
        session.flush()
        return self._progress_payload(model)

    def release_session(self, session: Session, user_id: str, chat_session_id: str) -> List[str]:
        """Unlink progress rows from a deleted chat session; returns the ids of attempts that were reset."""
        stmt = select(TaskProgressModel).where(
            TaskProgressModel.user_id == user_id,
            TaskProgressModel.chat_session_id == chat_session_id,
        )
        reset: List[str] = []
        for model in list(session.execute(stmt).scalars()):
            current = self._state(model)
            released = plan_session_removed(current, chat_session_id)
            if released is None:
                continue
            if current.status != "completed":
                reset.append(model.task_id)
            self.save_progress(session, user_id, model.task_id, released)
        return reset

    def count_completed(self, session: Session, user_id: str) -> int:
        stmt = select(func.count()).select_from(TaskProgressModel).where(
            TaskProgressModel.user_id == user_id,
            TaskProgressModel.status == "completed",
        )
        return int(session.execute(stmt).scalar_one())

    @staticmethod
    def _state(model: TaskProgressModel) -> ProgressState:
        return ProgressState(
            status=model.status,  # type: ignore[arg-type]
            chat_session_id=model.chat_session_id,
            attempts=model.attempts,
            completed_at=model.completed_at,
        )

    @staticmethod
    def _progress_payload(model: TaskProgressModel) -> TaskProgressPayload:
        return TaskProgressPayload(
            task_id=model.task_id,
            status=model.status,  # type: ignore[arg-type]
            chat_session_id=model.chat_session_id,
            attempts=model.attempts,
            completed_at=model.completed_at,
        )

    def _to_payload(self, model: TaskModel, progress: Optional[TaskProgressModel]) -> TaskPayload:
        return TaskPayload(
            id=model.id,
            title=model.title,
            description=model.description,
            language=model.language,
            difficulty=model.difficulty,
            category=model.category,
            hints=list(model.hints or []),
            starter_code=model.starter_code,
            progress=self._progress_payload(progress) if progress else None,
        )


tasks = TaskRepository()

__all__ = ["TaskRepository", "tasks"]
