"""Users, their profile fields and onboarding status."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..api_models import AccountPayload, ProfilePayload, ProfileUpdate
from ..db.models import UserModel


def _normalize_user_id(user_id: str) -> str:
    normalized = user_id.strip()
    if not normalized:
        raise ValueError("User id cannot be empty.")
    return normalized


class AccountRepository:
    """Reads and writes the per-user row that backs account, profile and onboarding state."""

    def get_model(self, session: Session, user_id: str) -> Optional[UserModel]:
        stmt = select(UserModel).where(UserModel.id == _normalize_user_id(user_id))
        return session.execute(stmt).scalar_one_or_none()

    def get(self, session: Session, user_id: str) -> Optional[AccountPayload]:
        model = self.get_model(session, user_id)
        return self._account(model) if model else None

    def register(self, session: Session, user_id: str, *, role: str = "user") -> AccountPayload:
        model = self.get_model(session, user_id)
        if model is None:
            model = UserModel(id=_normalize_user_id(user_id), role=role)
            session.add(model)
            session.flush()
        elif role == "admin" and model.role != "admin":
            model.role = "admin"
        return self._account(model)

    def set_blocked(self, session: Session, user_id: str, blocked: bool) -> Optional[AccountPayload]:
        model = self.get_model(session, user_id)
        if model is None:
            return None
        model.is_blocked = blocked
        return self._account(model)

    def get_profile(self, session: Session, user_id: str) -> Optional[ProfilePayload]:
        model = self.get_model(session, user_id)
        return self._profile(model) if model else None

    def update_profile(self, session: Session, user_id: str, update: ProfileUpdate) -> ProfilePayload:
        model = self._require_model(session, user_id)
        fields = update.model_dump(exclude_unset=True)
        for key in ("primary_language", "experience", "confidence"):
            if key in fields:
                setattr(model, key, fields[key])
        if fields.get("preferred_languages") is not None:
            model.preferred_languages = list(fields["preferred_languages"])
        if fields.get("focus_areas") is not None:
            model.focus_areas = list(fields["focus_areas"])
        if model.primary_language and model.primary_language not in (model.preferred_languages or []):
            model.preferred_languages = [model.primary_language, *(model.preferred_languages or [])]
        model.profile_completed = True
        return self._profile(model)

    def set_assessed_level(self, session: Session, user_id: str, level: str) -> None:
        model = self._require_model(session, user_id)
        model.assessed_level = level

    def onboarding_completed(self, session: Session, user_id: str) -> bool:
        return bool(self._require_model(session, user_id).onboarding_completed)

    def set_onboarding_completed(self, session: Session, user_id: str, completed: bool) -> bool:
        model = self._require_model(session, user_id)
        # Monotonic: once completed it never reverts.
        model.onboarding_completed = model.onboarding_completed or completed
        return model.onboarding_completed

    def _require_model(self, session: Session, user_id: str) -> UserModel:
        model = self.get_model(session, user_id)
        if model is None:
            raise LookupError(f"User {user_id} is not registered.")
        return model

    @staticmethod
    def _account(model: UserModel) -> AccountPayload:
        return AccountPayload(
            user_id=model.id,
            role="admin" if model.role == "admin" else "user",
            is_blocked=model.is_blocked,
            created_at=model.created_at,
        )

    @staticmethod
    def _profile(model: UserModel) -> ProfilePayload:
        return ProfilePayload(
            user_id=model.id,
            completed=model.profile_completed,
            primary_language=model.primary_language,
            preferred_languages=list(model.preferred_languages or []),
            experience=model.experience,
            focus_areas=list(model.focus_areas or []),
            confidence=model.confidence,
        )


accounts = AccountRepository()

__all__ = ["AccountRepository", "accounts"]
