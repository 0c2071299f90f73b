"""Profile and onboarding-status endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .api_models import OnboardingStatusPayload, OnboardingStatusUpdate, ProfilePayload, ProfileUpdate
from .auth import current_user
from .db.models import UserModel
from .db.session import get_session_dependency
from .errors import ErrorKind, api_error
from .repositories import accounts
from .telemetry import emit_event

router = APIRouter(prefix="/api", tags=["profile"])
logger = logging.getLogger(__name__)


@router.get("/profile", response_model=ProfilePayload)
def get_profile(
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> ProfilePayload:
    profile = accounts.get_profile(session, user.id)
    if profile is None:
        raise api_error(ErrorKind.NOT_FOUND_YET, "Profile is not provisioned yet.")
    return profile


@router.put("/profile", response_model=ProfilePayload)
def update_profile(
    update: ProfileUpdate,
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> ProfilePayload:
    if not update.preferred_languages and not user.preferred_languages and not update.primary_language:
        raise api_error(ErrorKind.VALIDATION, "Select at least one programming language.")
    profile = accounts.update_profile(session, user.id, update)
    logger.info("Profile updated for %s (primary=%s)", user.id, profile.primary_language)
    emit_event(
        "profile_updated",
        user_id=user.id,
        primary_language=profile.primary_language,
        languages=profile.preferred_languages,
    )
    return profile


@router.get("/onboarding/status", response_model=OnboardingStatusPayload)
def get_onboarding_status(
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> OnboardingStatusPayload:
    return OnboardingStatusPayload(completed=accounts.onboarding_completed(session, user.id))


@router.put("/onboarding/status", response_model=OnboardingStatusPayload)
def update_onboarding_status(
    update: OnboardingStatusUpdate,
    user: UserModel = Depends(current_user),
    session: Session = Depends(get_session_dependency),
) -> OnboardingStatusPayload:
    completed = accounts.set_onboarding_completed(session, user.id, update.completed)
    if completed and update.completed:
        emit_event("onboarding_tour_completed", user_id=user.id)
    return OnboardingStatusPayload(completed=completed)


__all__ = ["router"]
