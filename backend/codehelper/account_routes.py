"""Account provisioning and block status endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .api_models import AccountPayload, BlockedStatusPayload, BlockToggleRequest
from .auth import admin_user, caller_id, identified_user
from .config import Settings, get_settings
from .db.models import UserModel
from .db.session import get_session_dependency
from .errors import ErrorKind, api_error
from .repositories import accounts
from .telemetry import emit_event

router = APIRouter(prefix="/api", tags=["account"])
logger = logging.getLogger(__name__)


@router.post("/account/register", response_model=AccountPayload)
def register_account(
    user_id: str = Depends(caller_id),
    session: Session = Depends(get_session_dependency),
    settings: Settings = Depends(get_settings),
) -> AccountPayload:
    role = "admin" if user_id in settings.admin_ids else "user"
    existing = accounts.get(session, user_id)
    account = accounts.register(session, user_id, role=role)
    if existing is None:
        logger.info("Registered user %s (role=%s)", user_id, role)
        emit_event("account_registered", user_id=user_id, role=role)
    return account


@router.get("/account/blocked", response_model=BlockedStatusPayload)
def get_blocked_status(user: UserModel = Depends(identified_user)) -> BlockedStatusPayload:
    return BlockedStatusPayload(is_blocked=user.is_blocked)


@router.post("/admin/users/{user_id}/block", response_model=AccountPayload)
def toggle_user_block(
    user_id: str,
    request: BlockToggleRequest,
    admin: UserModel = Depends(admin_user),
    session: Session = Depends(get_session_dependency),
) -> AccountPayload:
    if user_id == admin.id and request.blocked:
        raise api_error(ErrorKind.VALIDATION, "Admins cannot block themselves.")
    account = accounts.set_blocked(session, user_id, request.blocked)
    if account is None:
        raise api_error(ErrorKind.NOT_FOUND, f"User {user_id} not found.")
    logger.info("Admin %s set blocked=%s for %s", admin.id, request.blocked, user_id)
    emit_event("account_block_toggled", admin_id=admin.id, user_id=user_id, blocked=request.blocked)
    return account


__all__ = ["router"]
