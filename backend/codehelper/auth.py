"""Request identity: the caller is named by the ``X-User-Id`` header."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .db.models import UserModel
from .db.session import get_session_dependency
from .errors import ErrorKind, api_error
from .repositories import accounts

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


def caller_id(x_user_id: Optional[str] = Header(default=None, alias=USER_HEADER)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise api_error(ErrorKind.UNAUTHENTICATED, "Missing user identity.")
    return x_user_id.strip()


def identified_user(
    user_id: str = Depends(caller_id),
    session: Session = Depends(get_session_dependency),
) -> UserModel:
    """Resolve the caller without applying the block gate."""
    model = accounts.get_model(session, user_id)
    if model is None:
        # Identity exists upstream but the account row has not been provisioned yet.
        raise api_error(ErrorKind.NOT_FOUND_YET, "User account is not provisioned yet.")
    return model


def current_user(user: UserModel = Depends(identified_user)) -> UserModel:
    if user.is_blocked:
        logger.info("Rejected request from blocked user %s", user.id)
        raise api_error(ErrorKind.ACCOUNT_BLOCKED, "User account is blocked")
    return user


def admin_user(
    user: UserModel = Depends(current_user),
    settings: Settings = Depends(get_settings),
) -> UserModel:
    if user.role != "admin" and user.id not in settings.admin_ids:
        raise api_error(ErrorKind.FORBIDDEN, "Admin access required.")
    return user


__all__ = ["USER_HEADER", "admin_user", "caller_id", "current_user", "identified_user"]
