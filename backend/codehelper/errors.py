"""Structured error kinds shared by the API service and the client core."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Type

from fastapi import HTTPException, status


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    ACCOUNT_BLOCKED = "account_blocked"
    NOT_FOUND = "not_found"
    NOT_FOUND_YET = "not_found_yet"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"


STATUS_FOR_KIND: Dict[ErrorKind, int] = {
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.ACCOUNT_BLOCKED: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.NOT_FOUND_YET: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def api_error(kind: ErrorKind, message: str) -> HTTPException:
    """Build the HTTPException the routers raise; detail carries the kind."""
    return HTTPException(
        status_code=STATUS_FOR_KIND[kind],
        detail={"kind": kind.value, "message": message},
    )


class ApiError(Exception):
    """Base class for failures surfaced by remote calls."""

    kind: ErrorKind = ErrorKind.UNAVAILABLE

    def __init__(self, message: str = "", *, kind: Optional[ErrorKind] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message or self.__class__.__name__)
        if kind is not None:
            self.kind = kind
        self.message = message
        self.status_code = status_code


class AuthError(ApiError):
    kind = ErrorKind.UNAUTHENTICATED


class BlockedError(ApiError):
    kind = ErrorKind.ACCOUNT_BLOCKED


class TransientError(ApiError):
    """Retriable for idempotent reads (eventual-consistency windows, outages)."""

    kind = ErrorKind.UNAVAILABLE


class ValidationError(ApiError):
    kind = ErrorKind.VALIDATION


class NotFoundError(ApiError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(ApiError):
    kind = ErrorKind.CONFLICT


class StaleStateError(Exception):
    """An in-progress task points at a session with no messages."""

    def __init__(self, task_id: str, session_id: str) -> None:
        super().__init__(f"Task {task_id} points at empty session {session_id}")
        self.task_id = task_id
        self.session_id = session_id


_CLASS_FOR_KIND: Dict[ErrorKind, Type[ApiError]] = {
    ErrorKind.UNAUTHENTICATED: AuthError,
    ErrorKind.FORBIDDEN: AuthError,
    ErrorKind.ACCOUNT_BLOCKED: BlockedError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.NOT_FOUND_YET: TransientError,
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.RATE_LIMITED: TransientError,
    ErrorKind.UNAVAILABLE: TransientError,
}

_KIND_FOR_STATUS: Dict[int, ErrorKind] = {
    401: ErrorKind.UNAUTHENTICATED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.RATE_LIMITED,
}


def error_from_response(status_code: int, body: Any) -> ApiError:
    """Translate an error response into the matching ApiError subclass."""
    kind: Optional[ErrorKind] = None
    message = ""
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        raw_kind = detail.get("kind")
        message = str(detail.get("message") or "")
        try:
            kind = ErrorKind(raw_kind)
        except ValueError:
            kind = None
    elif isinstance(detail, (str, list)):
        message = str(detail)
    if kind is None:
        kind = _KIND_FOR_STATUS.get(status_code, ErrorKind.UNAVAILABLE)
    error_cls = _CLASS_FOR_KIND[kind]
    return error_cls(message or f"HTTP {status_code}", kind=kind, status_code=status_code)


__all__ = [
    "ApiError",
    "AuthError",
    "BlockedError",
    "ConflictError",
    "ErrorKind",
    "NotFoundError",
    "STATUS_FOR_KIND",
    "StaleStateError",
    "TransientError",
    "ValidationError",
    "api_error",
    "error_from_response",
]
