"""Navigation targets and the host hooks the client core drives."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional, Protocol
from urllib.parse import parse_qs, urlencode, urlsplit

logger = logging.getLogger(__name__)

BLOCKED_PATH = "/blocked"
CONTACT_PATH = "/contact"
CHAT_PATH = "/chat"
EXEMPT_PATHS = frozenset({BLOCKED_PATH, CONTACT_PATH})


def is_exempt_path(path: str) -> bool:
    """Pages a blocked user may still see, including anything nested under them."""
    pathname = urlsplit(path).path
    return any(pathname == exempt or pathname.startswith(exempt + "/") for exempt in EXEMPT_PATHS)


@dataclass(frozen=True)
class ChatRoute:
    """Where the chat page should open.

    ``task_id`` together with ``fresh`` is the auto-send marker: it is only set
    on the route produced right after a new session was created for a task.
    """

    session_id: str
    task_id: Optional[str] = None
    fresh: bool = False

    @property
    def wants_auto_send(self) -> bool:
        return bool(self.task_id) and self.fresh

    def without_task(self) -> "ChatRoute":
        return replace(self, task_id=None, fresh=False)

    @property
    def path(self) -> str:
        query = {"sessionId": self.session_id}
        if self.task_id:
            query["taskId"] = self.task_id
        if self.fresh:
            query["fresh"] = "1"
        return f"{CHAT_PATH}?{urlencode(query)}"

    @classmethod
    def from_path(cls, path: str) -> Optional["ChatRoute"]:
        parts = urlsplit(path)
        if parts.path != CHAT_PATH:
            return None
        query = parse_qs(parts.query)
        session_id = (query.get("sessionId") or [None])[0]
        if not session_id:
            return None
        return cls(
            session_id=session_id,
            task_id=(query.get("taskId") or [None])[0],
            fresh=(query.get("fresh") or ["0"])[0] == "1",
        )


class Navigator(Protocol):
    @property
    def current_path(self) -> str: ...

    def push(self, path: str) -> None: ...

    def replace(self, path: str) -> None: ...


class Notifier(Protocol):
    def notify(self, message: str, *, level: str = "error") -> None: ...


class LoggingNotifier:
    """Notifier that only writes to the log; hosts without a toast surface use it."""

    def notify(self, message: str, *, level: str = "error") -> None:
        log = logger.warning if level in {"error", "warning"} else logger.info
        log("Notification (%s): %s", level, message)


__all__ = [
    "BLOCKED_PATH",
    "CHAT_PATH",
    "CONTACT_PATH",
    "ChatRoute",
    "EXEMPT_PATHS",
    "LoggingNotifier",
    "Navigator",
    "Notifier",
    "is_exempt_path",
]
