"""Database-backed repositories for the Code Helper API."""

from .accounts import AccountRepository, accounts
from .assessments import AssessmentRepository, assessments
from .chat import ChatRepository, chats
from .tasks import TaskRepository, tasks

__all__ = [
    "AccountRepository",
    "AssessmentRepository",
    "ChatRepository",
    "TaskRepository",
    "accounts",
    "assessments",
    "chats",
    "tasks",
]
