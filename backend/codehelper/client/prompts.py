"""Chat message bodies generated for tasks."""

from __future__ import annotations

from ..api_models import TaskPayload

TASK_SESSION_TITLE_PREFIX = "Task: "


def task_session_title(task: TaskPayload) -> str:
    return f"{TASK_SESSION_TITLE_PREFIX}{task.title}"


def format_task_prompt(task: TaskPayload) -> str:
    """The opening message sent into a fresh task session."""
    text = (
        f"**{task.title}**\n\n{task.description}\n\n"
        f"**Language:** {task.language}\n"
        f"**Difficulty:** {task.difficulty}\n"
        f"**Category:** {task.category}\n\n"
    )
    if task.hints:
        numbered = "\n".join(f"{index}. {hint}" for index, hint in enumerate(task.hints, start=1))
        text += f"**Hints:**\n{numbered}\n\n"
    if task.starter_code:
        text += f"**Starter Code:**\n```{task.language}\n{task.starter_code}\n```"
    return text


def format_solution_message(task: TaskPayload, code: str) -> str:
    return (
        "Here's my solution for the task:\n\n"
        f"```{task.language}\n{code}\n```\n\n"
        "Please review my code and provide feedback."
    )


__all__ = ["TASK_SESSION_TITLE_PREFIX", "format_solution_message", "format_task_prompt", "task_session_title"]
