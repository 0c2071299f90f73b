from __future__ import annotations

from codehelper.api_models import TaskPayload
from codehelper.client.prompts import format_solution_message, format_task_prompt, task_session_title


def _task(**overrides) -> TaskPayload:
    fields = {
        "id": "python-reverse-string",
        "title": "Reverse a String",
        "description": "Return the input reversed.",
        "language": "python",
        "difficulty": "beginner",
        "category": "strings",
        "hints": ["Try slicing", "Mind empty input"],
        "starter_code": "def reverse(s):\n    pass",
    }
    fields.update(overrides)
    return TaskPayload(**fields)


def test_task_prompt_lists_details_hints_and_starter_code() -> None:
    prompt = format_task_prompt(_task())

    assert prompt.startswith("**Reverse a String**\n\nReturn the input reversed.\n\n")
    assert "**Language:** python\n**Difficulty:** beginner\n**Category:** strings\n" in prompt
    assert "**Hints:**\n1. Try slicing\n2. Mind empty input\n" in prompt
    assert prompt.endswith("**Starter Code:**\n```python\ndef reverse(s):\n    pass\n```")


def test_task_prompt_omits_empty_sections() -> None:
    prompt = format_task_prompt(_task(hints=[], starter_code=None))
    assert "Hints" not in prompt
    assert "Starter Code" not in prompt


def test_session_title_and_solution_message() -> None:
    task = _task()
    assert task_session_title(task) == "Task: Reverse a String"
    message = format_solution_message(task, "print('hi')")
    assert "```python\nprint('hi')\n```" in message
    assert message.endswith("Please review my code and provide feedback.")
