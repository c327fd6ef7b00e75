# src/daytrack/core/prompts.py

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Final

from ..tasks.task_models import LocalTask

SUGGESTION_SYSTEM_PROMPT: Final[str] = """
You are a task breakdown assistant for a personal daily task list.

Style:
- Be concise and actionable.
- Use short bullet points.
- Do not repeat the task back to the user.
""".strip()

CHAT_SYSTEM_PROMPT: Final[str] = """
You are a friendly daily planning assistant for a personal task list.

- Match the user's language.
- Keep replies short unless the user asks for depth.
- If the user's open tasks are listed below, use them for context but do not invent new ones.
""".strip()


def build_suggestion_prompt(task: LocalTask) -> str:
    desc = f" - {task.description}" if task.description else ""
    due = f" It is due on {task.due_date.isoformat()}." if task.due_date else ""
    return (
        f'The user has a task: "{task.title}"{desc}.{due}\n\n'
        "Please provide helpful suggestions for this task. For example:\n"
        "- Break it down into smaller sub-steps if it's complex\n"
        "- Suggest how to approach it\n"
        "- Provide relevant tips or resources\n\n"
        "Be concise and actionable."
    )


def build_chat_system_prompt(open_tasks: Sequence[LocalTask], today: date) -> str:
    if not open_tasks:
        return CHAT_SYSTEM_PROMPT
    lines = [CHAT_SYSTEM_PROMPT, "", f"Today is {today.isoformat()}. Open tasks:"]
    for t in open_tasks:
        due = f" (due {t.due_date.isoformat()})" if t.due_date else ""
        lines.append(f"- {t.title}{due}")
    return "\n".join(lines)
