# src/daytrack/tasks/task_api.py

"""
Convenience helpers used by commands and connectors.

They take the wired TrackerState and pick the working set according to
state.authority: the local cache (default) or the durable store.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from ..core.prompts import SUGGESTION_SYSTEM_PROMPT, build_suggestion_prompt
from ..core.state import TrackerState
from ..llm.client import collect_text
from .carry_over import Authority, CarryOverChecker, CarryOverResult
from .completion import CompletionResult, mark_done
from .task_models import LocalTask, NewTask, Suggestion, Task, TaskStatus, new_task_id

logger = logging.getLogger(__name__)

OPEN_STATUSES = (TaskStatus.ACTIVE, TaskStatus.CARRY_OVER)


def _is_durable(state: TrackerState) -> bool:
    return Authority.parse(state.authority) is Authority.DURABLE


def carry_over_checker(state: TrackerState) -> CarryOverChecker:
    return CarryOverChecker(
        state.cache,
        state.store,
        authority=Authority.parse(state.authority),
        today_fn=state.today_fn,
    )


def run_carry_over(state: TrackerState) -> CarryOverResult:
    return carry_over_checker(state).check_and_carry_over()


def add_task(
    state: TrackerState,
    title: str,
    description: str | None = None,
    due_date: date | None = None,
) -> LocalTask | Task:
    """
    Create an open task dated today.

    Local mode keeps it in the cache only (no durable row until it is carried
    over or completed); durable mode inserts an active row.
    """
    title = (title or "").strip()
    if not title:
        raise ValueError("title is required")
    description = (description or "").strip() or None
    today = state.today()

    if _is_durable(state):
        rows = state.store.insert_tasks(
            [
                NewTask(
                    title=title,
                    description=description,
                    status=TaskStatus.ACTIVE,
                    created_date=today,
                    due_date=due_date,
                )
            ]
        )
        return rows[0]

    task = LocalTask(
        id=new_task_id(),
        title=title,
        description=description,
        created_date=today,
        created_at="",
        due_date=due_date,
    )
    if not state.cache.save_task(task):
        raise RuntimeError("Could not save the task locally.")
    logger.debug("Task added id=%s created_date=%s due=%s", task.id, today, due_date)
    return task


def edit_task(
    state: TrackerState,
    task_id: str,
    *,
    title: str | None = None,
    description: str | None = None,
    due_date: date | None = None,
) -> bool:
    if title is not None and not title.strip():
        raise ValueError("title cannot be empty")

    if _is_durable(state):
        return state.store.update_task(
            task_id, title=title, description=description, due_date=due_date
        ) is not None

    fields: dict[str, Any] = {}
    if title is not None:
        fields["title"] = title.strip()
    if description is not None:
        fields["description"] = description.strip() or None
    if due_date is not None:
        fields["due_date"] = due_date
    if not fields:
        return False
    return state.cache.update_task(task_id, **fields)


def delete_task(state: TrackerState, task_id: str) -> bool:
    """Drop an open task. In local mode no durable row is touched."""
    if _is_durable(state):
        return state.store.delete_task(task_id)
    if state.cache.get_task(task_id) is None:
        return False
    return state.cache.delete_task(task_id)


def complete_tasks(state: TrackerState, task_ids: list[str]) -> CompletionResult:
    if not _is_durable(state):
        return mark_done(state.cache, state.store, task_ids, today_fn=state.today_fn)

    wanted = list(dict.fromkeys(task_ids))
    found = state.store.select_tasks(task_ids=wanted, statuses=OPEN_STATUSES) if wanted else []
    found_ids = tuple(t.id for t in found)
    if found_ids:
        state.store.update_tasks(task_ids=found_ids, status=TaskStatus.ACCOMPLISHED)
    return CompletionResult(
        done_ids=found_ids,
        missing_ids=tuple(i for i in wanted if i not in found_ids),
    )


def list_open_tasks(state: TrackerState) -> list[LocalTask] | list[Task]:
    """Working set, oldest first. This is the order /list numbers refer to."""
    if _is_durable(state):
        rows = state.store.select_tasks(statuses=OPEN_STATUSES)
        return sorted(rows, key=lambda t: (t.created_date or date.min, t.created_at))
    tasks = state.cache.get_active_tasks()
    return sorted(tasks, key=lambda t: (t.created_date or date.min, t.created_at))


def list_today(state: TrackerState) -> list[LocalTask] | list[Task]:
    today = state.today()
    return [t for t in list_open_tasks(state) if t.created_date == today]


def list_upcoming(state: TrackerState) -> list[LocalTask] | list[Task]:
    """Open tasks due after today, soonest first."""
    today = state.today()
    upcoming = [t for t in list_open_tasks(state) if t.due_date is not None and t.due_date > today]
    return sorted(upcoming, key=lambda t: t.due_date or date.max)


def week_start(anchor: date) -> date:
    """Sunday on or before `anchor`."""
    return anchor - timedelta(days=(anchor.weekday() + 1) % 7)


def week_view(tasks: list[Any], anchor: date) -> tuple[dict[date, list[Any]], list[Any]]:
    """
    Group tasks by due date over the Sunday-start week containing `anchor`.

    Returns (days -> tasks due that day, tasks without a due date).
    """
    start = week_start(anchor)
    days: dict[date, list[Any]] = {start + timedelta(days=i): [] for i in range(7)}
    undated: list[Any] = []
    for t in tasks:
        if t.due_date is None:
            undated.append(t)
        elif t.due_date in days:
            days[t.due_date].append(t)
    return days, undated


def history(state: TrackerState, status: TaskStatus, limit: int = 50) -> list[Task]:
    """Durable history rows: accomplished (archive) or carry_over (overdue)."""
    return state.store.select_tasks(statuses=[status], limit=limit)


def resolve_task_ref(state: TrackerState, ref: str) -> LocalTask | Task | None:
    """Accept a 1-based number from /list or a task id."""
    ref = (ref or "").strip()
    if not ref:
        return None
    tasks = list_open_tasks(state)
    if ref.isdigit():
        n = int(ref)
        return tasks[n - 1] if 1 <= n <= len(tasks) else None
    for t in tasks:
        if t.id == ref:
            return t
    return None


def request_suggestion(state: TrackerState, task_id: str, *, attach: bool = True) -> str:
    """
    Ask the LLM for advice on one open task.

    With attach=True the reply is stored on the task (local mode only;
    identical text is not stored twice). Raises RuntimeError on LLM failure.
    """
    task = state.cache.get_task(task_id)
    if task is None:
        raise LookupError(f"Unknown task: {task_id}")

    prompt = build_suggestion_prompt(task)
    text = collect_text(
        state.llm.stream_chat([{"role": "user", "content": prompt}], SUGGESTION_SYSTEM_PROMPT)
    )
    if not text:
        raise RuntimeError("Model returned no content.")

    if attach:
        stored: Suggestion | None = state.cache.add_suggestion(task_id, text)
        if stored is None:
            logger.warning("Suggestion for %s could not be stored.", task_id)
    return text
