# src/daytrack/tasks/task_models.py

from __future__ import annotations

import hashlib
import random
import string
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Durable task status.

    Allowed transitions:
    - active -> carry_over
    - active | carry_over -> accomplished

    Accomplished rows are history only and never change again.
    """

    ACTIVE = "active"
    CARRY_OVER = "carry_over"
    ACCOMPLISHED = "accomplished"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.ACTIVE
        try:
            return cls(raw)
        except Exception:
            return cls.ACTIVE

    def sources(self) -> tuple[TaskStatus, ...]:
        """Statuses a row may currently have to be moved into this one."""
        if self is TaskStatus.CARRY_OVER:
            return (TaskStatus.ACTIVE,)
        if self is TaskStatus.ACCOMPLISHED:
            return (TaskStatus.ACTIVE, TaskStatus.CARRY_OVER)
        return ()

    def can_transition_to(self, new: TaskStatus) -> bool:
        return self in new.sources()


def parse_day(raw: Any) -> date | None:
    """
    Lenient calendar-day parser.

    Accepts date objects, "YYYY-MM-DD" and full ISO timestamps (date part wins).
    Anything else is treated as missing.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        return None
    s = raw.strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        return None


def format_day(day: date | None) -> str | None:
    return day.isoformat() if day is not None else None


def new_task_id() -> str:
    """Local task id: task_<epoch ms>_<9 random chars>."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"task_{int(time.time() * 1000)}_{suffix}"


def new_suggestion_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=8))
    return f"sg_{suffix}"


def legacy_suggestion_id(task_id: str, index: int, text: str) -> str:
    digest = hashlib.sha1(f"{task_id}|{index}|{text}".encode()).hexdigest()[:8]
    return f"sg_{digest}"


def task_fingerprint(local_id: str, status: TaskStatus, created_date: date | None) -> str:
    """Content key for durable rows promoted from a local task (one row per transition)."""
    raw = f"{local_id}|{status.value}|{format_day(created_date) or ''}"
    return hashlib.sha1(raw.encode()).hexdigest()


@dataclass(slots=True)
class Task:
    """Durable task row."""

    id: str
    title: str
    description: str | None
    status: TaskStatus
    created_date: date | None
    due_date: date | None
    created_at: float
    updated_at: float
    fingerprint: str | None = None


@dataclass(slots=True, frozen=True)
class NewTask:
    """Insert payload for the durable store (id and timestamps are assigned on insert)."""

    title: str
    status: TaskStatus
    created_date: date
    description: str | None = None
    due_date: date | None = None
    fingerprint: str | None = None


@dataclass(slots=True)
class Suggestion:
    id: str
    text: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "text": self.text}


@dataclass(slots=True)
class LocalTask:
    """
    Open task in the local working set.

    There is no status: presence in the cache means "still open".
    created_date may be None when the stored value was unreadable; such a task
    is kept but never matched by the carry-over check.
    """

    id: str
    title: str
    description: str | None
    created_date: date | None
    created_at: str
    due_date: date | None = None
    ai_suggestions: list[Suggestion] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "created_date": format_day(self.created_date),
            "created_at": self.created_at,
            "due_date": format_day(self.due_date),
            "ai_suggestions": [s.to_dict() for s in self.ai_suggestions],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LocalTask:
        """
        Build from a cached dict.

        Older entries may lack due_date / ai_suggestions, and may store
        suggestions as plain strings; those get derived, stable ids.
        """
        task_id = str(data.get("id") or "").strip()
        if not task_id:
            raise ValueError("local task without id")

        suggestions: list[Suggestion] = []
        raw_suggestions = data.get("ai_suggestions") or []
        if isinstance(raw_suggestions, list):
            for i, item in enumerate(raw_suggestions):
                if isinstance(item, str):
                    suggestions.append(Suggestion(legacy_suggestion_id(task_id, i, item), item))
                elif isinstance(item, dict) and isinstance(item.get("text"), str):
                    sid = str(item.get("id") or legacy_suggestion_id(task_id, i, item["text"]))
                    suggestions.append(Suggestion(sid, item["text"]))

        description = data.get("description")
        return cls(
            id=task_id,
            title=str(data.get("title") or ""),
            description=str(description) if description else None,
            created_date=parse_day(data.get("created_date")),
            created_at=str(data.get("created_at") or ""),
            due_date=parse_day(data.get("due_date")),
            ai_suggestions=suggestions,
        )


@dataclass(slots=True, frozen=True)
class AppState:
    last_viewed_date: date


def local_to_new_task(
    task: LocalTask,
    status: TaskStatus,
    *,
    created_date: date | None = None,
) -> NewTask:
    """
    Map a LocalTask to a durable insert payload.

    created_date defaults to the task's own date; the fingerprint ties the row
    to (local id, status, date) so a retried promotion does not duplicate it.
    """
    day = created_date if created_date is not None else task.created_date
    if day is None:
        raise ValueError(f"local task {task.id} has no created_date")
    return NewTask(
        title=task.title,
        description=task.description,
        status=status,
        created_date=day,
        due_date=task.due_date,
        fingerprint=task_fingerprint(task.id, status, day),
    )
