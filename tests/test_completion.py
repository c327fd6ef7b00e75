# tests/test_completion.py

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from daytrack.tasks.completion import mark_done
from daytrack.tasks.task_models import LocalTask, TaskStatus
from daytrack.tasks.task_store import TaskStoreError

from .fakes import FailingInsertStore


def _local(task_id: str, day: date, due: date | None = None) -> LocalTask:
    return LocalTask(
        id=task_id,
        title=f"Task {task_id}",
        description=None,
        created_date=day,
        created_at="2024-01-01T08:00:00.000+00:00",
        due_date=due,
    )


def test_mark_done_skips_missing_ids(cache, store) -> None:
    cache.save_task(_local("a", date(2024, 1, 1), due=date(2024, 1, 5)))
    cache.save_task(_local("b", date(2024, 1, 2)))
    cache.save_task(_local("keep", date(2024, 1, 2)))

    result = mark_done(cache, store, ["a", "b", "gone"])

    assert set(result.done_ids) == {"a", "b"}
    assert result.missing_ids == ("gone",)

    rows = store.select_tasks(statuses=[TaskStatus.ACCOMPLISHED])
    assert len(rows) == 2
    by_title = {r.title: r for r in rows}
    assert by_title["Task a"].created_date == date(2024, 1, 1)
    assert by_title["Task a"].due_date == date(2024, 1, 5)
    assert by_title["Task b"].created_date == date(2024, 1, 2)

    assert [t.id for t in cache.get_active_tasks()] == ["keep"]


def test_mark_done_failure_keeps_cache(cache, tmp_path: Path) -> None:
    store = FailingInsertStore(tmp_path / "t.sqlite3")
    cache.save_task(_local("a", date(2024, 1, 1)))
    cache.save_task(_local("b", date(2024, 1, 1)))

    with pytest.raises(TaskStoreError):
        mark_done(cache, store, {"a", "b"})

    assert {t.id for t in cache.get_active_tasks()} == {"a", "b"}
    assert store.count_tasks() == 0


def test_mark_done_nothing_resolved_does_not_touch_store(cache, tmp_path: Path) -> None:
    store = FailingInsertStore(tmp_path / "t.sqlite3")

    result = mark_done(cache, store, ["nope"])

    assert result.done_ids == ()
    assert store.insert_calls == 0
    assert mark_done(cache, store, []).missing_ids == ()


def test_mark_done_twice_records_one_row(cache, store) -> None:
    task = _local("a", date(2024, 1, 1))
    cache.save_task(task)
    mark_done(cache, store, ["a"])

    # The same task re-appearing (e.g. restored by another tab) is not archived twice.
    cache.save_task(task)
    mark_done(cache, store, ["a"])

    assert store.count_tasks() == 1
    assert cache.get_active_tasks() == []
