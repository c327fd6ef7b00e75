# tests/test_carry_over.py

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from daytrack.tasks import task_api
from daytrack.tasks.carry_over import Authority, CarryOverChecker
from daytrack.tasks.local_cache import APP_STATE_KEY, LocalTaskCache, MemoryKVCache
from daytrack.tasks.task_models import LocalTask, NewTask, Suggestion, TaskStatus
from daytrack.tasks.task_store import TaskStoreError

from .fakes import BrokenKVCache, CasFailingKVCache, Clock, CountingStore, FailingInsertStore

JAN1 = date(2024, 1, 1)
JAN2 = date(2024, 1, 2)
JAN3 = date(2024, 1, 3)


def _local(task_id: str, day: date | None, **kw) -> LocalTask:
    return LocalTask(
        id=task_id,
        title=kw.pop("title", f"Task {task_id}"),
        description=kw.pop("description", None),
        created_date=day,
        created_at="2024-01-01T08:00:00.000+00:00",
        **kw,
    )


def _seed(cache: LocalTaskCache, *tasks: LocalTask) -> None:
    for t in tasks:
        assert cache.save_task(t)


def test_first_run_sets_marker_and_carries_nothing(cache, tmp_path: Path) -> None:
    store = CountingStore(tmp_path / "t.sqlite3")
    _seed(cache, _local("a", JAN1))
    checker = CarryOverChecker(cache, store, today_fn=Clock(JAN3))

    result = checker.check_and_carry_over()

    assert result.first_run
    assert result.carried_ids == ()
    assert cache.get_last_viewed_date() == JAN3
    assert store.get_last_viewed_date() == JAN3
    assert store.insert_calls == 0
    assert cache.get_task("a").created_date == JAN1


def test_second_check_same_day_is_a_noop(cache, backend, tmp_path: Path) -> None:
    store = CountingStore(tmp_path / "t.sqlite3")
    cache.set_last_viewed_date(JAN1)
    _seed(cache, _local("a", JAN1), _local("b", JAN1))
    checker = CarryOverChecker(cache, store, today_fn=Clock(JAN2))

    first = checker.check_and_carry_over()
    assert first.rolled_over
    assert store.insert_calls == 1

    snapshot = dict(backend._data)
    second = checker.check_and_carry_over()

    assert not second.rolled_over
    assert second.carried_ids == ()
    assert store.insert_calls == 1
    assert backend._data == snapshot


def test_stale_day_carries_over_leftovers(cache, store) -> None:
    cache.set_last_viewed_date(JAN1)
    _seed(
        cache,
        _local("a", JAN1, due_date=date(2024, 2, 1)),
        _local("b", JAN1, description="notes"),
        _local("c", JAN1, ai_suggestions=[Suggestion("sg_1", "start early")]),
        _local("d", JAN2),
    )
    checker = CarryOverChecker(cache, store, today_fn=Clock(JAN3))

    result = checker.check_and_carry_over()

    assert result.previous_date == JAN1
    assert set(result.carried_ids) == {"a", "b", "c"}

    rows = store.select_tasks(statuses=[TaskStatus.CARRY_OVER])
    assert len(rows) == 3
    assert {r.title for r in rows} == {"Task a", "Task b", "Task c"}
    assert all(r.created_date == JAN1 for r in rows)
    by_title = {r.title: r for r in rows}
    assert by_title["Task a"].due_date == date(2024, 2, 1)
    assert by_title["Task b"].description == "notes"

    for task_id in ("a", "b", "c"):
        assert cache.get_task(task_id).created_date == JAN3
    assert cache.get_task("c").ai_suggestions == [Suggestion("sg_1", "start early")]
    assert cache.get_task("d").created_date == JAN2
    assert cache.get_last_viewed_date() == JAN3
    assert store.get_last_viewed_date() == JAN3


def test_failed_insert_leaves_marker_and_tasks_alone(cache, tmp_path: Path) -> None:
    store = FailingInsertStore(tmp_path / "t.sqlite3")
    cache.set_last_viewed_date(JAN1)
    _seed(cache, _local("a", JAN1), _local("b", JAN1), _local("c", JAN1))
    checker = CarryOverChecker(cache, store, today_fn=Clock(JAN3))

    with pytest.raises(TaskStoreError):
        checker.check_and_carry_over()

    assert cache.get_last_viewed_date() == JAN1
    assert all(t.created_date == JAN1 for t in cache.get_active_tasks())
    assert store.count_tasks() == 0

    # Next invocation retries in full.
    store.fail = False
    result = checker.check_and_carry_over()
    assert len(result.carried_ids) == 3
    assert store.count_tasks() == 3
    assert cache.get_last_viewed_date() == JAN3


def test_retry_after_cache_failure_does_not_duplicate_history(store) -> None:
    healthy = MemoryKVCache()
    _seed(LocalTaskCache(healthy), _local("a", JAN1), _local("b", JAN1))
    # Same tasks, but every cache write fails after the durable insert.
    broken = BrokenKVCache(
        {
            APP_STATE_KEY: '{"last_viewed_date": "2024-01-01"}',
            "active_tasks": healthy.get("active_tasks"),
        }
    )

    checker = CarryOverChecker(LocalTaskCache(broken), store, today_fn=Clock(JAN2))
    checker.check_and_carry_over()
    assert store.count_tasks() == 2

    # Marker was never advanced locally, so the check runs again: no new rows.
    again = checker.check_and_carry_over()
    assert again.rolled_over
    assert store.count_tasks() == 2


def test_malformed_marker_is_treated_as_first_run(backend, cache, store) -> None:
    backend.set(APP_STATE_KEY, '{"last_viewed_date": "not-a-date"}')
    _seed(cache, _local("a", JAN1))

    result = CarryOverChecker(cache, store, today_fn=Clock(JAN2)).check_and_carry_over()

    assert result.first_run
    assert store.count_tasks() == 0
    assert cache.get_last_viewed_date() == JAN2


def test_stale_day_without_leftovers_only_moves_marker(cache, tmp_path: Path) -> None:
    store = CountingStore(tmp_path / "t.sqlite3")
    cache.set_last_viewed_date(JAN1)
    _seed(cache, _local("a", JAN2))

    result = CarryOverChecker(cache, store, today_fn=Clock(JAN3)).check_and_carry_over()

    assert result.rolled_over
    assert result.carried_ids == ()
    assert store.insert_calls == 0
    assert cache.get_last_viewed_date() == JAN3


def test_durable_authority_rolls_active_rows_forward(cache, store) -> None:
    store.set_last_viewed_date(JAN1)
    store.insert_tasks(
        [
            NewTask(title="old", status=TaskStatus.ACTIVE, created_date=JAN1),
            NewTask(title="older", status=TaskStatus.ACTIVE, created_date=date(2023, 12, 31)),
            NewTask(title="finished", status=TaskStatus.ACCOMPLISHED, created_date=JAN1),
        ]
    )
    checker = CarryOverChecker(cache, store, authority=Authority.DURABLE, today_fn=Clock(JAN2))

    result = checker.check_and_carry_over()

    assert result.authority is Authority.DURABLE
    assert len(result.carried_ids) == 1
    carried = store.select_tasks(statuses=[TaskStatus.CARRY_OVER])
    assert [(t.title, t.created_date) for t in carried] == [("old", JAN2)]
    finished = store.select_tasks(statuses=[TaskStatus.ACCOMPLISHED])
    assert finished[0].created_date == JAN1
    assert store.get_last_viewed_date() == JAN2
    assert cache.get_last_viewed_date() == JAN2

    assert not checker.check_and_carry_over().rolled_over


def test_durable_authority_first_run(cache, store) -> None:
    result = CarryOverChecker(
        cache, store, authority="durable", today_fn=Clock(JAN2)
    ).check_and_carry_over()

    assert result.first_run
    assert store.get_last_viewed_date() == JAN2


def test_authority_parse_falls_back_to_local() -> None:
    assert Authority.parse("DURABLE") is Authority.DURABLE
    assert Authority.parse("bogus") is Authority.LOCAL
    assert Authority.parse(None) is Authority.LOCAL


def test_failed_cache_advance_keeps_marker_until_retry_succeeds(store) -> None:
    healthy = MemoryKVCache()
    _seed(LocalTaskCache(healthy), _local("a", JAN1), _local("b", JAN1))
    # Marker writes succeed; only the task-list update loses every CAS round.
    backend = CasFailingKVCache(
        {
            APP_STATE_KEY: '{"last_viewed_date": "2024-01-01"}',
            "active_tasks": healthy.get("active_tasks"),
        }
    )
    cache = LocalTaskCache(backend)
    clock = Clock(JAN2)
    checker = CarryOverChecker(cache, store, today_fn=clock)

    first = checker.check_and_carry_over()
    assert first.carried_ids == ()
    assert store.count_tasks() == 2
    assert cache.get_last_viewed_date() == JAN1
    assert all(t.created_date == JAN1 for t in cache.get_active_tasks())

    clock.today = JAN3
    checker.check_and_carry_over()
    assert store.count_tasks() == 2
    assert cache.get_last_viewed_date() == JAN1

    backend.fail = False
    result = checker.check_and_carry_over()
    assert set(result.carried_ids) == {"a", "b"}
    assert store.count_tasks() == 2
    assert cache.get_last_viewed_date() == JAN3
    assert all(t.created_date == JAN3 for t in cache.get_active_tasks())


def test_durable_authority_keeps_rolling_carried_rows(state, store, clock) -> None:
    state.authority = "durable"
    store.set_last_viewed_date(JAN1)
    (row,) = store.insert_tasks([NewTask(title="report", status=TaskStatus.ACTIVE, created_date=JAN1)])

    clock.today = JAN2
    assert task_api.run_carry_over(state).carried_ids == (row.id,)

    clock.today = JAN3
    result = task_api.run_carry_over(state)

    assert result.carried_ids == (row.id,)
    moved = store.get_task(row.id)
    assert moved.status is TaskStatus.CARRY_OVER
    assert moved.created_date == JAN3
    assert [t.id for t in task_api.list_today(state)] == [row.id]
    assert store.get_last_viewed_date() == JAN3
