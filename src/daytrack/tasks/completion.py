# src/daytrack/tasks/completion.py

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date

from ..core.ports import DurableTaskStore
from .local_cache import LocalTaskCache
from .task_models import Task, TaskStatus, local_to_new_task
from .task_store import TaskStoreError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CompletionResult:
    done_ids: tuple[str, ...]
    missing_ids: tuple[str, ...]
    inserted: tuple[Task, ...] = ()


def mark_done(
    cache: LocalTaskCache,
    store: DurableTaskStore,
    task_ids: Iterable[str],
    *,
    today_fn: Callable[[], date] = date.today,
) -> CompletionResult:
    """
    Close a batch of open tasks.

    Steps:
    - resolve ids against the cache (unknown ids are ignored, not an error),
    - record every resolved task as an accomplished durable row in one insert,
    - only then drop them from the cache in one write.

    A TaskStoreError propagates and leaves the cache untouched so the user
    can retry the same selection.
    """
    wanted = list(dict.fromkeys(str(i) for i in task_ids))
    if not wanted:
        return CompletionResult(done_ids=(), missing_ids=())

    by_id = {t.id: t for t in cache.get_active_tasks()}
    resolved = [by_id[i] for i in wanted if i in by_id]
    missing = tuple(i for i in wanted if i not in by_id)
    if missing:
        logger.debug("mark_done: ignoring %d unknown id(s): %s", len(missing), missing)

    if not resolved:
        return CompletionResult(done_ids=(), missing_ids=missing)

    rows = [
        local_to_new_task(t, TaskStatus.ACCOMPLISHED, created_date=t.created_date or today_fn())
        for t in resolved
    ]
    try:
        inserted = store.insert_tasks(rows)
    except TaskStoreError as e:
        logger.warning("Failed to record %d accomplished task(s): %s", len(rows), e)
        raise

    done = tuple(t.id for t in resolved)
    if not cache.delete_tasks(done):
        logger.error("Recorded %d accomplished task(s) but could not remove them from cache.", len(done))

    logger.info("Marked %d task(s) done.", len(done))
    return CompletionResult(done_ids=done, missing_ids=missing, inserted=tuple(inserted))
