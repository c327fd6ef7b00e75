# src/daytrack/tasks/carry_over.py

"""
Day-rollover check.

Two states, {needs-rollover, up-to-date}, and one transition guarded by
exact calendar-day equality between the stored last-viewed date and today.
Which store holds the marker and the open tasks is a parameter:

- LOCAL: the device cache is the working set; leftovers are copied into the
  durable history as carry_over rows and moved to today in the cache.
- DURABLE: the durable store is the working set; leftover open rows are
  switched to carry_over and moved to today in place.

A failed durable write aborts the whole check before the marker moves, so the
next invocation retries from scratch. A failed cache update after a successful
durable insert also leaves the marker alone; the retried insert is deduplicated
by fingerprint.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from enum import StrEnum

from ..core.ports import DurableTaskStore
from .local_cache import LocalTaskCache
from .task_models import TaskStatus, local_to_new_task
from .task_store import TaskStoreError

logger = logging.getLogger(__name__)


class Authority(StrEnum):
    LOCAL = "local"
    DURABLE = "durable"

    @classmethod
    def parse(cls, raw: str | None) -> Authority:
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return cls.LOCAL


@dataclass(slots=True, frozen=True)
class CarryOverResult:
    today: date
    previous_date: date | None
    carried_ids: tuple[str, ...] = ()
    first_run: bool = False
    authority: Authority = Authority.LOCAL

    @property
    def rolled_over(self) -> bool:
        return self.previous_date is not None and self.previous_date != self.today


class CarryOverChecker:
    def __init__(
        self,
        cache: LocalTaskCache,
        store: DurableTaskStore,
        *,
        authority: Authority | str = Authority.LOCAL,
        today_fn: Callable[[], date] = date.today,
    ) -> None:
        self._cache = cache
        self._store = store
        self._authority = Authority(authority)
        self._today_fn = today_fn

    @property
    def authority(self) -> Authority:
        return self._authority

    def check_and_carry_over(self) -> CarryOverResult:
        """
        Run the check once.

        Raises TaskStoreError when the durable write fails; in that case
        neither the marker nor any task has been changed.
        """
        today = self._today_fn()
        if self._authority is Authority.DURABLE:
            return self._check_durable(today)
        return self._check_local(today)

    # ---- local working set ----

    def _check_local(self, today: date) -> CarryOverResult:
        last = self._cache.get_last_viewed_date()

        if last is None:
            logger.info("No last viewed date cached; starting at %s.", today)
            self._cache.set_last_viewed_date(today)
            self._mirror_durable_marker(today)
            return CarryOverResult(today=today, previous_date=None, first_run=True)

        if last == today:
            return CarryOverResult(today=today, previous_date=last)

        leftovers = [t for t in self._cache.get_active_tasks() if t.created_date == last]
        carried: tuple[str, ...] = ()

        if leftovers:
            rows = [local_to_new_task(t, TaskStatus.CARRY_OVER, created_date=last) for t in leftovers]
            try:
                self._store.insert_tasks(rows)
            except TaskStoreError as e:
                logger.warning(
                    "Carry-over of %d task(s) from %s failed, will retry next time: %s",
                    len(rows),
                    last,
                    e,
                )
                raise

            carried = tuple(t.id for t in leftovers)
            if not self._cache.advance_created_date(carried, today):
                # Marker stays on `last` so the next check retries; fingerprints dedup the insert.
                logger.error(
                    "Carried %d task(s) but could not move them to %s in cache; marker left at %s.",
                    len(carried),
                    today,
                    last,
                )
                return CarryOverResult(today=today, previous_date=last)

        self._cache.set_last_viewed_date(today)
        self._mirror_durable_marker(today)
        logger.info("Rolled over %s -> %s, carried %d task(s).", last, today, len(carried))
        return CarryOverResult(today=today, previous_date=last, carried_ids=carried)

    def _mirror_durable_marker(self, today: date) -> None:
        try:
            self._store.set_last_viewed_date(today)
        except TaskStoreError as e:
            logger.warning("Could not update durable last viewed date: %s", e)

    # ---- durable working set ----

    def _check_durable(self, today: date) -> CarryOverResult:
        last = self._store.get_last_viewed_date()

        if last is None:
            logger.info("No last viewed date stored; starting at %s.", today)
            self._store.set_last_viewed_date(today)
            self._cache.set_last_viewed_date(today)
            return CarryOverResult(
                today=today, previous_date=None, first_run=True, authority=Authority.DURABLE
            )

        if last == today:
            return CarryOverResult(today=today, previous_date=last, authority=Authority.DURABLE)

        leftovers = self._store.select_tasks(
            statuses=[TaskStatus.ACTIVE, TaskStatus.CARRY_OVER], created_date=last
        )
        carried = tuple(t.id for t in leftovers)
        if carried:
            fresh = [t.id for t in leftovers if t.status is TaskStatus.ACTIVE]
            # Rows carried on an earlier day keep their status and only move forward.
            again = [t.id for t in leftovers if t.status is TaskStatus.CARRY_OVER]
            changed = 0
            if fresh:
                changed += self._store.update_tasks(
                    task_ids=fresh,
                    status=TaskStatus.CARRY_OVER,
                    new_created_date=today,
                )
            if again:
                changed += self._store.update_tasks(task_ids=again, new_created_date=today)
            if changed != len(carried):
                logger.warning("Expected to carry %d row(s), updated %d.", len(carried), changed)

        self._store.set_last_viewed_date(today)
        self._cache.set_last_viewed_date(today)
        logger.info("Rolled over %s -> %s, carried %d durable task(s).", last, today, len(carried))
        return CarryOverResult(
            today=today, previous_date=last, carried_ids=carried, authority=Authority.DURABLE
        )
