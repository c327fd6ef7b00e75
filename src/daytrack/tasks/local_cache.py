# src/daytrack/tasks/local_cache.py

"""
Local working-set cache.

Two layers:
- key-value backends (in-memory, JSON file) implementing the KeyValueCache port,
- LocalTaskCache: typed access to open tasks and the last-viewed marker.

Every read-modify-write goes through compare-and-swap with a few retries, so two
writers sharing one backend cannot silently overwrite each other's change.
Cache failures never propagate: they are logged and reported via return values.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import threading
from collections.abc import Callable, Iterable
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from ..core.ports import KeyValueCache
from .task_models import LocalTask, Suggestion, format_day, new_suggestion_id, parse_day

logger = logging.getLogger(__name__)

TASKS_KEY = "active_tasks"
APP_STATE_KEY = "app_state"

_CAS_ATTEMPTS = 5


class MemoryKVCache:
    """Process-local backend; the default for tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        with self._lock:
            if self._data.get(key) != expected:
                return False
            self._data[key] = value
            return True


class JsonFileKVCache:
    """
    Backend persisted as one JSON object {key: serialized value}.

    The file is re-read on every access so several processes see each
    other's writes; writes go through a temp file + os.replace.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text("utf-8") or "{}")
        except (OSError, ValueError) as e:
            # Unreadable file counts as empty; the next write replaces it.
            logger.warning("Failed to read cache file %s, starting empty: %s", self._path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Cache file %s does not hold an object, starting empty.", self._path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _dump(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), "utf-8")
        os.replace(tmp, self._path)
        with contextlib.suppress(Exception):
            os.chmod(self._path, 0o600)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(key, None) is not None:
                self._dump(data)

    def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        with self._lock:
            data = self._load()
            if data.get(key) != expected:
                return False
            data[key] = value
            self._dump(data)
            return True


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


TaskMutation = Callable[[list[LocalTask]], bool]


class LocalTaskCache:
    """Typed view over a KeyValueCache holding the open tasks and app state."""

    def __init__(self, backend: KeyValueCache) -> None:
        self._backend = backend

    # ---- decoding ----

    @staticmethod
    def _decode_tasks(raw: str | None) -> list[LocalTask]:
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Cached task list is not valid JSON; treating as empty.")
            return []
        if not isinstance(data, list):
            return []
        out: list[LocalTask] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                out.append(LocalTask.from_dict(item))
            except ValueError:
                logger.warning("Skipping unreadable cached task: %r", item)
        return out

    @staticmethod
    def _encode_tasks(tasks: Iterable[LocalTask]) -> str:
        return json.dumps([t.to_dict() for t in tasks], ensure_ascii=False)

    def _mutate(self, mutation: TaskMutation, what: str) -> bool:
        """
        Apply `mutation` to the task list with compare-and-swap.

        The mutation edits the list in place and returns whether anything
        changed; an unchanged list is not written back.
        Returns True when the change was stored (or there was nothing to store).
        """
        try:
            for attempt in range(1, _CAS_ATTEMPTS + 1):
                raw = self._backend.get(TASKS_KEY)
                tasks = self._decode_tasks(raw)
                if not mutation(tasks):
                    return True
                if self._backend.compare_and_set(TASKS_KEY, raw, self._encode_tasks(tasks)):
                    return True
                logger.debug("Cache CAS conflict on %s (attempt %d)", what, attempt)
            logger.warning("Giving up on %s after %d CAS conflicts.", what, _CAS_ATTEMPTS)
            return False
        except Exception:
            logger.exception("Cache write failed: %s", what)
            return False

    # ---- tasks ----

    def get_active_tasks(self) -> list[LocalTask]:
        try:
            raw = self._backend.get(TASKS_KEY)
        except Exception:
            logger.exception("Error reading tasks from cache.")
            return []
        return self._decode_tasks(raw)

    def get_task(self, task_id: str) -> LocalTask | None:
        for t in self.get_active_tasks():
            if t.id == task_id:
                return t
        return None

    def save_task(self, task: LocalTask) -> bool:
        """Insert or replace by id."""
        if not task.created_at:
            task.created_at = _now_iso()

        def mutation(tasks: list[LocalTask]) -> bool:
            for i, t in enumerate(tasks):
                if t.id == task.id:
                    tasks[i] = task
                    return True
            tasks.append(task)
            return True

        return self._mutate(mutation, f"save task {task.id}")

    def update_task(self, task_id: str, **fields: Any) -> bool:
        """Patch fields of one task; unknown ids are a no-op (returns False)."""
        unknown = set(fields) - {"title", "description", "created_date", "due_date"}
        if unknown:
            raise TypeError(f"cannot update LocalTask fields: {sorted(unknown)}")
        found = False

        def mutation(tasks: list[LocalTask]) -> bool:
            nonlocal found
            for t in tasks:
                if t.id == task_id:
                    found = True
                    for name, value in fields.items():
                        setattr(t, name, value)
                    return True
            return False

        return self._mutate(mutation, f"update task {task_id}") and found

    def advance_created_date(self, task_ids: Iterable[str], day: date) -> bool:
        """Move several tasks to `day` in a single write."""
        ids = set(task_ids)

        def mutation(tasks: list[LocalTask]) -> bool:
            changed = False
            for t in tasks:
                if t.id in ids and t.created_date != day:
                    t.created_date = day
                    changed = True
            return changed

        return self._mutate(mutation, f"advance {len(ids)} task(s) to {day}")

    def delete_task(self, task_id: str) -> bool:
        return self.delete_tasks([task_id])

    def delete_tasks(self, task_ids: Iterable[str]) -> bool:
        """Remove several tasks in a single write."""
        ids = set(task_ids)

        def mutation(tasks: list[LocalTask]) -> bool:
            before = len(tasks)
            tasks[:] = [t for t in tasks if t.id not in ids]
            return len(tasks) != before

        return self._mutate(mutation, f"delete {len(ids)} task(s)")

    # ---- suggestions ----

    def add_suggestion(self, task_id: str, text: str) -> Suggestion | None:
        """
        Append a suggestion unless the exact same text is already attached.

        Returns the stored suggestion (existing one for duplicates), or None
        when the task is unknown or the write failed.
        """
        result: Suggestion | None = None

        def mutation(tasks: list[LocalTask]) -> bool:
            nonlocal result
            result = None
            for t in tasks:
                if t.id != task_id:
                    continue
                for s in t.ai_suggestions:
                    if s.text == text:
                        result = s
                        return False
                result = Suggestion(new_suggestion_id(), text)
                t.ai_suggestions.append(result)
                return True
            return False

        if not self._mutate(mutation, f"add suggestion to {task_id}"):
            return None
        return result

    def remove_suggestion(self, task_id: str, index: int) -> bool:
        """Remove by position; an out-of-range index is a no-op."""
        removed = False

        def mutation(tasks: list[LocalTask]) -> bool:
            nonlocal removed
            removed = False
            for t in tasks:
                if t.id == task_id and 0 <= index < len(t.ai_suggestions):
                    del t.ai_suggestions[index]
                    removed = True
                    return True
            return False

        return self._mutate(mutation, f"remove suggestion {index} from {task_id}") and removed

    def remove_suggestion_by_id(self, task_id: str, suggestion_id: str) -> bool:
        removed = False

        def mutation(tasks: list[LocalTask]) -> bool:
            nonlocal removed
            removed = False
            for t in tasks:
                if t.id != task_id:
                    continue
                kept = [s for s in t.ai_suggestions if s.id != suggestion_id]
                if len(kept) != len(t.ai_suggestions):
                    t.ai_suggestions = kept
                    removed = True
                    return True
            return False

        return self._mutate(mutation, f"remove suggestion {suggestion_id} from {task_id}") and removed

    # ---- app state ----

    def get_last_viewed_date(self) -> date | None:
        """Missing or malformed marker -> None (caller treats it as a first run)."""
        try:
            raw = self._backend.get(APP_STATE_KEY)
        except Exception:
            logger.exception("Error reading app state from cache.")
            return None
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Cached app state is not valid JSON; ignoring.")
            return None
        if not isinstance(data, dict):
            return None
        day = parse_day(data.get("last_viewed_date"))
        if day is None:
            logger.warning("Cached last_viewed_date is unreadable: %r", data.get("last_viewed_date"))
        return day

    def set_last_viewed_date(self, day: date) -> bool:
        try:
            self._backend.set(APP_STATE_KEY, json.dumps({"last_viewed_date": format_day(day)}))
            return True
        except Exception:
            logger.exception("Error saving app state to cache.")
            return False
