# src/daytrack/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterable, Sequence
from datetime import date
from pathlib import Path
from typing import Any

from .task_models import NewTask, Task, TaskStatus, format_day, parse_day

logger = logging.getLogger(__name__)

_APP_STATE_ROW = "singleton"


class TaskStoreError(RuntimeError):
    """Durable store failure. The message is safe to show to the user."""


class TaskStore:
    """
    SQLite durable store: task history plus the single-row app state.

    The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except Exception:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise TaskStoreError(f"Cannot open task database: {e}") from e
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    created_date TEXT NOT NULL,
                    due_date TEXT,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS app_state (
                    id TEXT PRIMARY KEY,
                    last_viewed_date TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("description", "TEXT")
            add_col("due_date", "TEXT")
            add_col("fingerprint", "TEXT")

            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_status_date ON tasks(status, created_date)"
            )
            # NULL fingerprints never collide, so rows created directly stay unconstrained.
            cur.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_fingerprint ON tasks(fingerprint)"
            )

            conn.commit()
        except sqlite3.Error as e:
            raise TaskStoreError(f"Cannot prepare task database: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            title=str(row["title"] or ""),
            description=row["description"],
            status=TaskStatus.from_db(row["status"]),
            created_date=parse_day(row["created_date"]),
            due_date=parse_day(row["due_date"]),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            fingerprint=row["fingerprint"],
        )

    @staticmethod
    def _clean_title(title: str | None) -> str:
        if not title or not title.strip():
            raise TaskStoreError("title is required")
        return title.strip()

    # ---- tasks ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM tasks")
            (n,) = cur.fetchone()
            return int(n)
        except sqlite3.Error as e:
            raise TaskStoreError(f"Failed to count tasks: {e}") from e
        finally:
            conn.close()

    def insert_tasks(self, rows: Sequence[NewTask]) -> list[Task]:
        """
        Insert a batch in one transaction: either every row applies or none does.

        Rows whose fingerprint is already stored are skipped, so retrying a
        batch after a partial failure elsewhere does not duplicate history.
        Returns the rows actually inserted.
        """
        if not rows:
            return []

        now = time.time()
        prepared: list[Task] = []
        for r in rows:
            prepared.append(
                Task(
                    id=uuid.uuid4().hex,
                    title=self._clean_title(r.title),
                    description=(r.description or "").strip() or None,
                    status=TaskStatus(r.status),
                    created_date=r.created_date,
                    due_date=r.due_date,
                    created_at=now,
                    updated_at=now,
                    fingerprint=r.fingerprint,
                )
            )

        inserted: list[Task] = []
        conn = self._get_conn()
        try:
            with conn:
                for t in prepared:
                    cur = conn.execute(
                        """
                        INSERT INTO tasks(
                            id, title, description, status,
                            created_date, due_date, created_at, updated_at, fingerprint
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(fingerprint) DO NOTHING
                        """,
                        (
                            t.id,
                            t.title,
                            t.description,
                            t.status.value,
                            format_day(t.created_date),
                            format_day(t.due_date),
                            t.created_at,
                            t.updated_at,
                            t.fingerprint,
                        ),
                    )
                    if cur.rowcount == 1:
                        inserted.append(t)
                    else:
                        logger.info("Skipped duplicate task row fingerprint=%s", t.fingerprint)
        except sqlite3.Error as e:
            logger.warning("Batch insert of %d task(s) failed: %s", len(prepared), e)
            raise TaskStoreError(f"Failed to save tasks: {e}") from e
        finally:
            conn.close()

        logger.debug(
            "Inserted %d/%d task row(s) statuses=%s",
            len(inserted),
            len(prepared),
            sorted({t.status.value for t in inserted}),
        )
        return inserted

    @staticmethod
    def _where(
        *,
        task_ids: Iterable[str] | None = None,
        statuses: Iterable[TaskStatus] | None = None,
        created_date: date | None = None,
        due_after: date | None = None,
    ) -> tuple[list[str], list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []

        if task_ids is not None:
            ids = [str(i) for i in task_ids]
            if not ids:
                clauses.append("0")
            else:
                clauses.append(f"id IN ({','.join('?' for _ in ids)})")
                params.extend(ids)

        if statuses is not None:
            vals = [TaskStatus(s).value for s in statuses]
            if not vals:
                clauses.append("0")
            else:
                clauses.append(f"status IN ({','.join('?' for _ in vals)})")
                params.extend(vals)

        if created_date is not None:
            clauses.append("created_date = ?")
            params.append(format_day(created_date))

        if due_after is not None:
            clauses.append("due_date IS NOT NULL AND due_date > ?")
            params.append(format_day(due_after))

        return clauses, params

    def select_tasks(
        self,
        *,
        statuses: Iterable[TaskStatus] | None = None,
        created_date: date | None = None,
        due_after: date | None = None,
        task_ids: Iterable[str] | None = None,
        limit: int | None = None,
    ) -> list[Task]:
        """Filtered select, newest first."""
        clauses, params = self._where(
            task_ids=task_ids, statuses=statuses, created_date=created_date, due_after=due_after
        )
        sql = "SELECT * FROM tasks"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(sql, params)
            return [self._row_to_task(r) for r in cur.fetchall()]
        except sqlite3.Error as e:
            raise TaskStoreError(f"Failed to load tasks: {e}") from e
        finally:
            conn.close()

    def get_task(self, task_id: str) -> Task | None:
        found = self.select_tasks(task_ids=[task_id], limit=1)
        return found[0] if found else None

    def update_tasks(
        self,
        *,
        task_ids: Iterable[str] | None = None,
        statuses: Iterable[TaskStatus] | None = None,
        created_date: date | None = None,
        status: TaskStatus | None = None,
        new_created_date: date | None = None,
        title: str | None = None,
        description: str | None = None,
        due_date: date | None = None,
    ) -> int:
        """
        Update rows matching the filter; returns the number of rows changed.

        Accomplished rows are never touched. When `status` is given, only rows
        currently in one of its allowed source statuses are updated.
        """
        fields: list[str] = []
        values: list[Any] = []

        if status is not None:
            fields.append("status = ?")
            values.append(TaskStatus(status).value)

        if new_created_date is not None:
            fields.append("created_date = ?")
            values.append(format_day(new_created_date))

        if title is not None:
            fields.append("title = ?")
            values.append(self._clean_title(title))

        if description is not None:
            fields.append("description = ?")
            values.append(description.strip() or None)

        if due_date is not None:
            fields.append("due_date = ?")
            values.append(format_day(due_date))

        if not fields:
            return 0

        fields.append("updated_at = ?")
        values.append(time.time())

        clauses, params = self._where(
            task_ids=task_ids, statuses=statuses, created_date=created_date
        )
        clauses.append("status != 'accomplished'")
        if status is not None:
            sources = [s.value for s in TaskStatus(status).sources()]
            if not sources:
                clauses.append("0")
            else:
                clauses.append(f"status IN ({','.join('?' for _ in sources)})")
                params.extend(sources)

        sql = f"UPDATE tasks SET {', '.join(fields)} WHERE {' AND '.join(clauses)}"

        conn = self._get_conn()
        try:
            with conn:
                cur = conn.execute(sql, [*values, *params])
            changed = int(cur.rowcount)
        except sqlite3.Error as e:
            logger.warning("Task update failed: %s", e)
            raise TaskStoreError(f"Failed to update tasks: {e}") from e
        finally:
            conn.close()

        logger.debug("Updated %d task row(s) status=%s", changed, status)
        return changed

    def update_task(self, task_id: str, **fields: Any) -> Task | None:
        """Update one row by id; returns the fresh row, or None if nothing changed."""
        if not self.update_tasks(task_ids=[task_id], **fields):
            return None
        return self.get_task(task_id)

    def delete_task(self, task_id: str) -> bool:
        """Delete one open row; accomplished history is retained."""
        conn = self._get_conn()
        try:
            with conn:
                cur = conn.execute(
                    "DELETE FROM tasks WHERE id = ? AND status != 'accomplished'",
                    (str(task_id),),
                )
            return cur.rowcount == 1
        except sqlite3.Error as e:
            raise TaskStoreError(f"Failed to delete task: {e}") from e
        finally:
            conn.close()

    # ---- app state ----

    def get_last_viewed_date(self) -> date | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT last_viewed_date FROM app_state WHERE id = ?", (_APP_STATE_ROW,))
            row = cur.fetchone()
        except sqlite3.Error as e:
            raise TaskStoreError(f"Failed to read app state: {e}") from e
        finally:
            conn.close()
        return parse_day(row["last_viewed_date"]) if row else None

    def set_last_viewed_date(self, day: date) -> None:
        conn = self._get_conn()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO app_state(id, last_viewed_date, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        last_viewed_date = excluded.last_viewed_date,
                        updated_at = excluded.updated_at
                    """,
                    (_APP_STATE_ROW, format_day(day), time.time()),
                )
        except sqlite3.Error as e:
            raise TaskStoreError(f"Failed to save app state: {e}") from e
        finally:
            conn.close()
