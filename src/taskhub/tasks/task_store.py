# src/taskhub/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Iterable
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any

from ..core.errors import InvalidValue, NotFound, VersionConflict
from .task_models import (
    Comment,
    CommentView,
    Task,
    TaskPriority,
    TaskRef,
    TaskStatus,
    TaskView,
    TimeEntry,
    TimeEntryView,
    User,
    UserRef,
)

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite task store (tasks + user directory).

    Each task is one row; ordered collections (comments, edges, time entries) live in
    JSON columns so a task is always read and written as a single record.

    Atomicity:
    - replace_task() is a compare-and-swap on the `version` column; a lost race raises
      VersionConflict and nothing is written.

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

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
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
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    project_id TEXT NOT NULL,
                    assigned_to TEXT NOT NULL,
                    assigned_by TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'todo',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    due_date REAL,
                    comments TEXT NOT NULL DEFAULT '[]',
                    depends_on TEXT NOT NULL DEFAULT '[]',
                    blocks TEXT NOT NULL DEFAULT '[]',
                    time_entries TEXT NOT NULL DEFAULT '[]',
                    total_time_spent INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    version INTEGER NOT NULL DEFAULT 0
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("priority", "TEXT NOT NULL DEFAULT 'medium'")
            add_col("due_date", "REAL")
            add_col("comments", "TEXT NOT NULL DEFAULT '[]'")
            add_col("depends_on", "TEXT NOT NULL DEFAULT '[]'")
            add_col("blocks", "TEXT NOT NULL DEFAULT '[]'")
            add_col("time_entries", "TEXT NOT NULL DEFAULT '[]'")
            add_col("total_time_spent", "INTEGER NOT NULL DEFAULT 0")
            add_col("version", "INTEGER NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id, created_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_assignee ON tasks(assigned_to, created_at)")

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL DEFAULT '',
                    role TEXT NOT NULL DEFAULT 'employee',
                    created_at REAL NOT NULL
                )
                """
            )

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _list_to_str(items: Iterable[Any]) -> str:
        out = [asdict(x) if is_dataclass(x) else x for x in items]
        return json.dumps(out, ensure_ascii=False)

    @staticmethod
    def _str_to_list(s: str | None) -> list[Any]:
        if not s:
            return []
        try:
            val = json.loads(s)
            return val if isinstance(val, list) else []
        except Exception:
            logger.warning("Unreadable JSON list column; treating as empty.")
            return []

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            title=str(row["title"] or ""),
            description=str(row["description"] or ""),
            project_id=str(row["project_id"] or ""),
            assigned_to=str(row["assigned_to"] or ""),
            assigned_by=str(row["assigned_by"] or ""),
            due_date=float(row["due_date"]) if row["due_date"] is not None else None,
            status=TaskStatus.from_db(row["status"]),
            priority=TaskPriority.from_db(row["priority"]),
            comments=[
                Comment.from_dict(c) for c in self._str_to_list(row["comments"]) if isinstance(c, dict)
            ],
            depends_on=[int(x) for x in self._str_to_list(row["depends_on"])],
            blocks=[int(x) for x in self._str_to_list(row["blocks"])],
            time_entries=[
                TimeEntry.from_dict(e)
                for e in self._str_to_list(row["time_entries"])
                if isinstance(e, dict)
            ],
            total_time_spent=int(row["total_time_spent"] or 0),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            version=int(row["version"] or 0),
        )

    # ---- tasks ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM tasks")
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(
        self,
        *,
        title: str,
        description: str,
        project_id: str,
        assigned_to: str,
        assigned_by: str,
        due_date: float | None,
        status: TaskStatus = TaskStatus.TODO,
        priority: TaskPriority = TaskPriority.MEDIUM,
    ) -> Task:
        if not title or not title.strip():
            raise InvalidValue("title is required", field="title")
        if not description or not description.strip():
            raise InvalidValue("description is required", field="description")

        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO tasks(
                    title, description, project_id, assigned_to, assigned_by,
                    status, priority, due_date, created_at, updated_at, version
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
                """,
                (
                    title.strip(),
                    description.strip(),
                    project_id,
                    assigned_to,
                    assigned_by,
                    status.value,
                    priority.value,
                    due_date,
                    now,
                    now,
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for tasks insert")
            task_id = int(rowid)
        finally:
            conn.close()

        logger.debug(
            "Task added id=%s project=%s assigned_to=%s status=%s",
            task_id,
            project_id,
            assigned_to,
            status.value,
        )
        return self.get_task(task_id)

    def find_task(self, task_id: int) -> Task | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),))
            row = cur.fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def get_task(self, task_id: int) -> Task:
        task = self.find_task(task_id)
        if task is None:
            raise NotFound("Task not found", task_id=task_id)
        return task

    def replace_task(self, task: Task, *, expected_version: int) -> Task:
        """
        Write the whole record if nobody else wrote it since `expected_version`.

        On success the passed task gets the new version/updated_at and is returned.
        """
        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE tasks
                SET title = ?,
                    description = ?,
                    project_id = ?,
                    assigned_to = ?,
                    assigned_by = ?,
                    status = ?,
                    priority = ?,
                    due_date = ?,
                    comments = ?,
                    depends_on = ?,
                    blocks = ?,
                    time_entries = ?,
                    total_time_spent = ?,
                    updated_at = ?,
                    version = version + 1
                WHERE id = ?
                  AND version = ?
                """,
                (
                    task.title,
                    task.description,
                    task.project_id,
                    task.assigned_to,
                    task.assigned_by,
                    task.status.value,
                    task.priority.value,
                    task.due_date,
                    self._list_to_str(task.comments),
                    self._list_to_str(task.depends_on),
                    self._list_to_str(task.blocks),
                    self._list_to_str(task.time_entries),
                    int(task.total_time_spent),
                    now,
                    int(task.id),
                    int(expected_version),
                ),
            )
            conn.commit()
            if cur.rowcount != 1:
                cur.execute("SELECT 1 FROM tasks WHERE id = ?", (int(task.id),))
                if cur.fetchone() is None:
                    raise NotFound("Task not found", task_id=task.id)
                raise VersionConflict(task.id, expected_version)
        finally:
            conn.close()

        task.version = int(expected_version) + 1
        task.updated_at = now
        return task

    def delete_task(self, task_id: int) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))
            conn.commit()
            deleted = cur.rowcount
        finally:
            conn.close()
        if deleted != 1:
            raise NotFound("Task not found", task_id=task_id)
        logger.debug("Task deleted id=%s", task_id)

    def list_by_project(self, project_id: str) -> list[Task]:
        """Tasks of a project, newest first."""
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT *
                FROM tasks
                WHERE project_id = ?
                ORDER BY created_at DESC, id DESC
                """,
                (project_id,),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def list_by_assignee(self, user_id: str) -> list[Task]:
        """Tasks assigned to a user, newest first."""
        if not user_id:
            return []

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT *
                FROM tasks
                WHERE assigned_to = ?
                ORDER BY created_at DESC, id DESC
                """,
                (user_id,),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def list_referencing(self, task_id: int) -> list[Task]:
        """
        Tasks whose depends_on or blocks mention task_id.

        LIKE is only a prefilter on the JSON text; the exact check happens on the
        decoded lists.
        """
        tid = int(task_id)
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT *
                FROM tasks
                WHERE id != ?
                  AND (depends_on LIKE ? OR blocks LIKE ?)
                ORDER BY id ASC
                """,
                (tid, f"%{tid}%", f"%{tid}%"),
            )
            tasks = [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()
        return [t for t in tasks if tid in t.depends_on or tid in t.blocks]

    def task_refs(self, task_ids: Iterable[int]) -> list[TaskRef]:
        """Resolve ids to TaskRef in the given order; ids that no longer exist are skipped."""
        ids = [int(x) for x in task_ids]
        if not ids:
            return []

        conn = self._get_conn()
        try:
            placeholders = ",".join("?" for _ in ids)
            cur = conn.cursor()
            cur.execute(f"SELECT * FROM tasks WHERE id IN ({placeholders})", ids)
            by_id = {int(r["id"]): self._row_to_task(r) for r in cur.fetchall()}
        finally:
            conn.close()

        return [TaskRef.of(by_id[i]) for i in ids if i in by_id]

    # ---- users ----

    def add_user(self, *, user_id: str, name: str, email: str = "", role: str = "employee") -> User:
        """Insert or update a directory entry."""
        if not user_id or not user_id.strip():
            raise InvalidValue("user id is required", field="id")
        if not name or not name.strip():
            raise InvalidValue("name is required", field="name")

        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO users(id, name, email, role, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    email = excluded.email,
                    role = excluded.role
                """,
                (user_id.strip(), name.strip(), (email or "").strip(), role, time.time()),
            )
            conn.commit()
        finally:
            conn.close()

        logger.debug("User saved id=%s role=%s", user_id, role)
        return User(id=user_id.strip(), name=name.strip(), email=(email or "").strip(), role=role)

    def get_user(self, user_id: str) -> User | None:
        if not user_id:
            return None

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = cur.fetchone()
        finally:
            conn.close()

        if not row:
            return None
        return User(id=row["id"], name=row["name"], email=row["email"], role=row["role"])

    def list_users(self) -> list[User]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM users ORDER BY name COLLATE NOCASE ASC")
            rows = cur.fetchall()
        finally:
            conn.close()
        return [User(id=r["id"], name=r["name"], email=r["email"], role=r["role"]) for r in rows]

    def search_users(self, query: str, limit: int = 10) -> list[User]:
        """Case-insensitive substring match on name or email."""
        q = (query or "").strip()
        if len(q) < 2:
            raise InvalidValue("Search query must be at least 2 characters long", field="query")

        pattern = f"%{q.lower()}%"
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT *
                FROM users
                WHERE lower(name) LIKE ?
                   OR lower(email) LIKE ?
                ORDER BY name COLLATE NOCASE ASC
                    LIMIT ?
                """,
                (pattern, pattern, int(limit)),
            )
            rows = cur.fetchall()
        finally:
            conn.close()
        return [User(id=r["id"], name=r["name"], email=r["email"], role=r["role"]) for r in rows]

    def _user_refs(self, user_ids: Iterable[str]) -> dict[str, UserRef]:
        ids = sorted({u for u in user_ids if u})
        if not ids:
            return {}

        conn = self._get_conn()
        try:
            placeholders = ",".join("?" for _ in ids)
            cur = conn.cursor()
            cur.execute(f"SELECT id, name, email FROM users WHERE id IN ({placeholders})", ids)
            rows = cur.fetchall()
        finally:
            conn.close()
        return {r["id"]: UserRef(id=r["id"], name=r["name"], email=r["email"]) for r in rows}

    # ---- projection ----

    def materialize(self, task: Task) -> TaskView:
        """Resolve user and task references of `task` into display form."""
        user_ids = [task.assigned_to, task.assigned_by]
        user_ids += [c.user_id for c in task.comments]
        user_ids += [e.user_id for e in task.time_entries]
        users = self._user_refs(user_ids)

        def ref(uid: str) -> UserRef:
            return users.get(uid) or UserRef.unknown(uid)

        return TaskView(
            id=task.id,
            title=task.title,
            description=task.description,
            project_id=task.project_id,
            assigned_to=ref(task.assigned_to),
            assigned_by=ref(task.assigned_by),
            status=task.status,
            priority=task.priority,
            due_date=task.due_date,
            comments=[
                CommentView(user=ref(c.user_id), text=c.text, created_at=c.created_at)
                for c in task.comments
            ],
            depends_on=self.task_refs(task.depends_on),
            blocks=self.task_refs(task.blocks),
            time_entries=[
                TimeEntryView(
                    user=ref(e.user_id),
                    start_time=e.start_time,
                    end_time=e.end_time,
                    duration=e.duration,
                    description=e.description,
                )
                for e in task.time_entries
            ],
            total_time_spent=task.total_time_spent,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )
