# src/taskhub/notifications/store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Collection
from pathlib import Path
from typing import Any

from ..core.errors import NotFound
from .models import DomainEvent, Notification, NotificationKind

logger = logging.getLogger(__name__)


class NotificationStore:
    """
    SQLite notification inbox; implements the NotificationSink port.

    Delivery (pushing to a live connector) is tracked separately from reading:
    - delivered_at: set by the relay once the text went out
    - is_read: set by the user

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "notifications.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("NotificationStore ready db=%s", self._db_path)

    def close(self) -> None:
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    title TEXT NOT NULL,
                    message TEXT NOT NULL,
                    related_task_id INTEGER,
                    related_project_id TEXT,
                    metadata TEXT NOT NULL DEFAULT '{}',
                    is_read INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    delivered_at REAL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, is_read)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_notifications_pending ON notifications(delivered_at, id)"
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _meta_to_str(meta: dict[str, Any] | None) -> str:
        if not meta:
            return "{}"
        try:
            return json.dumps(meta, ensure_ascii=False)
        except Exception:
            logger.exception("Failed to JSON-encode notification metadata; storing {}.")
            return "{}"

    @staticmethod
    def _str_to_meta(s: str | None) -> dict[str, Any]:
        if not s:
            return {}
        try:
            val = json.loads(s)
            return val if isinstance(val, dict) else {}
        except Exception:
            return {}

    def _row_to_notification(self, row: sqlite3.Row) -> Notification:
        return Notification(
            id=int(row["id"]),
            user_id=str(row["user_id"]),
            kind=NotificationKind.from_db(row["kind"]),
            title=str(row["title"] or ""),
            message=str(row["message"] or ""),
            related_task_id=int(row["related_task_id"]) if row["related_task_id"] is not None else None,
            related_project_id=row["related_project_id"],
            metadata=self._str_to_meta(row["metadata"]),
            is_read=bool(row["is_read"]),
            created_at=float(row["created_at"] or 0.0),
            delivered_at=float(row["delivered_at"]) if row["delivered_at"] is not None else None,
        )

    # ---- NotificationSink ----

    def emit(self, event: DomainEvent) -> None:
        self.add(event)

    # ---- public API ----

    def add(self, event: DomainEvent) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO notifications(
                    user_id, kind, title, message,
                    related_task_id, related_project_id, metadata,
                    is_read, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?)
                """,
                (
                    event.target_user_id,
                    event.kind.value,
                    event.title,
                    event.message,
                    event.related_task_id,
                    event.related_project_id,
                    self._meta_to_str(event.metadata),
                    time.time(),
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for notifications insert")
        finally:
            conn.close()

        logger.debug(
            "Notification stored id=%s user=%s kind=%s task=%s",
            rowid,
            event.target_user_id,
            event.kind.value,
            event.related_task_id,
        )
        return int(rowid)

    def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        """Newest first."""
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT *
                FROM notifications
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC
                    LIMIT ?
                """,
                (user_id, int(limit)),
            )
            return [self._row_to_notification(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def mark_read(self, notification_id: int) -> Notification:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("UPDATE notifications SET is_read = 1 WHERE id = ?", (int(notification_id),))
            conn.commit()
            if cur.rowcount != 1:
                raise NotFound("Notification not found", notification_id=notification_id)
            cur.execute("SELECT * FROM notifications WHERE id = ?", (int(notification_id),))
            return self._row_to_notification(cur.fetchone())
        finally:
            conn.close()

    def mark_all_read(self, user_id: str) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0",
                (user_id,),
            )
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()

    def unread_count(self, user_id: str) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND is_read = 0",
                (user_id,),
            )
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def list_undelivered(
            self, limit: int = 32, user_ids: Collection[str] | None = None
    ) -> list[Notification]:
        """
        Oldest first, so the relay preserves emission order.

        With user_ids, only notifications addressed to those users (an empty collection yields nothing).
        """
        sql = "SELECT * FROM notifications WHERE delivered_at IS NULL"
        params: list[object] = []
        if user_ids is not None:
            ids = [str(u) for u in user_ids]
            if not ids:
                return []
            sql += f" AND user_id IN ({', '.join('?' for _ in ids)})"
            params.extend(ids)
        sql += " ORDER BY id ASC LIMIT ?"
        params.append(int(limit))

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(sql, params)
            return [self._row_to_notification(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def mark_delivered(self, notification_id: int, now_ts: float | None = None) -> bool:
        """Returns True if this call flipped the row (False if already delivered)."""
        if now_ts is None:
            now_ts = time.time()

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE notifications
                SET delivered_at = ?
                WHERE id = ?
                  AND delivered_at IS NULL
                """,
                (float(now_ts), int(notification_id)),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()
