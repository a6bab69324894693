# src/taskhub/notifications/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class NotificationKind(StrEnum):
    TASK_ASSIGNED = "task_assigned"
    TASK_UPDATED = "task_updated"
    TASK_STATUS_UPDATED = "task_status_updated"
    COMMENT_ADDED = "comment_added"
    DEPENDENCY_ADDED = "dependency_added"
    TASK_DELETED = "task_deleted"

    @classmethod
    def from_db(cls, raw: str | None) -> NotificationKind:
        try:
            return cls(raw or "")
        except ValueError:
            return cls.TASK_UPDATED


@dataclass(slots=True, frozen=True)
class DomainEvent:
    """
    Something a person should hear about, produced by a task mutation.

    The core returns these to its caller and hands them to a NotificationSink;
    it never waits for delivery.
    """

    kind: NotificationKind
    target_user_id: str
    title: str
    message: str
    related_task_id: int | None = None
    related_project_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Notification:
    """A stored DomainEvent addressed to one user."""

    id: int
    user_id: str
    kind: NotificationKind
    title: str
    message: str
    related_task_id: int | None
    related_project_id: str | None
    metadata: dict[str, Any]
    is_read: bool
    created_at: float
    delivered_at: float | None = None
