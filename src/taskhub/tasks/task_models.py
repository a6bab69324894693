# src/taskhub/tasks/task_models.py

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

from ..core.errors import InvalidValue

DEFAULT_TIME_ENTRY_DESCRIPTION = "Working on task"


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Transitions are unrestricted: any value can be set directly from any other.
    """

    TODO = "todo"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, raw: Any) -> TaskStatus:
        """Strict parse for user input; raises InvalidValue."""
        try:
            return cls(raw.strip() if isinstance(raw, str) else raw)
        except ValueError:
            raise InvalidValue(
                "Invalid status value. Must be: todo, in-progress, or completed",
                field="status",
                value=raw,
            ) from None

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.TODO
        try:
            return cls(raw)
        except Exception:
            return cls.TODO


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, raw: Any) -> TaskPriority:
        try:
            return cls(raw.strip() if isinstance(raw, str) else raw)
        except ValueError:
            raise InvalidValue(
                "Invalid priority value. Must be: low, medium, or high",
                field="priority",
                value=raw,
            ) from None

    @classmethod
    def from_db(cls, raw: str | None) -> TaskPriority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except Exception:
            return cls.MEDIUM


@dataclass(slots=True)
class Comment:
    user_id: str
    text: str
    created_at: float

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Comment:
        return cls(
            user_id=str(raw.get("user_id") or ""),
            text=str(raw.get("text") or ""),
            created_at=float(raw.get("created_at") or 0.0),
        )


@dataclass(slots=True)
class TimeEntry:
    user_id: str
    start_time: float
    end_time: float | None = None
    duration: int | None = None  # minutes, set on stop
    description: str = DEFAULT_TIME_ENTRY_DESCRIPTION

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TimeEntry:
        end = raw.get("end_time")
        dur = raw.get("duration")
        return cls(
            user_id=str(raw.get("user_id") or ""),
            start_time=float(raw.get("start_time") or 0.0),
            end_time=float(end) if end is not None else None,
            duration=int(dur) if dur is not None else None,
            description=str(raw.get("description") or DEFAULT_TIME_ENTRY_DESCRIPTION),
        )


@dataclass(slots=True)
class Task:
    id: int
    title: str
    description: str
    project_id: str
    assigned_to: str
    assigned_by: str
    due_date: float | None

    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM

    comments: list[Comment] = field(default_factory=list)
    depends_on: list[int] = field(default_factory=list)
    blocks: list[int] = field(default_factory=list)
    time_entries: list[TimeEntry] = field(default_factory=list)
    total_time_spent: int = 0

    created_at: float = 0.0
    updated_at: float = 0.0
    version: int = 0

    def open_entry_for(self, user_id: str) -> TimeEntry | None:
        for entry in self.time_entries:
            if entry.user_id == user_id and entry.is_open:
                return entry
        return None


@dataclass(slots=True, frozen=True)
class User:
    id: str
    name: str
    email: str
    role: str


@dataclass(slots=True, frozen=True)
class UserRef:
    """Display projection of a user reference."""

    id: str
    name: str
    email: str

    @classmethod
    def unknown(cls, user_id: str) -> UserRef:
        return cls(id=user_id, name=user_id, email="")


@dataclass(slots=True, frozen=True)
class TaskRef:
    """Display projection of a task reference (dependency lists)."""

    id: int
    title: str
    status: TaskStatus
    priority: TaskPriority
    due_date: float | None

    @classmethod
    def of(cls, task: Task) -> TaskRef:
        return cls(
            id=task.id,
            title=task.title,
            status=task.status,
            priority=task.priority,
            due_date=task.due_date,
        )


@dataclass(slots=True, frozen=True)
class CommentView:
    user: UserRef
    text: str
    created_at: float


@dataclass(slots=True, frozen=True)
class TimeEntryView:
    user: UserRef
    start_time: float
    end_time: float | None
    duration: int | None
    description: str


@dataclass(slots=True, frozen=True)
class TaskView:
    """
    A task with every reference resolved to display form.

    Built by TaskStore.materialize(); this is what callers show to people.
    """

    id: int
    title: str
    description: str
    project_id: str
    assigned_to: UserRef
    assigned_by: UserRef
    status: TaskStatus
    priority: TaskPriority
    due_date: float | None
    comments: list[CommentView]
    depends_on: list[TaskRef]
    blocks: list[TaskRef]
    time_entries: list[TimeEntryView]
    total_time_spent: int
    created_at: float
    updated_at: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
