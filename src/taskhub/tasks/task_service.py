# src/taskhub/tasks/task_service.py

"""
Task mutation service.

Every public method takes the acting user explicitly (Actor), consults the permission
policy, applies the change through a single-record CAS write (or the dependency/timer
managers), and returns the materialized task together with the domain events it
produced. Events are also handed to the notification sink; a sink failure is logged and
never fails the mutation.

Errors are TaskError subclasses and leave stored state as it was.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from ..core.errors import InvalidValue, NotFound, PartialGraphInconsistency, PermissionDenied
from ..core.identity import Actor, Role
from ..core.ports import Clock, NotificationSink, TaskRepo
from ..notifications.models import DomainEvent, NotificationKind
from . import permissions
from .atomic import DEFAULT_MAX_ATTEMPTS, mutate_task
from .dependencies import DependencyGraph, DependencyListing
from .permissions import Action
from .task_models import (
    Comment,
    Task,
    TaskPriority,
    TaskStatus,
    TaskView,
    TimeEntry,
    TimeEntryView,
)
from .time_tracking import TimeTracker

logger = logging.getLogger(__name__)

_REQUIRED_ON_CREATE = ("title", "description", "project_id", "assigned_to", "due_date")


@dataclass(slots=True, frozen=True)
class MutationResult:
    task: TaskView
    events: list[DomainEvent]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class DeletionResult:
    task_id: int
    title: str
    events: list[DomainEvent]


@dataclass(slots=True, frozen=True)
class TimerOutcome:
    entry: TimeEntry
    total_time_spent: int
    task: TaskView


@dataclass(slots=True, frozen=True)
class TimeSheetView:
    entries: list[TimeEntryView]
    total_time_spent: int


def parse_due_date(raw: Any) -> float:
    """
    Accept POSIX seconds, date/datetime objects or ISO strings.

    Naive datetimes and bare dates are taken as UTC.
    """
    if isinstance(raw, bool) or raw is None:
        raise InvalidValue("dueDate is required and must be a date", field="due_date", value=raw)
    if isinstance(raw, (int, float)):
        if not math.isfinite(raw):
            raise InvalidValue(f"Invalid due date {raw!r}", field="due_date", value=raw)
        return float(raw)
    if isinstance(raw, datetime):
        dt = raw if raw.tzinfo else raw.replace(tzinfo=UTC)
        return dt.timestamp()
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day, tzinfo=UTC).timestamp()
    if isinstance(raw, str):
        s = raw.strip()
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            raise InvalidValue(f"Invalid due date {raw!r}", field="due_date", value=raw) from None
        return parse_due_date(dt)
    raise InvalidValue(f"Invalid due date {raw!r}", field="due_date", value=raw)


def _required_text(fields: Mapping[str, Any], name: str) -> str:
    value = fields.get(name)
    if not isinstance(value, str):
        raise InvalidValue(f"{name} must be a non-empty string", field=name, value=value)
    if not value.strip():
        raise InvalidValue(f"{name} is required", field=name)
    return value.strip()


class TaskService:
    def __init__(
            self,
            repo: TaskRepo,
            sink: NotificationSink | None = None,
            *,
            clock: Clock = time.time,
            reject_dependency_cycles: bool = False,
            max_write_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._repo = repo
        self._sink = sink
        self._clock = clock
        self._max_attempts = max_write_attempts
        self.graph = DependencyGraph(
            repo, reject_cycles=reject_dependency_cycles, max_attempts=max_write_attempts
        )
        self.timers = TimeTracker(repo, clock=clock, max_attempts=max_write_attempts)

    # ---- helpers ----

    def _mutate(self, task_id: int, mutation) -> Task:
        return mutate_task(self._repo, task_id, mutation, max_attempts=self._max_attempts)

    def _view(self, task: Task) -> TaskView:
        return self._repo.materialize(task)

    def _publish(self, events: Iterable[DomainEvent]) -> list[DomainEvent]:
        out = list(events)
        if self._sink is None:
            return out
        for event in out:
            try:
                self._sink.emit(event)
            except Exception:
                logger.exception(
                    "Notification sink failed kind=%s target=%s task=%s",
                    event.kind.value,
                    event.target_user_id,
                    event.related_task_id,
                )
        return out

    def _require_user(self, user_id: str, field_name: str) -> str:
        if self._repo.get_user(user_id) is None:
            raise NotFound("User not found", field=field_name, user_id=user_id)
        return user_id

    def _coerce_fields(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Validate and convert already-permitted update fields to model types."""
        out: dict[str, Any] = {}
        for name, value in fields.items():
            if name in ("title", "description", "project_id"):
                out[name] = _required_text(fields, name)
            elif name == "assigned_to":
                out[name] = self._require_user(_required_text(fields, name), name)
            elif name == "status":
                out[name] = TaskStatus.parse(value)
            elif name == "priority":
                out[name] = TaskPriority.parse(value)
            elif name == "due_date":
                out[name] = parse_due_date(value)
        return out

    # ---- queries ----

    def get_task(self, actor: Actor, task_id: int) -> TaskView:
        task = self._repo.get_task(task_id)
        permissions.check(actor.role, actor.id, Action.READ, task)
        return self._view(task)

    def list_project_tasks(self, actor: Actor, project_id: str) -> list[TaskView]:
        tasks = self._repo.list_by_project(project_id)
        return [self._view(t) for t in tasks]

    def list_user_tasks(self, actor: Actor) -> list[TaskView]:
        return [self._view(t) for t in self._repo.list_by_assignee(actor.id)]

    def list_employee_tasks(self, actor: Actor) -> list[TaskView]:
        """Dashboard variant of list_user_tasks that only employees may call."""
        if actor.role is not Role.EMPLOYEE:
            raise PermissionDenied("This endpoint is only for employees", role=actor.role.value)
        return self.list_user_tasks(actor)

    def list_dependencies(self, actor: Actor, task_id: int) -> DependencyListing:
        task = self._repo.get_task(task_id)
        permissions.check(actor.role, actor.id, Action.READ, task)
        return self.graph.list_dependencies(task_id)

    def list_time_entries(self, actor: Actor, task_id: int) -> TimeSheetView:
        task = self._repo.get_task(task_id)
        permissions.check(actor.role, actor.id, Action.READ, task)
        view = self._view(task)
        return TimeSheetView(entries=view.time_entries, total_time_spent=view.total_time_spent)

    # ---- creation / update ----

    def create_task(self, actor: Actor, fields: Mapping[str, Any]) -> MutationResult:
        permissions.check(actor.role, actor.id, Action.CREATE)

        missing = [name for name in _REQUIRED_ON_CREATE if fields.get(name) in (None, "")]
        if missing:
            raise InvalidValue(f"Missing required fields: {', '.join(missing)}", fields=missing)

        values = self._coerce_fields(
            {k: v for k, v in fields.items() if k in permissions.UPDATABLE_FIELDS}
        )
        task = self._repo.add_task(
            title=values["title"],
            description=values["description"],
            project_id=values["project_id"],
            assigned_to=values["assigned_to"],
            assigned_by=actor.id,
            due_date=values["due_date"],
            status=values.get("status", TaskStatus.TODO),
            priority=values.get("priority", TaskPriority.MEDIUM),
        )
        logger.info("Task created id=%s by=%s assigned_to=%s", task.id, actor.id, task.assigned_to)

        events: list[DomainEvent] = []
        if task.assigned_to != actor.id:
            events.append(_assigned_event(actor, task))
        return MutationResult(task=self._view(task), events=self._publish(events))

    def apply_update(self, actor: Actor, task_id: int, requested: Mapping[str, Any]) -> MutationResult:
        """
        Apply a partial update.

        Fields the actor's role may not write are dropped (reported in metadata["dropped"]);
        an out-of-range status or priority rejects the whole request.
        """
        before: dict[str, Any] = {}
        dropped: tuple[str, ...] = ()

        def update(t: Task) -> bool:
            nonlocal dropped
            decision = permissions.can_mutate(actor.role, actor.id, t, requested)
            dropped = decision.dropped
            values = self._coerce_fields(decision.allowed)

            before.clear()
            before.update(status=t.status, assigned_to=t.assigned_to)

            changed = False
            for name, value in values.items():
                if getattr(t, name) != value:
                    setattr(t, name, value)
                    changed = True
            return changed

        task = self._mutate(task_id, update)

        events: list[DomainEvent] = []
        old_status = before.get("status", task.status)
        if old_status != task.status:
            logger.info("Task %s status %s -> %s by %s", task.id, old_status, task.status, actor.id)
            events.extend(_status_events(actor, task, old_status))
        if before.get("assigned_to", task.assigned_to) != task.assigned_to and task.assigned_to != actor.id:
            events.append(_assigned_event(actor, task))

        return MutationResult(
            task=self._view(task),
            events=self._publish(events),
            metadata={"dropped": list(dropped)},
        )

    def update_status(self, actor: Actor, task_id: int, status: Any) -> MutationResult:
        """Status-only update; status is mandatory here for every role."""
        old: list[TaskStatus] = []

        def set_status(t: Task) -> bool:
            permissions.check(actor.role, actor.id, Action.UPDATE_STATUS, t)
            wanted = TaskStatus.parse(status)
            old[:] = [t.status]
            if t.status == wanted:
                return False
            t.status = wanted
            return True

        task = self._mutate(task_id, set_status)
        old_status = old[0] if old else task.status
        new_status = task.status

        events: list[DomainEvent] = []
        if old_status != new_status and task.assigned_by != actor.id:
            events.append(
                DomainEvent(
                    kind=NotificationKind.TASK_STATUS_UPDATED,
                    target_user_id=task.assigned_by,
                    title="Task Status Changed",
                    message=(
                        f'{actor.name} changed task "{task.title}" from {old_status} to {new_status}'
                    ),
                    related_task_id=task.id,
                    related_project_id=task.project_id,
                    metadata={
                        "old_status": str(old_status),
                        "new_status": str(new_status),
                        "updated_by": actor.name,
                    },
                )
            )

        return MutationResult(
            task=self._view(task),
            events=self._publish(events),
            metadata={"old_status": str(old_status), "updated_by": actor.name},
        )

    # ---- comments ----

    def add_comment(self, actor: Actor, task_id: int, text: str) -> MutationResult:
        body = (text or "").strip()
        if not body:
            raise InvalidValue("Comment text is required", field="text")

        def append(t: Task) -> bool:
            permissions.check(actor.role, actor.id, Action.COMMENT, t)
            t.comments.append(Comment(user_id=actor.id, text=body, created_at=self._clock()))
            return True

        task = self._mutate(task_id, append)
        logger.info("Comment added task=%s by=%s", task.id, actor.id)

        targets: list[str] = []
        if task.assigned_to != actor.id:
            targets.append(task.assigned_to)
        if task.assigned_by != actor.id and task.assigned_by != task.assigned_to:
            targets.append(task.assigned_by)

        events = [
            DomainEvent(
                kind=NotificationKind.COMMENT_ADDED,
                target_user_id=uid,
                title="New Comment",
                message=f"{actor.name} commented on task: {task.title}",
                related_task_id=task.id,
                related_project_id=task.project_id,
            )
            for uid in targets
        ]
        return MutationResult(task=self._view(task), events=self._publish(events))

    # ---- deletion ----

    def delete_task(self, actor: Actor, task_id: int) -> DeletionResult:
        """
        Delete a task after removing it from every neighbour's dependency lists.

        If some neighbour cannot be cleaned the task is kept and
        PartialGraphInconsistency names the neighbours still referencing it.
        """
        permissions.check(actor.role, actor.id, Action.DELETE)
        task = self._repo.get_task(task_id)

        failed = self.graph.detach(task)
        if failed:
            raise PartialGraphInconsistency(
                "Task not deleted: dependency links could not be cleaned",
                task_ids=failed,
                rolled_back=False,
            )

        self._repo.delete_task(task.id)
        logger.info("Task deleted id=%s by=%s", task.id, actor.id)

        events: list[DomainEvent] = []
        if task.assigned_to != actor.id:
            events.append(
                DomainEvent(
                    kind=NotificationKind.TASK_DELETED,
                    target_user_id=task.assigned_to,
                    title="Task Deleted",
                    message=f"{actor.name} deleted task: {task.title}",
                    related_project_id=task.project_id,
                )
            )
        return DeletionResult(task_id=task.id, title=task.title, events=self._publish(events))

    # ---- dependencies ----

    def add_dependency(self, actor: Actor, task_id: int, depends_on_id: int) -> MutationResult:
        permissions.check(actor.role, actor.id, Action.EDIT_DEPENDENCIES)

        task = self.graph.add_dependency(task_id, depends_on_id)
        blocking = self._repo.find_task(depends_on_id)
        blocking_title = blocking.title if blocking is not None else str(depends_on_id)

        events: list[DomainEvent] = []
        if task.assigned_to != actor.id:
            events.append(
                DomainEvent(
                    kind=NotificationKind.DEPENDENCY_ADDED,
                    target_user_id=task.assigned_to,
                    title="Task Dependency Added",
                    message=f'Task "{task.title}" now depends on "{blocking_title}"',
                    related_task_id=task.id,
                    related_project_id=task.project_id,
                    metadata={"depends_on": int(depends_on_id)},
                )
            )
        return MutationResult(task=self._view(task), events=self._publish(events))

    def remove_dependency(self, actor: Actor, task_id: int, depends_on_id: int) -> MutationResult:
        permissions.check(actor.role, actor.id, Action.EDIT_DEPENDENCIES)
        task = self.graph.remove_dependency(task_id, depends_on_id)
        return MutationResult(task=self._view(task), events=[])

    # ---- time tracking ----

    def start_timer(self, actor: Actor, task_id: int, description: str | None = None) -> TimerOutcome:
        result = self.timers.start_timer(
            task_id,
            actor.id,
            description,
            authorize=lambda t: permissions.check(actor.role, actor.id, Action.START_TIMER, t),
        )
        return TimerOutcome(
            entry=result.entry,
            total_time_spent=result.task.total_time_spent,
            task=self._view(result.task),
        )

    def stop_timer(self, actor: Actor, task_id: int) -> TimerOutcome:
        result = self.timers.stop_timer(
            task_id,
            actor.id,
            authorize=lambda t: permissions.check(actor.role, actor.id, Action.STOP_TIMER, t),
        )
        return TimerOutcome(
            entry=result.entry,
            total_time_spent=result.task.total_time_spent,
            task=self._view(result.task),
        )


def _assigned_event(actor: Actor, task: Task) -> DomainEvent:
    return DomainEvent(
        kind=NotificationKind.TASK_ASSIGNED,
        target_user_id=task.assigned_to,
        title="New Task Assigned",
        message=f"{actor.name} assigned you a new task: {task.title}",
        related_task_id=task.id,
        related_project_id=task.project_id,
    )


def _status_events(actor: Actor, task: Task, old_status: TaskStatus) -> list[DomainEvent]:
    """
    Status change fan-out:
    - the assigner hears about it unless they made the change
    - for manager/admin changes the assignee hears too (unless actor or assigner)
    """
    meta = {
        "old_status": str(old_status),
        "new_status": str(task.status),
        "updated_by": actor.name,
    }
    events: list[DomainEvent] = []

    if task.assigned_by != actor.id:
        events.append(
            DomainEvent(
                kind=NotificationKind.TASK_STATUS_UPDATED,
                target_user_id=task.assigned_by,
                title="Task Status Updated",
                message=(
                    f'{actor.name} updated task "{task.title}" from {old_status} to {task.status}'
                ),
                related_task_id=task.id,
                related_project_id=task.project_id,
                metadata=dict(meta),
            )
        )

    if actor.role.is_privileged and task.assigned_to not in (actor.id, task.assigned_by):
        events.append(
            DomainEvent(
                kind=NotificationKind.TASK_UPDATED,
                target_user_id=task.assigned_to,
                title="Task Status Updated",
                message=f'{actor.name} updated task "{task.title}" to {task.status}',
                related_task_id=task.id,
                related_project_id=task.project_id,
                metadata=dict(meta),
            )
        )

    return events
