# src/taskhub/tasks/permissions.py

"""
Permission policy.

Pure functions over (role, actor id, task, request). No storage access, no side effects:
the mutation service asks, this module answers or raises PermissionDenied.

Decision table (row = action, column = role):

    action             admin  manager  employee
    create             any    any      deny
    update             any    any      assigned (status only)
    update_status      any    any      assigned
    delete             any    any      deny
    edit_dependencies  any    any      deny
    comment            any    any      assigned
    start_timer        any    any      assigned
    stop_timer         any    any      assigned
    read               any    any      any
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..core.errors import PermissionDenied
from ..core.identity import Role
from .task_models import Task, TaskStatus

logger = logging.getLogger(__name__)


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    UPDATE_STATUS = "update_status"
    DELETE = "delete"
    EDIT_DEPENDENCIES = "edit_dependencies"
    COMMENT = "comment"
    START_TIMER = "start_timer"
    STOP_TIMER = "stop_timer"
    READ = "read"


class Grant(str, Enum):
    ANY = "any"
    ASSIGNED = "assigned"
    DENY = "deny"


_TABLE: dict[Action, dict[Role, Grant]] = {
    Action.CREATE: {Role.ADMIN: Grant.ANY, Role.MANAGER: Grant.ANY, Role.EMPLOYEE: Grant.DENY},
    Action.UPDATE: {Role.ADMIN: Grant.ANY, Role.MANAGER: Grant.ANY, Role.EMPLOYEE: Grant.ASSIGNED},
    Action.UPDATE_STATUS: {Role.ADMIN: Grant.ANY, Role.MANAGER: Grant.ANY, Role.EMPLOYEE: Grant.ASSIGNED},
    Action.DELETE: {Role.ADMIN: Grant.ANY, Role.MANAGER: Grant.ANY, Role.EMPLOYEE: Grant.DENY},
    Action.EDIT_DEPENDENCIES: {Role.ADMIN: Grant.ANY, Role.MANAGER: Grant.ANY, Role.EMPLOYEE: Grant.DENY},
    Action.COMMENT: {Role.ADMIN: Grant.ANY, Role.MANAGER: Grant.ANY, Role.EMPLOYEE: Grant.ASSIGNED},
    Action.START_TIMER: {Role.ADMIN: Grant.ANY, Role.MANAGER: Grant.ANY, Role.EMPLOYEE: Grant.ASSIGNED},
    Action.STOP_TIMER: {Role.ADMIN: Grant.ANY, Role.MANAGER: Grant.ANY, Role.EMPLOYEE: Grant.ASSIGNED},
    Action.READ: {Role.ADMIN: Grant.ANY, Role.MANAGER: Grant.ANY, Role.EMPLOYEE: Grant.ANY},
}

_DENY_MESSAGES: dict[Action, str] = {
    Action.CREATE: "You don't have permission to create tasks",
    Action.UPDATE: "You can only update tasks assigned to you",
    Action.UPDATE_STATUS: "You can only update tasks assigned to you",
    Action.DELETE: "You don't have permission to delete tasks",
    Action.EDIT_DEPENDENCIES: "You don't have permission to change task dependencies",
    Action.COMMENT: "You can only comment on tasks assigned to you",
    Action.START_TIMER: "You can only track time on tasks assigned to you",
    Action.STOP_TIMER: "You can only stop timers on tasks assigned to you",
    Action.READ: "You don't have permission to view this task",
}

# Fields a generic update may touch at all. Graph, time-tracking and comment fields have
# dedicated operations and are never written through an update.
UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {"title", "description", "project_id", "assigned_to", "status", "priority", "due_date"}
)

_ROLE_FIELDS: dict[Role, frozenset[str]] = {
    Role.ADMIN: UPDATABLE_FIELDS,
    Role.MANAGER: UPDATABLE_FIELDS,
    Role.EMPLOYEE: frozenset({"status"}),
}


@dataclass(slots=True, frozen=True)
class PermissionDecision:
    allowed: dict[str, Any]
    dropped: tuple[str, ...]


def check(role: Role, actor_id: str, action: Action, task: Task | None = None) -> None:
    """Raise PermissionDenied unless `role`/`actor_id` may perform `action` on `task`."""
    grant = _TABLE[action][role]

    if grant is Grant.ANY:
        return

    if grant is Grant.ASSIGNED and task is not None and task.assigned_to == actor_id:
        return

    logger.info(
        "Permission denied action=%s role=%s actor=%s task=%s",
        action.value,
        role.value,
        actor_id,
        task.id if task is not None else None,
    )
    raise PermissionDenied(
        _DENY_MESSAGES[action],
        action=action.value,
        role=role.value,
        task_id=task.id if task is not None else None,
    )


def can_mutate(
        role: Role,
        actor_id: str,
        task: Task,
        fields_requested: Mapping[str, Any],
) -> PermissionDecision:
    """
    Resolve which of the requested fields `role` may write on `task`.

    - ownership is checked first (PermissionDenied for an employee on someone else's task)
    - fields outside the role's set are dropped, not rejected
    - a status outside the enum raises InvalidValue, for every role
    """
    check(role, actor_id, Action.UPDATE, task)

    permitted = _ROLE_FIELDS[role]
    allowed: dict[str, Any] = {}
    dropped: list[str] = []
    for name, value in fields_requested.items():
        if name in permitted:
            allowed[name] = value
        else:
            dropped.append(name)

    if "status" in allowed:
        TaskStatus.parse(allowed["status"])

    if dropped:
        logger.debug(
            "Dropping fields %s for role=%s actor=%s task=%s",
            dropped,
            role.value,
            actor_id,
            task.id,
        )

    return PermissionDecision(allowed=allowed, dropped=tuple(dropped))
