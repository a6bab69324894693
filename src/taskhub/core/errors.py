# src/taskhub/core/errors.py

"""
Error taxonomy for the task core.

Every error carries a stable `kind` so callers (console commands, tests, any future
HTTP layer) can branch on it without matching message text.
"""

from __future__ import annotations

from typing import Any


class TaskError(Exception):
    """Base class for all structured failures raised by the task core."""

    kind = "task_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            out["details"] = dict(self.details)
        return out


class NotFound(TaskError):
    kind = "not_found"


class PermissionDenied(TaskError):
    kind = "permission_denied"


class InvalidValue(TaskError):
    kind = "invalid_value"


class DuplicateEdge(TaskError):
    kind = "duplicate_edge"


class DependencyCycle(TaskError):
    kind = "dependency_cycle"


class ActiveTimerConflict(TaskError):
    kind = "active_timer_conflict"


class NoActiveTimer(TaskError):
    kind = "no_active_timer"


class PartialGraphInconsistency(TaskError):
    """
    A two-record graph write succeeded on one side only.

    details:
    - rolled_back: True if the first side was restored (graph is consistent again)
    - task_ids: records involved
    """

    kind = "partial_graph_inconsistency"


class ConcurrentModification(TaskError):
    kind = "concurrent_modification"


class VersionConflict(Exception):
    """
    Raised by the store when a compare-and-swap write loses the race.

    Internal: the service retries on it and converts exhaustion into
    ConcurrentModification.
    """

    def __init__(self, task_id: int, expected_version: int) -> None:
        super().__init__(f"task {task_id} changed (expected version {expected_version})")
        self.task_id = task_id
        self.expected_version = expected_version
