# src/taskhub/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage/notification delivery swappable and makes testing easier.
"""

from collections.abc import Callable
from typing import Any, Awaitable, Iterable, Protocol

Clock = Callable[[], float]
# Returns POSIX seconds; time.time in production, a controllable fake in tests.


class TaskRepo(Protocol):
    """
    Keyed task storage with per-record compare-and-swap.

    get_task raises NotFound; replace_task raises VersionConflict when the stored
    version moved on since the caller read it.
    """

    def add_task(
            self,
            *,
            title: str,
            description: str,
            project_id: str,
            assigned_to: str,
            assigned_by: str,
            due_date: float | None,
            status: Any = None,  # TaskStatus
            priority: Any = None,  # TaskPriority
    ) -> Any: ...

    def find_task(self, task_id: int) -> Any | None: ...
    def get_task(self, task_id: int) -> Any: ...
    def replace_task(self, task: Any, *, expected_version: int) -> Any: ...
    def delete_task(self, task_id: int) -> None: ...

    def list_by_project(self, project_id: str) -> list[Any]: ...
    def list_by_assignee(self, user_id: str) -> list[Any]: ...
    def list_referencing(self, task_id: int) -> list[Any]: ...

    # Projection (references -> display form)
    def task_refs(self, task_ids: Iterable[int]) -> list[Any]: ...
    def materialize(self, task: Any) -> Any: ...

    # User directory
    def get_user(self, user_id: str) -> Any | None: ...


class NotificationSink(Protocol):
    """
    Where the core hands domain events.

    Fire-and-forget from the core's perspective: delivery failures never fail a mutation.
    """

    def emit(self, event: Any) -> None: ...


class OutboundMessenger(Protocol):
    """
    Connector-side port: how the notification relay pushes text to a person.

    The connector decides how to interpret to_user_id (console prints it, a chat
    connector would pick a room).
    """

    def send_text(
            self,
            *,
            text: str,
            to_user_id: str | None = None,
    ) -> Awaitable[None]: ...
