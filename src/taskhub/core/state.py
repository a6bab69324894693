# src/taskhub/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .identity import Actor

if TYPE_CHECKING:
    from ..notifications.store import NotificationStore
    from ..tasks.task_service import TaskService
    from ..tasks.task_store import TaskStore


@dataclass
class AppState:
    """
    Everything a connector needs to serve one operator session.

    `actor` is the identity commands run as; it is passed explicitly into every
    TaskService call, never read from a global.
    """

    settings: Any

    task_store: TaskStore
    notifications: NotificationStore
    service: TaskService

    actor: Actor | None = None
    lock: threading.Lock = field(default_factory=threading.Lock)
