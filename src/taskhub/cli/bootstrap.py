# src/taskhub/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete stores and the task service into AppState,
- resolves the session identity (optional default user).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.errors import InvalidValue, NotFound
from ..core.identity import Actor, Role
from ..core.state import AppState
from ..notifications.store import NotificationStore
from ..tasks.task_service import TaskService
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.notifications_db_path.parent.mkdir(parents=True, exist_ok=True)


def actor_for_user(task_store: TaskStore, user_id: str) -> Actor:
    """Build the session Actor from a user directory entry."""
    user = task_store.get_user(user_id)
    if user is None:
        raise NotFound("User not found", user_id=user_id)
    return Actor(id=user.id, role=Role.parse(user.role), name=user.name)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    task_store = TaskStore(settings.tasks_db_path)
    notifications = NotificationStore(settings.notifications_db_path)
    service = TaskService(
        task_store,
        notifications,
        reject_dependency_cycles=settings.reject_dependency_cycles,
        max_write_attempts=settings.max_write_attempts,
    )

    state = AppState(
        settings=settings,
        task_store=task_store,
        notifications=notifications,
        service=service,
    )

    default_user = (getattr(settings, "default_user_id", "") or "").strip()
    if default_user:
        try:
            state.actor = actor_for_user(task_store, default_user)
            logger.info("Session user: %s (%s)", state.actor.name, state.actor.role.value)
        except (NotFound, InvalidValue):
            logger.warning("Default user %r is not usable; use /login.", default_user)

    return state
