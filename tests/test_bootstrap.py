# tests/test_bootstrap.py

from __future__ import annotations

from types import SimpleNamespace

import pytest

from taskhub.cli.bootstrap import actor_for_user, create_initial_state
from taskhub.core.errors import NotFound
from taskhub.core.identity import Role
from taskhub.tasks.task_store import TaskStore


def test_create_initial_state_wires_stores(settings: SimpleNamespace) -> None:
    settings.data_dir = settings.data_dir / "nested"
    settings.tasks_db_path = settings.data_dir / "db" / "tasks.sqlite3"

    state = create_initial_state(settings=settings)

    assert settings.tasks_db_path.exists()
    assert state.actor is None
    assert state.task_store.count_tasks() == 0
    assert state.notifications.unread_count("anyone") == 0


def test_default_user_becomes_session_actor(settings: SimpleNamespace, task_store: TaskStore) -> None:
    settings.default_user_id = "m1"
    state = create_initial_state(settings=settings)

    assert state.actor is not None
    assert state.actor.role is Role.MANAGER


def test_unknown_default_user_is_ignored(settings: SimpleNamespace) -> None:
    settings.default_user_id = "ghost"
    assert create_initial_state(settings=settings).actor is None


def test_actor_for_user(task_store: TaskStore) -> None:
    actor = actor_for_user(task_store, "e1")
    assert actor.id == "e1"
    assert actor.name == "Eve Employee"
    assert actor.role is Role.EMPLOYEE
    with pytest.raises(NotFound):
        actor_for_user(task_store, "ghost")
