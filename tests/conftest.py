# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskhub.core.identity import Actor, Role
from taskhub.core.state import AppState
from taskhub.notifications.store import NotificationStore
from taskhub.tasks.task_models import Task
from taskhub.tasks.task_service import TaskService
from taskhub.tasks.task_store import TaskStore

from .fakes import FakeClock, RecordingSink

DUE = 1_767_225_600.0  # 2026-01-01T00:00:00Z


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap code.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskhub-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        notifications_db_path=tmp_path / "notifications.sqlite3",
        console_enabled=False,
        relay_enabled=False,
        relay_interval_seconds=0.01,
        relay_batch_limit=10,
        max_write_attempts=3,
        reject_dependency_cycles=False,
        default_user_id="",
    )


@pytest.fixture()
def task_store(settings: SimpleNamespace) -> TaskStore:
    store = TaskStore(settings.tasks_db_path)
    store.add_user(user_id="a1", name="Ada Admin", email="ada@example.com", role="admin")
    store.add_user(user_id="m1", name="Max Manager", email="max@example.com", role="manager")
    store.add_user(user_id="e1", name="Eve Employee", email="eve@example.com", role="employee")
    store.add_user(user_id="e2", name="Ed Employee", email="ed@example.com", role="employee")
    return store


@pytest.fixture()
def notifications(settings: SimpleNamespace) -> NotificationStore:
    return NotificationStore(settings.notifications_db_path)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def service(task_store: TaskStore, sink: RecordingSink, clock: FakeClock) -> TaskService:
    return TaskService(task_store, sink, clock=clock)


@pytest.fixture()
def admin() -> Actor:
    return Actor(id="a1", role=Role.ADMIN, name="Ada Admin")


@pytest.fixture()
def manager() -> Actor:
    return Actor(id="m1", role=Role.MANAGER, name="Max Manager")


@pytest.fixture()
def employee() -> Actor:
    return Actor(id="e1", role=Role.EMPLOYEE, name="Eve Employee")


@pytest.fixture()
def other_employee() -> Actor:
    return Actor(id="e2", role=Role.EMPLOYEE, name="Ed Employee")


@pytest.fixture()
def make_task(task_store: TaskStore):
    """Insert a task assigned by m1 (to e1 unless told otherwise)."""

    def _make(title: str = "Task", *, assigned_to: str = "e1", project_id: str = "p1") -> Task:
        return task_store.add_task(
            title=title,
            description=f"{title} description",
            project_id=project_id,
            assigned_to=assigned_to,
            assigned_by="m1",
            due_date=DUE,
        )

    return _make


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    task_store: TaskStore,
    notifications: NotificationStore,
) -> AppState:
    """
    AppState wired with real SQLite stores.

    The service writes notifications into the real NotificationStore here, so command
    tests can check the inbox end to end.
    """
    return AppState(
        settings=settings,
        task_store=task_store,
        notifications=notifications,
        service=TaskService(task_store, notifications),
    )
