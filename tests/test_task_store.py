# tests/test_task_store.py

from __future__ import annotations

import pytest

from taskhub.core.errors import InvalidValue, NotFound, VersionConflict
from taskhub.tasks.task_models import Comment, TaskPriority, TaskStatus, TimeEntry
from taskhub.tasks.task_store import TaskStore

from .conftest import DUE


def test_add_task_defaults_and_roundtrip(task_store: TaskStore, make_task) -> None:
    task = make_task("Write docs")

    assert task.id > 0
    assert task.status == TaskStatus.TODO
    assert task.priority == TaskPriority.MEDIUM
    assert task.depends_on == []
    assert task.blocks == []
    assert task.time_entries == []
    assert task.total_time_spent == 0
    assert task.due_date == DUE
    assert task_store.count_tasks() == 1

    again = task_store.get_task(task.id)
    assert again.title == "Write docs"
    assert again.version == task.version


def test_add_task_rejects_blank_title(task_store: TaskStore) -> None:
    with pytest.raises(InvalidValue):
        task_store.add_task(
            title="   ",
            description="d",
            project_id="p1",
            assigned_to="e1",
            assigned_by="m1",
            due_date=DUE,
        )


def test_get_missing_task_raises_not_found(task_store: TaskStore) -> None:
    assert task_store.find_task(999) is None
    with pytest.raises(NotFound):
        task_store.get_task(999)
    with pytest.raises(NotFound):
        task_store.delete_task(999)


def test_replace_task_persists_nested_lists_and_bumps_version(task_store: TaskStore, make_task) -> None:
    task = make_task()
    v0 = task.version

    task.comments.append(Comment(user_id="e1", text="hi", created_at=1.0))
    task.time_entries.append(TimeEntry(user_id="e1", start_time=10.0, end_time=70.0, duration=1))
    task.total_time_spent = 1
    task.depends_on.append(42)
    saved = task_store.replace_task(task, expected_version=v0)

    assert saved.version == v0 + 1
    stored = task_store.get_task(task.id)
    assert stored.comments[0].text == "hi"
    assert stored.time_entries[0].duration == 1
    assert stored.time_entries[0].is_open is False
    assert stored.depends_on == [42]
    assert stored.total_time_spent == 1


def test_replace_task_with_stale_version_conflicts(task_store: TaskStore, make_task) -> None:
    task = make_task()
    first = task_store.get_task(task.id)
    second = task_store.get_task(task.id)

    first.title = "first writer"
    task_store.replace_task(first, expected_version=first.version)

    second.title = "second writer"
    with pytest.raises(VersionConflict):
        task_store.replace_task(second, expected_version=second.version)

    assert task_store.get_task(task.id).title == "first writer"


def test_list_by_project_and_assignee(task_store: TaskStore, make_task) -> None:
    a = make_task("A", project_id="p1")
    b = make_task("B", project_id="p1", assigned_to="e2")
    make_task("C", project_id="p2")

    in_p1 = task_store.list_by_project("p1")
    assert {t.id for t in in_p1} == {a.id, b.id}

    mine = task_store.list_by_assignee("e2")
    assert [t.id for t in mine] == [b.id]


def test_list_referencing_is_exact(task_store: TaskStore, make_task) -> None:
    t1 = make_task("one")
    blocked = make_task("blocked")
    holder = make_task("holder")

    # an id whose digits contain t1.id must not match it
    holder.depends_on.append(int(f"{t1.id}{t1.id}"))
    holder.blocks.append(blocked.id)
    task_store.replace_task(holder, expected_version=holder.version)

    assert {t.id for t in task_store.list_referencing(blocked.id)} == {holder.id}
    assert task_store.list_referencing(t1.id) == []


def test_task_refs_keeps_order_and_skips_missing(task_store: TaskStore, make_task) -> None:
    a = make_task("A")
    b = make_task("B")

    refs = task_store.task_refs([b.id, 999, a.id])
    assert [r.id for r in refs] == [b.id, a.id]
    assert refs[0].title == "B"


def test_materialize_resolves_users_and_tolerates_unknown(task_store: TaskStore, make_task) -> None:
    task = make_task()
    task.comments.append(Comment(user_id="ghost", text="boo", created_at=2.0))
    task = task_store.replace_task(task, expected_version=task.version)

    view = task_store.materialize(task)
    assert view.assigned_to.name == "Eve Employee"
    assert view.assigned_by.email == "max@example.com"
    assert view.comments[0].user.id == "ghost"
    assert view.comments[0].user.name == "ghost"
    assert view.to_dict()["assigned_to"]["id"] == "e1"


def test_user_directory_upsert_and_search(task_store: TaskStore) -> None:
    task_store.add_user(user_id="e1", name="Eve Renamed", email="eve@example.com", role="employee")
    assert task_store.get_user("e1").name == "Eve Renamed"
    assert task_store.get_user("nobody") is None

    found = task_store.search_users("max")
    assert [u.id for u in found] == ["m1"]

    by_email = task_store.search_users("example.com", limit=2)
    assert len(by_email) == 2


def test_search_users_requires_two_characters(task_store: TaskStore) -> None:
    with pytest.raises(InvalidValue):
        task_store.search_users("m")
