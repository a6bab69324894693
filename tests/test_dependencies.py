# tests/test_dependencies.py

from __future__ import annotations

import pytest

from taskhub.core.errors import (
    DependencyCycle,
    DuplicateEdge,
    InvalidValue,
    NotFound,
    PartialGraphInconsistency,
)
from taskhub.tasks.dependencies import DependencyGraph
from taskhub.tasks.task_store import TaskStore

from .fakes import FlakyTaskStore


def _edges(store: TaskStore, task_id: int) -> tuple[list[int], list[int]]:
    t = store.get_task(task_id)
    return t.depends_on, t.blocks


def test_add_dependency_writes_both_sides(task_store: TaskStore, make_task) -> None:
    a = make_task("A")
    b = make_task("B")
    graph = DependencyGraph(task_store)

    graph.add_dependency(a.id, b.id)

    assert _edges(task_store, a.id) == ([b.id], [])
    assert _edges(task_store, b.id) == ([], [a.id])

    listing = graph.list_dependencies(a.id)
    assert [r.title for r in listing.depends_on] == ["B"]
    assert graph.list_dependencies(b.id).blocks[0].id == a.id


def test_duplicate_edge_is_rejected_and_nothing_changes(task_store: TaskStore, make_task) -> None:
    a = make_task("A")
    b = make_task("B")
    graph = DependencyGraph(task_store)
    graph.add_dependency(a.id, b.id)
    version = task_store.get_task(a.id).version

    with pytest.raises(DuplicateEdge):
        graph.add_dependency(a.id, b.id)

    assert _edges(task_store, a.id) == ([b.id], [])
    assert _edges(task_store, b.id) == ([], [a.id])
    assert task_store.get_task(a.id).version == version


def test_self_dependency_and_missing_endpoints(task_store: TaskStore, make_task) -> None:
    a = make_task("A")
    graph = DependencyGraph(task_store)

    with pytest.raises(InvalidValue):
        graph.add_dependency(a.id, a.id)
    with pytest.raises(NotFound):
        graph.add_dependency(a.id, 999)
    with pytest.raises(NotFound):
        graph.add_dependency(999, a.id)

    assert _edges(task_store, a.id) == ([], [])


def test_remove_dependency_clears_both_sides_and_is_idempotent(task_store: TaskStore, make_task) -> None:
    a = make_task("A")
    b = make_task("B")
    graph = DependencyGraph(task_store)
    graph.add_dependency(a.id, b.id)

    graph.remove_dependency(a.id, b.id)
    assert _edges(task_store, a.id) == ([], [])
    assert _edges(task_store, b.id) == ([], [])

    graph.remove_dependency(a.id, b.id)
    graph.remove_dependency(a.id, 999)
    assert _edges(task_store, a.id) == ([], [])


def test_cycles_are_accepted_by_default(task_store: TaskStore, make_task) -> None:
    a = make_task("A")
    b = make_task("B")
    graph = DependencyGraph(task_store)

    graph.add_dependency(a.id, b.id)
    graph.add_dependency(b.id, a.id)

    assert _edges(task_store, a.id) == ([b.id], [b.id])
    assert graph.would_create_cycle(a.id, b.id)


def test_cycle_check_when_enabled(task_store: TaskStore, make_task) -> None:
    a = make_task("A")
    b = make_task("B")
    c = make_task("C")
    graph = DependencyGraph(task_store, reject_cycles=True)

    graph.add_dependency(a.id, b.id)
    graph.add_dependency(b.id, c.id)

    with pytest.raises(DependencyCycle):
        graph.add_dependency(c.id, a.id)

    assert _edges(task_store, c.id) == ([], [b.id])
    assert _edges(task_store, a.id) == ([b.id], [])


def test_failed_symmetric_write_is_rolled_back(task_store: TaskStore, make_task) -> None:
    a = make_task("A")
    b = make_task("B")
    flaky = FlakyTaskStore(task_store)
    flaky.fail_writes.add(b.id)
    graph = DependencyGraph(flaky)

    with pytest.raises(PartialGraphInconsistency) as ei:
        graph.add_dependency(a.id, b.id)

    assert ei.value.details["rolled_back"] is True
    assert _edges(task_store, a.id) == ([], [])
    assert _edges(task_store, b.id) == ([], [])


def test_failed_symmetric_removal_restores_forward_edge(task_store: TaskStore, make_task) -> None:
    a = make_task("A")
    b = make_task("B")
    DependencyGraph(task_store).add_dependency(a.id, b.id)

    flaky = FlakyTaskStore(task_store)
    flaky.fail_writes.add(b.id)

    with pytest.raises(PartialGraphInconsistency):
        DependencyGraph(flaky).remove_dependency(a.id, b.id)

    assert _edges(task_store, a.id) == ([b.id], [])
    assert _edges(task_store, b.id) == ([], [a.id])


def test_detach_strips_every_neighbour(task_store: TaskStore, make_task) -> None:
    a = make_task("A")
    b = make_task("B")
    c = make_task("C")
    graph = DependencyGraph(task_store)
    graph.add_dependency(a.id, b.id)
    graph.add_dependency(c.id, b.id)
    graph.add_dependency(b.id, c.id)

    failed = graph.detach(task_store.get_task(b.id))

    assert failed == []
    assert _edges(task_store, a.id) == ([], [])
    assert _edges(task_store, c.id) == ([], [])


def test_detach_reports_neighbours_it_could_not_clean(task_store: TaskStore, make_task) -> None:
    a = make_task("A")
    b = make_task("B")
    DependencyGraph(task_store).add_dependency(a.id, b.id)

    flaky = FlakyTaskStore(task_store)
    flaky.fail_writes.add(a.id)

    assert DependencyGraph(flaky).detach(task_store.get_task(b.id)) == [a.id]
