# tests/test_time_tracking.py

from __future__ import annotations

import pytest

from taskhub.core.errors import ActiveTimerConflict, NoActiveTimer
from taskhub.tasks.task_models import DEFAULT_TIME_ENTRY_DESCRIPTION
from taskhub.tasks.task_store import TaskStore
from taskhub.tasks.time_tracking import TimeTracker, elapsed_minutes

from .fakes import FakeClock


@pytest.mark.parametrize(
    ("seconds", "minutes"),
    [(0, 0), (29, 0), (30, 1), (89, 1), (90, 2), (3600, 60), (-120, 0)],
)
def test_elapsed_minutes_rounds_half_up(seconds: float, minutes: int) -> None:
    assert elapsed_minutes(1000.0, 1000.0 + seconds) == minutes


def test_start_then_stop_records_duration(task_store: TaskStore, make_task, clock: FakeClock) -> None:
    task = make_task()
    tracker = TimeTracker(task_store, clock=clock)

    started = tracker.start_timer(task.id, "e1")
    assert started.entry.is_open
    assert started.entry.description == DEFAULT_TIME_ENTRY_DESCRIPTION

    clock.advance(10 * 60 + 31)
    stopped = tracker.stop_timer(task.id, "e1")

    assert stopped.entry.duration == 11
    assert stopped.entry.end_time == clock.now
    assert stopped.task.total_time_spent == 11
    assert task_store.get_task(task.id).total_time_spent == 11


def test_second_start_conflicts(task_store: TaskStore, make_task, clock: FakeClock) -> None:
    task = make_task()
    tracker = TimeTracker(task_store, clock=clock)
    tracker.start_timer(task.id, "e1", "coding")

    with pytest.raises(ActiveTimerConflict):
        tracker.start_timer(task.id, "e1")

    assert len(task_store.get_task(task.id).time_entries) == 1


def test_stop_without_running_timer(task_store: TaskStore, make_task, clock: FakeClock) -> None:
    task = make_task()
    tracker = TimeTracker(task_store, clock=clock)

    with pytest.raises(NoActiveTimer):
        tracker.stop_timer(task.id, "e1")

    tracker.start_timer(task.id, "e1")
    clock.advance(60)
    tracker.stop_timer(task.id, "e1")
    with pytest.raises(NoActiveTimer):
        tracker.stop_timer(task.id, "e1")


def test_timers_are_per_user_and_total_sums_closed_entries(
        task_store: TaskStore, make_task, clock: FakeClock
) -> None:
    task = make_task()
    tracker = TimeTracker(task_store, clock=clock)

    tracker.start_timer(task.id, "e1")
    tracker.start_timer(task.id, "m1")
    clock.advance(5 * 60)
    tracker.stop_timer(task.id, "e1")
    clock.advance(5 * 60)
    result = tracker.stop_timer(task.id, "m1")

    assert result.entry.duration == 10
    assert result.task.total_time_spent == 15

    # a new session on the same task adds to the total
    tracker.start_timer(task.id, "e1")
    clock.advance(2 * 60)
    assert tracker.stop_timer(task.id, "e1").task.total_time_spent == 17

    sheet = tracker.list_time_entries(task.id)
    assert len(sheet.entries) == 3
    assert sheet.total_time_spent == 17
    assert all(not e.is_open for e in sheet.entries)


def test_open_entry_does_not_count_toward_total(task_store: TaskStore, make_task, clock: FakeClock) -> None:
    task = make_task()
    tracker = TimeTracker(task_store, clock=clock)

    tracker.start_timer(task.id, "e1")
    clock.advance(3 * 60)
    tracker.stop_timer(task.id, "e1")
    tracker.start_timer(task.id, "e2")
    clock.advance(60 * 60)

    sheet = tracker.list_time_entries(task.id)
    assert sheet.total_time_spent == 3
    assert sheet.entries[-1].is_open
