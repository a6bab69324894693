# src/taskhub/tasks/time_tracking.py

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from ..core.errors import ActiveTimerConflict, NoActiveTimer
from ..core.ports import Clock, TaskRepo
from .atomic import DEFAULT_MAX_ATTEMPTS, mutate_task
from .task_models import DEFAULT_TIME_ENTRY_DESCRIPTION, Task, TimeEntry

logger = logging.getLogger(__name__)

Guard = Callable[[Task], None]
# Raises to veto the write; runs against the freshly read task inside each CAS attempt.


def elapsed_minutes(start_time: float, end_time: float) -> int:
    """
    Whole minutes between two POSIX timestamps, rounded half-up.

    Negative spans (clock moved backwards) count as 0.
    """
    minutes = max(0.0, float(end_time) - float(start_time)) / 60.0
    return int(math.floor(minutes + 0.5))


def total_minutes(entries: list[TimeEntry]) -> int:
    return sum(e.duration or 0 for e in entries)


@dataclass(slots=True, frozen=True)
class TimerResult:
    task: Task
    entry: TimeEntry


@dataclass(slots=True, frozen=True)
class TimeSheet:
    entries: list[TimeEntry]
    total_time_spent: int


class TimeTracker:
    """
    Start/stop timers per (task, user).

    A running timer is only data: an entry without end_time. Nothing ticks in the
    background, and an entry nobody stops stays open.
    """

    def __init__(
            self,
            repo: TaskRepo,
            *,
            clock: Clock = time.time,
            max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._repo = repo
        self._clock = clock
        self._max_attempts = max_attempts

    def start_timer(
            self,
            task_id: int,
            user_id: str,
            description: str | None = None,
            *,
            authorize: Guard | None = None,
    ) -> TimerResult:
        desc = (description or "").strip() or DEFAULT_TIME_ENTRY_DESCRIPTION
        started: TimeEntry | None = None

        def start(t: Task) -> bool:
            nonlocal started
            if authorize is not None:
                authorize(t)
            if t.open_entry_for(user_id) is not None:
                raise ActiveTimerConflict(
                    "Timer already running for this task", task_id=t.id, user_id=user_id
                )
            started = TimeEntry(user_id=user_id, start_time=self._clock(), description=desc)
            t.time_entries.append(started)
            return True

        task = mutate_task(self._repo, task_id, start, max_attempts=self._max_attempts)
        if started is None:
            raise RuntimeError("start_timer mutation did not run")
        logger.info("Timer started task=%s user=%s", task_id, user_id)
        return TimerResult(task=task, entry=started)

    def stop_timer(self, task_id: int, user_id: str, *, authorize: Guard | None = None) -> TimerResult:
        stopped: TimeEntry | None = None

        def stop(t: Task) -> bool:
            nonlocal stopped
            if authorize is not None:
                authorize(t)
            entry = t.open_entry_for(user_id)
            if entry is None:
                raise NoActiveTimer("No active timer found", task_id=t.id, user_id=user_id)
            entry.end_time = self._clock()
            entry.duration = elapsed_minutes(entry.start_time, entry.end_time)
            t.total_time_spent = total_minutes(t.time_entries)
            stopped = entry
            return True

        task = mutate_task(self._repo, task_id, stop, max_attempts=self._max_attempts)
        if stopped is None:
            raise RuntimeError("stop_timer mutation did not run")
        logger.info(
            "Timer stopped task=%s user=%s duration=%smin total=%smin",
            task_id,
            user_id,
            stopped.duration,
            task.total_time_spent,
        )
        return TimerResult(task=task, entry=stopped)

    def list_time_entries(self, task_id: int) -> TimeSheet:
        task = self._repo.get_task(task_id)
        return TimeSheet(entries=list(task.time_entries), total_time_spent=task.total_time_spent)
