# src/taskhub/tasks/atomic.py

"""
Read-modify-write on a single task record.

The store offers compare-and-swap on a version counter; this helper turns it into a
retry loop. The mutation callback runs against a freshly read task on every attempt, so
its validations always see current state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..core.errors import ConcurrentModification, VersionConflict
from ..core.ports import TaskRepo
from .task_models import Task

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

Mutation = Callable[[Task], bool]
# Mutates the task in place; returns False when there is nothing to write.


def mutate_task(
        repo: TaskRepo,
        task_id: int,
        mutation: Mutation,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Task:
    """
    Apply `mutation` to task `task_id` atomically and return the stored result.

    Raises whatever the mutation raises (nothing is written then), NotFound if the task
    is gone, ConcurrentModification when every attempt lost the race.
    """
    attempts = max(1, int(max_attempts))

    for attempt in range(1, attempts + 1):
        task = repo.get_task(task_id)
        expected = task.version

        if not mutation(task):
            return task

        try:
            return repo.replace_task(task, expected_version=expected)
        except VersionConflict:
            logger.debug(
                "CAS conflict task_id=%s version=%s attempt=%d/%d",
                task_id,
                expected,
                attempt,
                attempts,
            )

    logger.warning("Giving up on task_id=%s after %d conflicting writes", task_id, attempts)
    raise ConcurrentModification(
        "Task was modified concurrently; try again",
        task_id=task_id,
        attempts=attempts,
    )
