# src/taskhub/tasks/dependencies.py

from __future__ import annotations

"""
Dependency graph manager.

An edge "A depends on B" is stored on both endpoints: B in A.depends_on and A in
B.blocks. The two records are written one after the other (forward side first); there
is no cross-record transaction, so a failure on the second side is compensated on the
first side and reported as PartialGraphInconsistency.
"""

import logging
from dataclasses import dataclass

from ..core.errors import (
    DependencyCycle,
    DuplicateEdge,
    InvalidValue,
    NotFound,
    PartialGraphInconsistency,
)
from ..core.ports import TaskRepo
from .atomic import DEFAULT_MAX_ATTEMPTS, mutate_task
from .task_models import Task, TaskRef

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class DependencyListing:
    depends_on: list[TaskRef]
    blocks: list[TaskRef]


def _append_unique(items: list[int], value: int) -> bool:
    if value in items:
        return False
    items.append(value)
    return True


def _remove_all(items: list[int], value: int) -> bool:
    if value not in items:
        return False
    items[:] = [x for x in items if x != value]
    return True


class DependencyGraph:
    def __init__(
            self,
            repo: TaskRepo,
            *,
            reject_cycles: bool = False,
            max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._repo = repo
        self._reject_cycles = reject_cycles
        self._max_attempts = max_attempts

    def _mutate(self, task_id: int, mutation) -> Task:
        return mutate_task(self._repo, task_id, mutation, max_attempts=self._max_attempts)

    # ---- queries ----

    def list_dependencies(self, task_id: int) -> DependencyListing:
        task = self._repo.get_task(task_id)
        return DependencyListing(
            depends_on=self._repo.task_refs(task.depends_on),
            blocks=self._repo.task_refs(task.blocks),
        )

    def would_create_cycle(self, task_id: int, depends_on_id: int) -> bool:
        """True if depends_on_id already (transitively) depends on task_id."""
        seen: set[int] = set()
        stack = [depends_on_id]
        while stack:
            current = stack.pop()
            if current == task_id:
                return True
            if current in seen:
                continue
            seen.add(current)
            node = self._repo.find_task(current)
            if node is not None:
                stack.extend(node.depends_on)
        return False

    # ---- edge mutations ----

    def add_dependency(self, task_id: int, depends_on_id: int) -> Task:
        """
        Make task_id depend on depends_on_id.

        Cycles are accepted unless the graph was built with reject_cycles=True.
        """
        task_id = int(task_id)
        depends_on_id = int(depends_on_id)

        if task_id == depends_on_id:
            raise InvalidValue("A task cannot depend on itself", task_id=task_id)

        self._repo.get_task(task_id)
        if self._repo.find_task(depends_on_id) is None:
            raise NotFound("Dependency task not found", task_id=depends_on_id)

        if self._reject_cycles and self.would_create_cycle(task_id, depends_on_id):
            raise DependencyCycle(
                "Adding this dependency would create a cycle",
                task_id=task_id,
                depends_on=depends_on_id,
            )

        def forward(t: Task) -> bool:
            if depends_on_id in t.depends_on:
                raise DuplicateEdge(
                    "Dependency already exists", task_id=task_id, depends_on=depends_on_id
                )
            t.depends_on.append(depends_on_id)
            return True

        task = self._mutate(task_id, forward)

        try:
            self._mutate(depends_on_id, lambda t: _append_unique(t.blocks, task_id))
        except Exception as exc:
            logger.error(
                "Symmetric edge write failed: %s.blocks += %s (%s)", depends_on_id, task_id, exc
            )
            rolled_back = self._compensate(task_id, lambda t: _remove_all(t.depends_on, depends_on_id))
            raise PartialGraphInconsistency(
                "Dependency could not be recorded on the blocking task",
                task_ids=[task_id, depends_on_id],
                rolled_back=rolled_back,
            ) from exc

        logger.info("Dependency added: %s depends on %s", task_id, depends_on_id)
        return task

    def remove_dependency(self, task_id: int, depends_on_id: int) -> Task:
        """Remove the edge from both sides. Absent edge or absent target is a no-op."""
        task_id = int(task_id)
        depends_on_id = int(depends_on_id)

        had_edge = False

        def forward(t: Task) -> bool:
            nonlocal had_edge
            had_edge = _remove_all(t.depends_on, depends_on_id)
            return had_edge

        task = self._mutate(task_id, forward)

        try:
            self._mutate(depends_on_id, lambda t: _remove_all(t.blocks, task_id))
        except NotFound:
            logger.debug("remove_dependency: target %s is gone; nothing to clean", depends_on_id)
        except Exception as exc:
            logger.error(
                "Symmetric edge removal failed: %s.blocks -= %s (%s)", depends_on_id, task_id, exc
            )
            rolled_back = True
            if had_edge:
                rolled_back = self._compensate(
                    task_id, lambda t: _append_unique(t.depends_on, depends_on_id)
                )
            raise PartialGraphInconsistency(
                "Dependency could not be removed from the blocking task",
                task_ids=[task_id, depends_on_id],
                rolled_back=rolled_back,
            ) from exc

        if had_edge:
            logger.info("Dependency removed: %s no longer depends on %s", task_id, depends_on_id)
        return task

    def detach(self, task: Task) -> list[int]:
        """
        Remove `task` from every neighbour's depends_on/blocks.

        Used before deleting a task. Returns the ids of neighbours that could not be
        cleaned (empty list means the graph no longer mentions the task).
        """
        neighbours = set(task.depends_on) | set(task.blocks)
        neighbours |= {t.id for t in self._repo.list_referencing(task.id)}
        neighbours.discard(task.id)

        def strip(t: Task) -> bool:
            changed_deps = _remove_all(t.depends_on, task.id)
            changed_blocks = _remove_all(t.blocks, task.id)
            return changed_deps or changed_blocks

        failed: list[int] = []
        for nid in sorted(neighbours):
            try:
                self._mutate(nid, strip)
            except NotFound:
                continue
            except Exception:
                logger.exception("Failed to detach task %s from neighbour %s", task.id, nid)
                failed.append(nid)
        return failed

    def _compensate(self, task_id: int, mutation) -> bool:
        try:
            self._mutate(task_id, mutation)
        except Exception:
            logger.exception("Compensation failed on task %s; graph left inconsistent", task_id)
            return False
        logger.warning("Compensated forward edge on task %s", task_id)
        return True
