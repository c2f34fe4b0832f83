"""Dependency Resolver - Prerequisite graph over task ids.

Edges live in two adjacency maps keyed by ``TaskId``:

- ``_dependencies[t]``: direct prerequisites of ``t``
- ``_dependents[t]``: tasks that list ``t`` as a prerequisite

Ids may appear in the maps before their task is registered (a definition can name a
dependent that will be created later).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from colonysched.tasks.errors import CyclicDependencyError
from colonysched.tasks.models import TaskId, TaskStatus

if TYPE_CHECKING:
    from colonysched.tasks.task import BaseTask


@dataclass
class DependencyStats:
    """Graph statistics."""

    total_tasks: int
    total_dependencies: int
    tasks_with_dependencies: int
    max_dependencies_per_task: int
    executable_tasks: int

    def __str__(self) -> str:
        return (
            f"Tasks: {self.total_tasks}, dependencies: {self.total_dependencies}, "
            f"executable: {self.executable_tasks}"
        )


class DependencyResolver:
    """Maintains prerequisite/dependent edges and answers ordering questions."""

    def __init__(self) -> None:
        self._dependencies: dict[TaskId, set[TaskId]] = {}
        self._dependents: dict[TaskId, set[TaskId]] = {}
        self._tasks: dict[TaskId, BaseTask] = {}

    def add_task(self, task: BaseTask) -> None:
        """
        Register a task and the edges its definition declares.

        Raises:
            CyclicDependencyError: the declared edges would close a cycle. Nothing is
                registered in that case.
        """
        task_id = task.id
        definition = task.definition
        saved_dependencies = _snapshot(self._dependencies, [task_id, *definition.dependents])
        saved_dependents = _snapshot(self._dependents, [task_id, *definition.prerequisites])

        self._dependencies.setdefault(task_id, set()).update(definition.prerequisites)
        self._dependents.setdefault(task_id, set()).update(definition.dependents)

        for prerequisite_id in definition.prerequisites:
            self._dependents.setdefault(prerequisite_id, set()).add(task_id)
        for dependent_id in definition.dependents:
            self._dependencies.setdefault(dependent_id, set()).add(task_id)

        if any(self._reaches(p, task_id) for p in self._dependencies[task_id]):
            _restore(self._dependencies, saved_dependencies)
            _restore(self._dependents, saved_dependents)
            raise CyclicDependencyError([f"{task_id} would depend on itself"])

        self._tasks[task_id] = task

    def remove_task(self, task_id: TaskId) -> bool:
        """Remove a task and prune every edge touching it."""
        for prerequisite_id in self._dependencies.pop(task_id, set()):
            self._dependents.get(prerequisite_id, set()).discard(task_id)
        for dependent_id in self._dependents.pop(task_id, set()):
            self._dependencies.get(dependent_id, set()).discard(task_id)
        return self._tasks.pop(task_id, None) is not None

    def add_dependency(self, dependent: TaskId, prerequisite: TaskId) -> bool:
        """
        Add ``prerequisite -> dependent``.

        Returns:
            False without touching the graph if the edge would close a cycle.
        """
        if self.has_circular_dependency(dependent, prerequisite):
            return False

        self._dependencies.setdefault(dependent, set()).add(prerequisite)
        self._dependents.setdefault(prerequisite, set()).add(dependent)
        return True

    def remove_dependency(self, dependent: TaskId, prerequisite: TaskId) -> bool:
        removed = prerequisite in self._dependencies.get(dependent, set())
        self._dependencies.get(dependent, set()).discard(prerequisite)
        self._dependents.get(prerequisite, set()).discard(dependent)
        return removed

    def has_circular_dependency(self, from_id: TaskId, to_id: TaskId) -> bool:
        """True if making ``from_id`` depend on ``to_id`` would close a cycle."""
        # A cycle appears iff to_id already (transitively) depends on from_id.
        return self._reaches(to_id, from_id)

    def _reaches(self, start: TaskId, target: TaskId) -> bool:
        """True if ``target`` is ``start`` or one of its transitive prerequisites."""
        visited: set[TaskId] = set()
        stack = [start]
        while stack:
            current = stack.pop()
            if current == target:
                return True
            if current in visited:
                continue
            visited.add(current)
            stack.extend(self._dependencies.get(current, ()))
        return False

    def get_prerequisites(self, task_id: TaskId) -> list[TaskId]:
        return sorted(self._dependencies.get(task_id, ()))

    def get_dependents(self, task_id: TaskId) -> list[TaskId]:
        return sorted(self._dependents.get(task_id, ()))

    def get_all_prerequisites(self, task_id: TaskId) -> list[TaskId]:
        """Transitive prerequisites, nearest first."""
        return self._closure(task_id, self._dependencies)

    def get_all_dependents(self, task_id: TaskId) -> list[TaskId]:
        """Transitive dependents, nearest first."""
        return self._closure(task_id, self._dependents)

    def can_execute(self, task_id: TaskId) -> bool:
        """True iff every direct prerequisite is registered and Completed."""
        for prerequisite_id in self._dependencies.get(task_id, ()):
            prerequisite = self._tasks.get(prerequisite_id)
            if prerequisite is None or prerequisite.status != TaskStatus.COMPLETED:
                return False
        return True

    def get_topological_order(self) -> list[TaskId]:
        """
        Registered tasks ordered so every prerequisite precedes its dependents.

        Raises:
            CyclicDependencyError: the graph contains a cycle.
        """
        order: list[TaskId] = []
        visited: set[TaskId] = set()
        visiting: set[TaskId] = set()

        def visit(task_id: TaskId) -> None:
            if task_id in visited:
                return
            if task_id in visiting:
                raise CyclicDependencyError([f"Cycle detected at {task_id}"])
            visiting.add(task_id)
            for prerequisite_id in sorted(self._dependencies.get(task_id, ())):
                visit(prerequisite_id)
            visiting.discard(task_id)
            visited.add(task_id)
            if task_id in self._tasks:
                order.append(task_id)

        for task_id in sorted(self._tasks):
            visit(task_id)
        return order

    def get_executable_tasks(self) -> list[TaskId]:
        return [task_id for task_id in self._tasks if self.can_execute(task_id)]

    def get_stats(self) -> DependencyStats:
        counts = [len(deps) for deps in self._dependencies.values()]
        return DependencyStats(
            total_tasks=len(self._tasks),
            total_dependencies=sum(counts),
            tasks_with_dependencies=sum(1 for c in counts if c > 0),
            max_dependencies_per_task=max(counts, default=0),
            executable_tasks=len(self.get_executable_tasks()),
        )

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    @staticmethod
    def _closure(task_id: TaskId, edges: dict[TaskId, set[TaskId]]) -> list[TaskId]:
        visited: set[TaskId] = {task_id}
        result: list[TaskId] = []
        frontier = [task_id]
        while frontier:
            next_frontier: list[TaskId] = []
            for current in frontier:
                for neighbour in sorted(edges.get(current, ())):
                    if neighbour not in visited:
                        visited.add(neighbour)
                        result.append(neighbour)
                        next_frontier.append(neighbour)
            frontier = next_frontier
        return result


def _snapshot(
    edges: dict[TaskId, set[TaskId]], keys: list[TaskId]
) -> dict[TaskId, set[TaskId] | None]:
    # None marks a key that was absent.
    return {key: set(edges[key]) if key in edges else None for key in keys}


def _restore(
    edges: dict[TaskId, set[TaskId]], saved: dict[TaskId, set[TaskId] | None]
) -> None:
    for key, value in saved.items():
        if value is None:
            edges.pop(key, None)
        else:
            edges[key] = value
