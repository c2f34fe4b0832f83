"""Task Manager - Registry, lifecycle and dependency cascade for runtime tasks."""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field

from colonysched.config import SchedulerConfig
from colonysched.events import EventHub
from colonysched.tasks.assignment import score_task
from colonysched.tasks.characters import Character, CharacterDirectory
from colonysched.tasks.dependencies import DependencyResolver
from colonysched.tasks.errors import (
    CyclicDependencyError,
    DependencyError,
    TaskNotFoundError,
    TaskValidationError,
)
from colonysched.tasks.factory import TaskFactory, default_factory
from colonysched.tasks.models import (
    TERMINAL_STATUSES,
    TaskDefinition,
    TaskId,
    TaskPriority,
    TaskResult,
    TaskStatus,
    TaskType,
)
from colonysched.tasks.task import BaseTask
from colonysched.tasks.validation import TaskValidator

logger = logging.getLogger(__name__)

TASK_CREATED = "task_created"
TASK_COMPLETED = "task_completed"
TASK_FAILED = "task_failed"
TASK_CANCELLED = "task_cancelled"
TASK_STATUS_CHANGED = "task_status_changed"

_TERMINAL_EVENTS = {
    TaskStatus.COMPLETED: TASK_COMPLETED,
    TaskStatus.FAILED: TASK_FAILED,
    TaskStatus.CANCELLED: TASK_CANCELLED,
}

TICKED_STATUSES = (TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED)


@dataclass
class TaskManagerStats:
    """Snapshot of registry counts."""

    total_tasks: int = 0
    status_counts: dict[TaskStatus, int] = field(default_factory=dict)
    average_progress: float = 0.0

    def count(self, status: TaskStatus) -> int:
        return self.status_counts.get(status, 0)

    @property
    def active_tasks(self) -> int:
        return sum(
            n for status, n in self.status_counts.items() if status not in TERMINAL_STATUSES
        )

    def __str__(self) -> str:
        return (
            f"Total: {self.total_tasks}, pending: {self.count(TaskStatus.PENDING)}, "
            f"available: {self.count(TaskStatus.AVAILABLE)}, "
            f"in progress: {self.count(TaskStatus.IN_PROGRESS)}, "
            f"completed: {self.count(TaskStatus.COMPLETED)}, "
            f"failed: {self.count(TaskStatus.FAILED)}"
        )


class TaskManager:
    """
    Owns every runtime task of one colony.

    Features:
    - Id allocation, validation and polymorphic construction on create
    - Prerequisite graph with Pending -> Available cascade on completion
    - Per-task fault isolation during ticks
    - Notifications through ``events`` once the registry is consistent
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        factory: TaskFactory | None = None,
        directory: CharacterDirectory | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or SchedulerConfig()
        self._clock = clock
        self.factory = factory or default_factory(
            clock=clock, execute_radius_factor=self.config.execute_radius_factor
        )
        self.validator = TaskValidator(
            warn_radius_factor=self.config.warn_radius_factor, clock=clock
        )
        self.graph = DependencyResolver()
        self.directory = directory
        self.events = EventHub()
        self._tasks: dict[TaskId, BaseTask] = {}
        self._next_id = 1

    # -- lifecycle -------------------------------------------------------------

    def create_task(self, definition: TaskDefinition) -> TaskId:
        """
        Validate, build and register a task.

        Returns:
            The id of the new task. The definition's id is filled in when unassigned.

        Raises:
            TaskValidationError: structural problem with the definition.
            DependencyError: unknown prerequisite, or a dependent that already started.
            CyclicDependencyError: the declared edges would close a cycle.
            UnsupportedTaskTypeError: no factory for the work kind.
        """
        validation = self.validator.validate_definition(definition)
        if not validation.is_valid:
            raise TaskValidationError(validation.errors)
        for warning in validation.warnings:
            logger.debug("%s: %s", definition.name, warning)

        if not definition.id.is_unassigned and definition.id in self._tasks:
            raise TaskValidationError([f"Task id {definition.id} is already in use"])

        dependency_check = self.validator.validate_dependencies(definition, self._tasks.values())
        errors = list(dependency_check.errors)
        for dependent_id in definition.dependents:
            dependent = self._tasks.get(dependent_id)
            if dependent is not None and dependent.status != TaskStatus.PENDING:
                errors.append(f"Dependent {dependent_id} has already left pending")
        if errors:
            raise DependencyError(errors)

        task = self.factory.create(definition)
        requested_id = definition.id
        if requested_id.is_unassigned:
            definition.id = self._peek_id()
        try:
            self.graph.add_task(task)
        except CyclicDependencyError:
            definition.id = requested_id
            raise
        self._next_id = max(self._next_id, definition.id.value + 1)
        self._tasks[task.id] = task

        if self.graph.can_execute(task.id):
            task.make_available()
        task.on_status_changed(self._on_task_status_changed)

        logger.info("Created %s '%s' (%s)", task.id, definition.name, task.status.value)
        self.events.emit(TASK_CREATED, task)
        return task.id

    def assign_task(self, task_id: TaskId, character_id: int) -> bool:
        """
        Add a character to a task.

        When a directory is configured the character is validated first; otherwise only
        the task's own status and capacity rules apply.
        """
        task = self._tasks.get(task_id)
        if task is None:
            return False

        character = self.directory.get_character(character_id) if self.directory else None
        if character is not None:
            check = self.validator.validate_assignment(task, character)
            if not check.is_valid:
                logger.debug("Assignment of %s to %s refused: %s", character_id, task_id, check.errors)
                return False

        return task.assign_character(character_id)

    def unassign_task(self, task_id: TaskId, character_id: int) -> bool:
        task = self._tasks.get(task_id)
        return task is not None and task.unassign_character(character_id)

    def start_task(self, task_id: TaskId) -> TaskResult:
        task = self._tasks.get(task_id)
        if task is None:
            return TaskResult.FAILURE
        return task.start()

    def complete_task(self, task_id: TaskId) -> bool:
        task = self._tasks.get(task_id)
        return task is not None and task.complete() == TaskResult.SUCCESS

    def cancel_task(self, task_id: TaskId) -> bool:
        task = self._tasks.get(task_id)
        return task is not None and task.cancel()

    def remove_task(self, task_id: TaskId) -> bool:
        """Drop a task, cancelling it first if it is still live."""
        task = self._tasks.pop(task_id, None)
        if task is None:
            return False

        former_dependents = self.graph.get_dependents(task_id)
        self.graph.remove_task(task_id)

        task.cancel()
        task.remove_status_listener(self._on_task_status_changed)
        logger.info("Removed %s", task_id)

        for dependent_id in former_dependents:
            self._activate_if_ready(dependent_id)
        return True

    def update_tasks(self, delta_time: float) -> None:
        """
        Tick every InProgress or Blocked task.

        A task whose update raises is cancelled; the remaining tasks still tick.
        """
        for task in list(self._tasks.values()):
            if task.status not in TICKED_STATUSES:
                continue
            try:
                task.update(delta_time, self._workers_for(task))
            except Exception:
                logger.exception("Update of %s raised; cancelling it", task.id)
                task.cancel()

    # -- dependencies ----------------------------------------------------------

    def add_dependency(self, dependent_id: TaskId, prerequisite_id: TaskId) -> bool:
        """
        Make ``dependent_id`` wait for ``prerequisite_id``.

        Returns:
            False when either task is unknown, the edge would close a cycle, or the
            dependent has already left Pending while the prerequisite is unfinished.
        """
        dependent = self._tasks.get(dependent_id)
        prerequisite = self._tasks.get(prerequisite_id)
        if dependent is None or prerequisite is None:
            return False
        if dependent.status != TaskStatus.PENDING and prerequisite.status != TaskStatus.COMPLETED:
            return False
        if not self.graph.add_dependency(dependent_id, prerequisite_id):
            return False

        dependent.definition.add_prerequisite(prerequisite_id)
        prerequisite.definition.add_dependent(dependent_id)
        return True

    def remove_dependency(self, dependent_id: TaskId, prerequisite_id: TaskId) -> bool:
        if not self.graph.remove_dependency(dependent_id, prerequisite_id):
            return False

        dependent = self._tasks.get(dependent_id)
        if dependent is not None and prerequisite_id in dependent.definition.prerequisites:
            dependent.definition.prerequisites.remove(prerequisite_id)
        prerequisite = self._tasks.get(prerequisite_id)
        if prerequisite is not None and dependent_id in prerequisite.definition.dependents:
            prerequisite.definition.dependents.remove(dependent_id)

        self._activate_if_ready(dependent_id)
        return True

    def get_topological_order(self) -> list[TaskId]:
        return self.graph.get_topological_order()

    # -- queries ---------------------------------------------------------------

    def get_task(self, task_id: TaskId) -> BaseTask | None:
        return self._tasks.get(task_id)

    def require_task(self, task_id: TaskId) -> BaseTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(f"Unknown task {task_id}")
        return task

    def get_all_tasks(self) -> list[BaseTask]:
        return list(self._tasks.values())

    def get_tasks_by_status(self, status: TaskStatus) -> list[BaseTask]:
        return [t for t in self._tasks.values() if t.status == status]

    def get_tasks_by_type(self, kind: TaskType) -> list[BaseTask]:
        return [t for t in self._tasks.values() if t.definition.type == kind]

    def get_tasks_by_priority(self, priority: TaskPriority) -> list[BaseTask]:
        return [t for t in self._tasks.values() if t.definition.priority == priority]

    def get_available_tasks(self) -> list[BaseTask]:
        return self.get_tasks_by_status(TaskStatus.AVAILABLE)

    def get_tasks_for_character(self, character_id: int) -> list[BaseTask]:
        """Live tasks the character is assigned to."""
        return [
            t
            for t in self._tasks.values()
            if not t.is_terminal and character_id in t.assigned_characters
        ]

    def get_executable_tasks(self) -> list[BaseTask]:
        """Live tasks whose prerequisites are all completed."""
        return [
            self._tasks[task_id]
            for task_id in self.graph.get_executable_tasks()
            if not self._tasks[task_id].is_terminal
        ]

    def get_best_task_for_character(self, character: Character) -> BaseTask | None:
        """Most urgent feasible task, ties broken by fitness score."""
        now = self._clock()
        candidates = [t for t in self.get_available_tasks() if t.can_execute(character)]
        if not candidates:
            return None
        return min(
            candidates,
            key=lambda t: (t.definition.priority, -score_task(t, character, now, self.config)),
        )

    def get_stats(self) -> TaskManagerStats:
        tasks = list(self._tasks.values())
        counts = Counter(t.status for t in tasks)
        average = sum(t.progress for t in tasks) / len(tasks) if tasks else 0.0
        return TaskManagerStats(
            total_tasks=len(tasks),
            status_counts={status: counts.get(status, 0) for status in TaskStatus},
            average_progress=average,
        )

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    # -- internals -------------------------------------------------------------

    def _peek_id(self) -> TaskId:
        while TaskId(self._next_id) in self._tasks:
            self._next_id += 1
        return TaskId(self._next_id)

    def _workers_for(self, task: BaseTask) -> list[Character] | None:
        if self.directory is None:
            return None
        workers = []
        for character_id in task.assigned_characters:
            character = self.directory.get_character(character_id)
            if character is not None:
                workers.append(character)
        return workers

    def _activate_if_ready(self, task_id: TaskId) -> None:
        task = self._tasks.get(task_id)
        if task is not None and task.status == TaskStatus.PENDING and self.graph.can_execute(task_id):
            task.make_available()

    def _on_task_status_changed(self, task: BaseTask, old: TaskStatus, new: TaskStatus) -> None:
        if new == TaskStatus.COMPLETED:
            logger.info("Completed %s '%s'", task.id, task.definition.name)
            for dependent_id in self.graph.get_dependents(task.id):
                self._activate_if_ready(dependent_id)
        elif new == TaskStatus.FAILED:
            logger.warning("%s '%s' failed", task.id, task.definition.name)

        self.events.emit(TASK_STATUS_CHANGED, task, old, new)

        event = _TERMINAL_EVENTS.get(new)
        if event is not None:
            self.events.emit(event, task)
