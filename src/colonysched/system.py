"""Task System - Facade wiring the manager, assigner and configuration together."""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from colonysched.config import SchedulerConfig
from colonysched.tasks.assignment import (
    AssignmentResult,
    ReassignmentResult,
    TaskAssigner,
    TaskRecommendation,
)
from colonysched.tasks.characters import Character, CharacterDirectory
from colonysched.tasks.manager import TaskManager
from colonysched.tasks.models import (
    SkillType,
    TaskDefinition,
    TaskId,
    TaskPriority,
    TaskResult,
    TaskStatus,
    TaskType,
    Vector3,
)
from colonysched.tasks.task import BaseTask

logger = logging.getLogger(__name__)


@dataclass
class TaskSystemStats:
    """Aggregate view over every registered task."""

    total_tasks: int = 0
    status_counts: dict[TaskStatus, int] = field(default_factory=dict)
    type_counts: dict[TaskType, int] = field(default_factory=dict)
    priority_counts: dict[TaskPriority, int] = field(default_factory=dict)
    average_progress: float = 0.0

    @property
    def pending(self) -> int:
        return self.status_counts.get(TaskStatus.PENDING, 0)

    @property
    def available(self) -> int:
        return self.status_counts.get(TaskStatus.AVAILABLE, 0)

    @property
    def in_progress(self) -> int:
        return self.status_counts.get(TaskStatus.IN_PROGRESS, 0)

    @property
    def completed(self) -> int:
        return self.status_counts.get(TaskStatus.COMPLETED, 0)

    @property
    def failed(self) -> int:
        return self.status_counts.get(TaskStatus.FAILED, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_tasks": self.total_tasks,
            "status_counts": {k.value: v for k, v in self.status_counts.items()},
            "type_counts": {k.value: v for k, v in self.type_counts.items()},
            "priority_counts": {k.name: v for k, v in self.priority_counts.items()},
            "average_progress": round(self.average_progress, 4),
        }


class TaskSystem:
    """
    Entry point for a colony's task scheduling.

    ``update`` performs the implicit start: Assigned tasks begin work on the next tick
    when ``auto_start_assigned`` is enabled.
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        directory: CharacterDirectory | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or SchedulerConfig()
        self._clock = clock
        self.manager = TaskManager(self.config, directory=directory, clock=clock)
        self.assigner = TaskAssigner(self.manager, self.config, clock=clock)

    @property
    def directory(self) -> CharacterDirectory | None:
        return self.manager.directory

    @directory.setter
    def directory(self, value: CharacterDirectory | None) -> None:
        self.manager.directory = value

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    # -- creation --------------------------------------------------------------

    def create_task(self, definition: TaskDefinition) -> TaskId:
        return self.manager.create_task(definition)

    def create_simple_task(
        self,
        name: str,
        task_type: TaskType = TaskType.HAULING,
        priority: TaskPriority = TaskPriority.NORMAL,
        duration: float = 5.0,
    ) -> TaskId:
        return self.create_task(
            TaskDefinition(
                name=name,
                type=task_type,
                priority=priority,
                estimated_duration=duration,
                created_at=self._clock(),
            )
        )

    def create_construction_task(
        self,
        name: str,
        position: Vector3,
        priority: TaskPriority = TaskPriority.NORMAL,
        construction_level: int = 3,
    ) -> TaskId:
        definition = TaskDefinition(
            name=name,
            type=TaskType.CONSTRUCTION,
            priority=priority,
            target_position=position,
            work_radius=2.0,
            estimated_duration=10.0,
            max_assigned_characters=2,
            created_at=self._clock(),
        )
        definition.add_skill_requirement(SkillType.CONSTRUCTION, construction_level)
        return self.create_task(definition)

    def create_mining_task(
        self,
        name: str,
        position: Vector3,
        priority: TaskPriority = TaskPriority.NORMAL,
        mining_level: int = 2,
    ) -> TaskId:
        definition = TaskDefinition(
            name=name,
            type=TaskType.MINING,
            priority=priority,
            target_position=position,
            work_radius=1.5,
            estimated_duration=8.0,
            created_at=self._clock(),
        )
        definition.add_skill_requirement(SkillType.MINING, mining_level)
        return self.create_task(definition)

    def create_research_task(
        self,
        name: str,
        priority: TaskPriority = TaskPriority.LOW,
        research_level: int = 5,
    ) -> TaskId:
        definition = TaskDefinition(
            name=name,
            type=TaskType.RESEARCH,
            priority=priority,
            estimated_duration=20.0,
            created_at=self._clock(),
        )
        definition.add_skill_requirement(SkillType.RESEARCH, research_level)
        return self.create_task(definition)

    # -- lifecycle -------------------------------------------------------------

    def get_task(self, task_id: TaskId) -> BaseTask | None:
        return self.manager.get_task(task_id)

    def assign_task(self, task_id: TaskId, character_id: int) -> bool:
        return self.manager.assign_task(task_id, character_id)

    def unassign_task(self, task_id: TaskId, character_id: int) -> bool:
        return self.manager.unassign_task(task_id, character_id)

    def start_task(self, task_id: TaskId) -> TaskResult:
        return self.manager.start_task(task_id)

    def complete_task(self, task_id: TaskId) -> bool:
        return self.manager.complete_task(task_id)

    def cancel_task(self, task_id: TaskId) -> bool:
        return self.manager.cancel_task(task_id)

    def remove_task(self, task_id: TaskId) -> bool:
        return self.manager.remove_task(task_id)

    def add_dependency(self, dependent_id: TaskId, prerequisite_id: TaskId) -> bool:
        return self.manager.add_dependency(dependent_id, prerequisite_id)

    def update(self, delta_time: float) -> None:
        """One scheduler tick."""
        if self.config.auto_start_assigned:
            for task in self.manager.get_tasks_by_status(TaskStatus.ASSIGNED):
                task.start()
        self.manager.update_tasks(delta_time)

    # -- assignment ------------------------------------------------------------

    def assign_best_task(self, character: Character) -> AssignmentResult:
        return self.assigner.assign_best_task(character)

    def assign_tasks(self, characters: Iterable[Character]) -> list[AssignmentResult]:
        return self.assigner.assign_tasks(characters)

    def get_recommendations(
        self, character: Character, max_results: int | None = None
    ) -> list[TaskRecommendation]:
        return self.assigner.get_task_recommendations(character, max_results)

    def reassign_all(self, characters: Iterable[Character]) -> ReassignmentResult:
        return self.assigner.reassign_all_tasks(characters)

    # -- observation -----------------------------------------------------------

    def subscribe(self, event: str, callback: Callable[..., Any]) -> Callable[[], None]:
        """Subscribe to a manager event; returns the unsubscribe function."""
        return self.manager.events.subscribe(event, callback)

    def get_stats(self) -> TaskSystemStats:
        tasks = self.manager.get_all_tasks()
        base = self.manager.get_stats()
        return TaskSystemStats(
            total_tasks=base.total_tasks,
            status_counts=base.status_counts,
            type_counts=dict(Counter(t.definition.type for t in tasks)),
            priority_counts=dict(Counter(t.definition.priority for t in tasks)),
            average_progress=base.average_progress,
        )
