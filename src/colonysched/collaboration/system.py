"""Collaboration System - Ties the arbiter to the task system's lifecycle and clock."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from colonysched.collaboration.manager import CollaborationManager
from colonysched.collaboration.models import (
    CollaborationEfficiencyReport,
    CollaborationGroup,
    CollaborationResult,
    CollaborationRole,
    CollaborationStats,
    CollaborationType,
    ReservationResult,
    ResourceConflictResult,
    ResourceType,
    TaskCoordinationResult,
    collaboration_type_for,
    recommended_participants,
)
from colonysched.system import TaskSystem
from colonysched.tasks.characters import Character, CharacterDirectory
from colonysched.tasks.manager import TASK_CANCELLED, TASK_CREATED, TASK_FAILED
from colonysched.tasks.models import TaskDefinition, TaskId, TaskStatus, TaskType, Vector3
from colonysched.tasks.task import BaseTask

logger = logging.getLogger(__name__)

LOW_EFFICIENCY = 0.7


class CollaborationSystem:
    """
    Periodic collaboration sweep plus the colony-facing collaboration calls.

    Subscribes to the task system on construction; call ``shutdown`` to detach.
    """

    def __init__(
        self,
        task_system: TaskSystem,
        directory: CharacterDirectory | None = None,
    ) -> None:
        self.task_system = task_system
        self.config = task_system.config
        self._directory = directory
        self.manager = CollaborationManager(
            task_system.manager, self.config, clock=task_system.clock
        )
        self.update_interval = self.config.collaboration_update_interval
        self._since_last_update = 0.0
        self._unsubscribers: list[Callable[[], None]] = [
            task_system.subscribe(TASK_CREATED, self._on_task_created),
            task_system.subscribe(TASK_CANCELLED, self._on_task_cancelled),
            task_system.subscribe(TASK_FAILED, self._on_task_failed),
        ]

    @property
    def directory(self) -> CharacterDirectory | None:
        return self._directory or self.task_system.directory

    def shutdown(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def subscribe(self, event: str, callback: Callable[..., Any]) -> Callable[[], None]:
        """Subscribe to ``group_suspended`` or ``conflict_detected``."""
        return self.manager.events.subscribe(event, callback)

    def update(self, delta_time: float) -> bool:
        """
        Accumulate simulated time and sweep once per ``update_interval``.

        Returns:
            True if a sweep ran on this call.
        """
        self._since_last_update += delta_time
        if self._since_last_update < self.update_interval:
            return False

        self.manager.update_collaborations(self._since_last_update)
        self._since_last_update = 0.0

        for task_id in self.find_collaboration_opportunities():
            logger.debug("%s could use more hands", task_id)
        stats = self.manager.get_stats()
        if stats.total_groups and stats.efficiency < LOW_EFFICIENCY:
            logger.debug("Collaboration efficiency at %.0f%%, consider rebalancing", stats.efficiency * 100)
        return True

    # -- tasks and groups ------------------------------------------------------

    def create_collaborative_task(
        self, definition: TaskDefinition, kind: CollaborationType
    ) -> CollaborationResult:
        """Create a task sized for ``kind`` and open its group."""
        if definition.max_assigned_characters <= 1:
            definition.max_assigned_characters = recommended_participants(kind)

        task_id = self.task_system.create_task(definition)
        group = self.manager.create_collaboration_group(task_id, kind)
        return CollaborationResult.success(f"Created collaborative task {definition.name}", group)

    def join_collaboration(
        self,
        task_id: TaskId,
        character_id: int,
        role: CollaborationRole = CollaborationRole.WORKER,
    ) -> CollaborationResult:
        return self.manager.join_collaboration(task_id, character_id, role)

    def leave_collaboration(self, task_id: TaskId, character_id: int) -> CollaborationResult:
        return self.manager.leave_collaboration(task_id, character_id)

    def get_character_collaboration(self, character_id: int) -> CollaborationGroup | None:
        return self.manager.get_character_active_collaboration(character_id)

    def auto_assign_collaborative_tasks(self) -> TaskCoordinationResult:
        """Staff open multi-assignee tasks with characters that are free to help."""
        characters = [c for c in self._all_characters() if self._is_available(c)]
        return self.manager.coordinate_task_assignment(characters, self._collaborative_tasks())

    def rebalance_collaborations(self) -> TaskCoordinationResult:
        """Like ``auto_assign_collaborative_tasks`` but considers every character."""
        return self.manager.coordinate_task_assignment(
            self._all_characters(), self._collaborative_tasks()
        )

    def find_collaboration_opportunities(self) -> list[TaskId]:
        """Solo-staffed tasks with spare seats that would benefit from a partner."""
        opportunities = []
        for task in self.task_system.manager.get_tasks_by_status(TaskStatus.ASSIGNED):
            definition = task.definition
            if len(task.assigned_characters) != 1 or definition.max_assigned_characters < 2:
                continue
            if could_benefit_from_collaboration(task):
                opportunities.append(task.id)
        return opportunities

    def get_recommended_collaborators(
        self, character_id: int, task_id: TaskId, max_recommendations: int = 3
    ) -> list[Character]:
        """Free characters ranked by how well their skills complement ``character_id``."""
        directory = self.directory
        task = self.task_system.get_task(task_id)
        if directory is None or task is None:
            return []
        character = directory.get_character(character_id)
        if character is None:
            return []

        others = [
            c
            for c in directory.all_characters()
            if c.id != character_id and self._is_available(c)
        ]
        others.sort(key=lambda c: skill_complementarity(character, c, task), reverse=True)
        return others[:max_recommendations]

    # -- reservations ----------------------------------------------------------

    def reserve_work_area(
        self, position: Vector3, character_id: int, duration: float | None = None
    ) -> ReservationResult:
        return self.manager.reserve_resource(position, character_id, ResourceType.WORK_AREA, duration)

    def release_work_area(self, position: Vector3, character_id: int) -> bool:
        return self.manager.release_resource(position, character_id)

    def check_position_conflict(
        self, position: Vector3, character_id: int, radius: float | None = None
    ) -> ResourceConflictResult:
        return self.manager.check_resource_conflict(position, character_id, radius)

    # -- reporting -------------------------------------------------------------

    def get_stats(self) -> CollaborationStats:
        return self.manager.get_stats()

    def get_efficiency_report(self) -> CollaborationEfficiencyReport:
        stats = self.manager.get_stats()
        task_stats = self.task_system.get_stats()

        completion = task_stats.completed / task_stats.total_tasks if task_stats.total_tasks else 0.0
        average_size = stats.total_participants / stats.total_groups if stats.total_groups else 0.0
        if stats.total_participants:
            utilization = min(1.0, stats.active_reservations / stats.total_participants)
        else:
            utilization = 0.0

        return CollaborationEfficiencyReport(
            stats=stats,
            task_completion_rate=completion,
            average_group_size=average_size,
            resource_utilization=utilization,
            recommendations=_recommendations(stats),
        )

    # -- event handlers --------------------------------------------------------

    def _on_task_created(self, task: BaseTask) -> None:
        if task.definition.max_assigned_characters > 1 and self.manager.get_group(task.id) is None:
            self.manager.create_collaboration_group(
                task.id, collaboration_type_for(task.definition.type)
            )

    def _on_task_cancelled(self, task: BaseTask) -> None:
        group = self.manager.get_group(task.id)
        if group is None:
            return
        for character_id in group.participant_ids:
            self.manager.leave_collaboration(task.id, character_id)

    def _on_task_failed(self, task: BaseTask) -> None:
        if self.manager.get_group(task.id) is not None:
            logger.warning("Collaborative task %s '%s' failed", task.id, task.definition.name)

    # -- internals -------------------------------------------------------------

    def _all_characters(self) -> list[Character]:
        directory = self.directory
        return directory.all_characters() if directory is not None else []

    def _collaborative_tasks(self) -> list[BaseTask]:
        return [
            t
            for t in self.task_system.manager.get_available_tasks()
            if t.definition.max_assigned_characters > 1
        ]

    def _is_available(self, character: Character) -> bool:
        if character.has_critical_needs:
            return False
        if self.task_system.manager.get_tasks_for_character(character.id):
            return False
        return self.manager.get_character_active_collaboration(character.id) is None


def could_benefit_from_collaboration(task: BaseTask) -> bool:
    definition = task.definition
    if definition.type == TaskType.CONSTRUCTION:
        return True
    if definition.type == TaskType.MINING:
        return definition.estimated_duration > 10
    if definition.type == TaskType.RESEARCH:
        return False
    return definition.estimated_duration > 15


def skill_complementarity(first: Character, second: Character, task: BaseTask) -> float:
    """A strong/weak pairing edges out two average partners on each required skill."""
    total = 0.0
    for req in task.definition.skill_requirements:
        a = first.skill_level(req.skill)
        b = second.skill_level(req.skill)
        total += (a + b) / 2 + abs(a - b) * 0.1
    return total


def _recommendations(stats: CollaborationStats) -> list[str]:
    recommendations = []
    if stats.total_groups and stats.efficiency < 0.5:
        recommendations.append("Collaboration efficiency is low; consider reassigning tasks")
    if stats.active_reservations > stats.total_participants * 2:
        recommendations.append("Too many resource reservations; release unused work areas")
    if stats.total_groups and stats.active_groups == 0:
        recommendations.append("No active collaboration groups; check task assignments")
    return recommendations
