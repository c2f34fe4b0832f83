"""Task Assigner - Fitness scoring and greedy task assignment.

Score components (higher is better):

    priority   100 / 75 / 50 / 25 / 10 for CRITICAL .. IDLE
    skill      0-100, weighted mean of per-requirement match (25 without requirements)
    distance   0-25, linear falloff to zero at ``max_scoring_distance`` (25 without target)
    needs      5 when the character has critical needs, else happiness * 25
    deadline   0-20, grows as the deadline enters the urgency horizon (10 without one)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from colonysched.config import SchedulerConfig
from colonysched.tasks.characters import Character
from colonysched.tasks.models import TaskDefinition, TaskPriority, TaskStatus

if TYPE_CHECKING:
    from colonysched.tasks.manager import TaskManager
    from colonysched.tasks.task import BaseTask

logger = logging.getLogger(__name__)

PRIORITY_SCORES = {
    TaskPriority.CRITICAL: 100.0,
    TaskPriority.HIGH: 75.0,
    TaskPriority.NORMAL: 50.0,
    TaskPriority.LOW: 25.0,
    TaskPriority.IDLE: 10.0,
}

NEARBY_DISTANCE = 10.0


def skill_match_score(definition: TaskDefinition, character: Character) -> float:
    total_weight = sum(req.weight for req in definition.skill_requirements)
    if total_weight <= 0:
        return 25.0

    weighted = 0.0
    for req in definition.skill_requirements:
        ratio = character.skill_level(req.skill) / max(1, req.min_level)
        weighted += min(100.0, ratio * 50.0) * req.weight
    return weighted / total_weight


def distance_score(
    definition: TaskDefinition, character: Character, max_distance: float = 100.0
) -> float:
    if definition.target_position is None or character.position is None:
        return 25.0
    distance = character.position.distance_to(definition.target_position)
    return max(0.0, 25.0 * (1.0 - distance / max_distance))


def need_score(character: Character) -> float:
    if character.has_critical_needs:
        return 5.0
    return character.happiness * 25.0


def deadline_score(definition: TaskDefinition, now: float, horizon_hours: float = 24.0) -> float:
    remaining = definition.remaining_time(now)
    if remaining is None:
        return 10.0
    hours = remaining / 3600.0
    return max(0.0, 1.0 - hours / horizon_hours) * 20.0


def score_task(
    task: BaseTask,
    character: Character,
    now: float | None = None,
    config: SchedulerConfig | None = None,
) -> float:
    """
    Composite fitness of ``character`` for ``task``.

    Feasibility is not checked here; callers filter with ``task.can_execute`` first.
    """
    config = config or SchedulerConfig()
    now = time.time() if now is None else now
    definition = task.definition
    return (
        PRIORITY_SCORES[definition.priority]
        + skill_match_score(definition, character)
        + distance_score(definition, character, config.max_scoring_distance)
        + need_score(character)
        + deadline_score(definition, now, config.urgency_horizon_hours)
    )


@dataclass
class AssignmentResult:
    """Outcome of trying to give one character a task."""

    success: bool
    task: BaseTask | None = None
    score: float = 0.0
    message: str = ""
    character_id: int | None = None


@dataclass
class ReassignmentResult:
    unassigned: int = 0
    successful: int = 0
    failed: int = 0
    results: list[AssignmentResult] = field(default_factory=list)


@dataclass
class TaskRecommendation:
    task: BaseTask
    score: float
    reason: str


class TaskAssigner:
    """Greedy assignment on top of a ``TaskManager``."""

    def __init__(
        self,
        manager: TaskManager,
        config: SchedulerConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.manager = manager
        self.config = config or manager.config
        self._clock = clock

    def score(self, task: BaseTask, character: Character) -> float:
        return score_task(task, character, self._clock(), self.config)

    def assign_best_task(self, character: Character) -> AssignmentResult:
        """
        Give ``character`` the highest-scoring feasible Available task.

        Candidates are tried in descending score order until one passes validation.
        """
        ranked = self._ranked_candidates(character)
        if not ranked:
            return AssignmentResult(
                success=False,
                message="No suitable task available",
                character_id=character.id,
            )

        for task, score in ranked:
            check = self.manager.validator.validate_assignment(task, character)
            if not check.is_valid:
                continue
            if task.assign_character(character.id):
                logger.debug("Assigned character %s to %s (score %.1f)", character.id, task.id, score)
                return AssignmentResult(
                    success=True,
                    task=task,
                    score=score,
                    message=f"Assigned to {task.definition.name}",
                    character_id=character.id,
                )

        return AssignmentResult(
            success=False,
            message="All candidate tasks rejected the assignment",
            character_id=character.id,
        )

    def assign_tasks(self, characters: Iterable[Character]) -> list[AssignmentResult]:
        """Assign in descending order of overall skill, so stronger characters pick first."""
        ordered = sorted(characters, key=lambda c: c.overall_skill(), reverse=True)
        return [self.assign_best_task(character) for character in ordered]

    def get_task_recommendations(
        self, character: Character, max_results: int | None = None
    ) -> list[TaskRecommendation]:
        limit = self.config.max_recommendations if max_results is None else max_results
        return [
            TaskRecommendation(task=task, score=score, reason=self._explain(task, character))
            for task, score in self._ranked_candidates(character)[:limit]
        ]

    def reassign_all_tasks(self, characters: Iterable[Character]) -> ReassignmentResult:
        """Release every Assigned task, then run a fresh batch assignment."""
        result = ReassignmentResult()
        for task in self.manager.get_tasks_by_status(TaskStatus.ASSIGNED):
            for character_id in task.assigned_characters:
                if task.unassign_character(character_id):
                    result.unassigned += 1

        result.results = self.assign_tasks(characters)
        result.successful = sum(1 for r in result.results if r.success)
        result.failed = len(result.results) - result.successful
        logger.info(
            "Reassignment: %d released, %d assigned, %d unassigned",
            result.unassigned,
            result.successful,
            result.failed,
        )
        return result

    def _ranked_candidates(self, character: Character) -> list[tuple[BaseTask, float]]:
        now = self._clock()
        scored = [
            (task, score_task(task, character, now, self.config))
            for task in self.manager.get_available_tasks()
            if task.can_execute(character)
        ]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored

    def _explain(self, task: BaseTask, character: Character) -> str:
        definition = task.definition
        reasons = []

        if definition.priority <= TaskPriority.HIGH:
            reasons.append(f"{definition.priority.name.title()} priority")

        best = None
        best_margin = -1
        for req in definition.skill_requirements:
            margin = character.skill_level(req.skill) - req.min_level
            if margin > best_margin:
                best, best_margin = req, margin
        if best is not None:
            reasons.append(f"Good {best.skill.value} skill ({character.skill_level(best.skill)})")

        if definition.target_position is not None and character.position is not None:
            distance = character.position.distance_to(definition.target_position)
            if distance < NEARBY_DISTANCE:
                reasons.append(f"Nearby ({distance:.1f} units)")

        return ", ".join(reasons) if reasons else "General fit"
