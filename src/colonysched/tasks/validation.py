"""Task Validator - Stateless checks on definitions, assignments and dependencies."""

from __future__ import annotations

import time
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from colonysched.tasks.characters import Character
from colonysched.tasks.models import TaskDefinition, TaskId, TaskStatus

if TYPE_CHECKING:
    from colonysched.tasks.task import BaseTask

MIN_SKILL_LEVEL = 0
MAX_SKILL_LEVEL = 20


@dataclass
class ValidationResult:
    """Errors block the operation, warnings do not."""

    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls()

    @classmethod
    def failure(cls, *errors: str) -> ValidationResult:
        return cls(is_valid=False, errors=list(errors))

    def add_error(self, error: str) -> None:
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)


class TaskValidator:
    """Pure validation rules. Holds only its distance tolerance."""

    def __init__(
        self, warn_radius_factor: float = 3.0, clock: Callable[[], float] = time.time
    ) -> None:
        self.warn_radius_factor = warn_radius_factor
        self._clock = clock

    def validate_definition(self, definition: TaskDefinition) -> ValidationResult:
        """Check structural invariants of a definition."""
        result = ValidationResult()

        if not definition.name or not definition.name.strip():
            result.add_error("Task name must not be empty")

        if not definition.estimated_duration > 0:
            result.add_error("Estimated duration must be greater than 0")

        if not definition.max_duration >= definition.estimated_duration:
            result.add_error("Maximum duration must not be less than estimated duration")

        if definition.max_assigned_characters <= 0:
            result.add_error("Max assigned characters must be greater than 0")

        if definition.work_radius < 0:
            result.add_error("Work radius must not be negative")

        for req in definition.skill_requirements:
            if not MIN_SKILL_LEVEL <= req.min_level <= MAX_SKILL_LEVEL:
                result.add_error(
                    f"Minimum level for {req.skill.value} must be between "
                    f"{MIN_SKILL_LEVEL} and {MAX_SKILL_LEVEL}"
                )
            if not req.weight > 0:
                result.add_error(f"Weight for {req.skill.value} must be greater than 0")

        if not definition.id.is_unassigned:
            if definition.id in definition.prerequisites:
                result.add_error("Task cannot list itself as a prerequisite")
            if definition.id in definition.dependents:
                result.add_error("Task cannot list itself as a dependent")

        for task_id in _duplicates(definition.prerequisites):
            result.add_warning(f"Prerequisite {task_id} is listed more than once")
        for task_id in _duplicates(definition.dependents):
            result.add_warning(f"Dependent {task_id} is listed more than once")

        if definition.deadline is not None and definition.deadline <= self._clock():
            result.add_warning("Task deadline has already passed")

        for item, count in definition.required_items.items():
            if count <= 0:
                result.add_error(f"Required item {item} must have a positive count")
        for item, count in definition.produced_items.items():
            if count <= 0:
                result.add_error(f"Produced item {item} must have a positive count")

        return result

    def validate_assignment(self, task: BaseTask, character: Character) -> ValidationResult:
        """Check whether ``character`` may join ``task`` right now."""
        result = ValidationResult()
        definition = task.definition

        if task.status not in (TaskStatus.AVAILABLE, TaskStatus.ASSIGNED):
            result.add_error(f"Task status {task.status.value} does not allow assignment")

        if len(task.assigned_characters) >= definition.max_assigned_characters:
            result.add_error("Task has reached its maximum number of assigned characters")

        if character.id in task.assigned_characters:
            result.add_error("Character is already assigned to this task")

        for req in definition.skill_requirements:
            level = character.skill_level(req.skill)
            if level < req.min_level:
                result.add_error(
                    f"{req.skill.value} level {level} is below the required {req.min_level}"
                )
            elif level == req.min_level:
                result.add_warning(f"{req.skill.value} level exactly meets the minimum")

        if definition.target_position is not None and character.position is not None:
            distance = character.position.distance_to(definition.target_position)
            if distance > definition.work_radius * self.warn_radius_factor:
                result.add_warning(f"Character is far from the task site ({distance:.1f} units)")

        if character.has_critical_needs:
            result.add_warning(
                f"Character has unmet critical needs: {', '.join(character.critical_needs)}"
            )

        return result

    def validate_dependencies(
        self, definition: TaskDefinition, existing_tasks: Iterable[BaseTask]
    ) -> ValidationResult:
        """Check the definition's edges against the tasks that already exist."""
        result = ValidationResult()
        existing_ids = {task.id for task in existing_tasks}

        for task_id in definition.prerequisites:
            if task_id not in existing_ids:
                result.add_error(f"Prerequisite {task_id} does not exist")

        for task_id in definition.dependents:
            if task_id not in existing_ids:
                result.add_warning(
                    f"Dependent {task_id} does not exist yet; the edge is kept until it is created"
                )

        for task_id in set(definition.prerequisites) & set(definition.dependents):
            result.add_error(f"Task {task_id} is both a prerequisite and a dependent")

        if not definition.id.is_unassigned and definition.id in definition.prerequisites:
            result.add_error("Task cannot depend on itself")

        return result


def _duplicates(ids: list[TaskId]) -> list[TaskId]:
    return [task_id for task_id, count in Counter(ids).items() if count > 1]
