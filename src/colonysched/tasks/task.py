"""Task State Machine - Runtime task objects and per-kind progress rules.

States::

    PENDING -> AVAILABLE -> ASSIGNED -> IN_PROGRESS -> COMPLETED | FAILED | CANCELLED
                               |             ^   |
                               v             |   v
                           AVAILABLE         BLOCKED

BLOCKED is re-evaluated on every tick and returns to IN_PROGRESS as soon as the work
kind reports progress again.
"""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import datetime

from colonysched.tasks.characters import Character
from colonysched.tasks.models import (
    TERMINAL_STATUSES,
    SkillType,
    TaskDefinition,
    TaskId,
    TaskResult,
    TaskStatus,
)

logger = logging.getLogger(__name__)

StatusListener = Callable[["BaseTask", TaskStatus, TaskStatus], None]
ProgressListener = Callable[["BaseTask", float], None]

PROGRESS_EPSILON = 0.001


class BaseTask(ABC):
    """
    Runtime instance of a ``TaskDefinition``.

    Subclasses only decide how much work a tick produces (``_on_update``). Status and
    progress listeners run after the new value is stored.
    """

    # Work units needed per second of estimated duration, and work produced per
    # second of ticking at efficiency 1.0.
    WORK_PER_SECOND = 100.0
    WORK_RATE = 100.0

    def __init__(
        self,
        definition: TaskDefinition,
        clock: Callable[[], float] = time.time,
        execute_radius_factor: float = 2.0,
    ) -> None:
        self.definition = definition
        self._clock = clock
        self.execute_radius_factor = execute_radius_factor
        self._status = TaskStatus.PENDING
        self._progress = 0.0
        self._assigned: list[int] = []
        self._work_done = 0.0
        self.required_work = definition.estimated_duration * self.WORK_PER_SECOND
        self.start_time: float | None = None
        self.completion_time: float | None = None
        self._status_listeners: list[StatusListener] = []
        self._progress_listeners: list[ProgressListener] = []

    @property
    def id(self) -> TaskId:
        return self.definition.id

    @property
    def status(self) -> TaskStatus:
        return self._status

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def assigned_characters(self) -> tuple[int, ...]:
        return tuple(self._assigned)

    @property
    def is_terminal(self) -> bool:
        return self._status in TERMINAL_STATUSES

    def on_status_changed(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener) -> None:
        if listener in self._status_listeners:
            self._status_listeners.remove(listener)

    def on_progress(self, listener: ProgressListener) -> None:
        self._progress_listeners.append(listener)

    def can_execute(self, character: Character) -> bool:
        """Feasibility filter used before scoring."""
        if self._status not in (TaskStatus.AVAILABLE, TaskStatus.ASSIGNED):
            return False
        if len(self._assigned) >= self.definition.max_assigned_characters:
            return False
        if character.id in self._assigned:
            return False

        for req in self.definition.skill_requirements:
            if character.skill_level(req.skill) < req.min_level:
                return False

        target = self.definition.target_position
        if target is not None and character.position is not None:
            tolerance = self.definition.work_radius * self.execute_radius_factor
            if character.position.distance_to(target) > tolerance:
                return False

        return True

    def assign_character(self, character_id: int) -> bool:
        if self.is_terminal or self._status == TaskStatus.PENDING:
            return False
        if character_id in self._assigned:
            return False
        if len(self._assigned) >= self.definition.max_assigned_characters:
            return False

        self._assigned.append(character_id)
        if self._status == TaskStatus.AVAILABLE:
            self._set_status(TaskStatus.ASSIGNED)
        return True

    def unassign_character(self, character_id: int) -> bool:
        if character_id not in self._assigned:
            return False

        self._assigned.remove(character_id)
        if not self._assigned and self._status == TaskStatus.ASSIGNED:
            self._set_status(TaskStatus.AVAILABLE)
        return True

    def make_available(self) -> bool:
        """Pending -> Available, once prerequisites are done."""
        if self._status != TaskStatus.PENDING:
            return False
        self._set_status(TaskStatus.AVAILABLE)
        return True

    def start(self) -> TaskResult:
        if self._status != TaskStatus.ASSIGNED or not self._assigned:
            return TaskResult.FAILURE

        self.start_time = self._clock()
        self._set_status(TaskStatus.IN_PROGRESS)
        return TaskResult.IN_PROGRESS

    def update(self, delta_time: float, workers: Sequence[Character] | None = None) -> TaskResult:
        """
        Advance the task by one tick.

        Args:
            delta_time: Simulated seconds since the last tick.
            workers: Capability snapshots of the assigned characters. None when the
                caller cannot resolve them; assigned characters are then assumed to
                meet every minimum requirement.
        """
        if self._status not in (TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED):
            return TaskResult.FAILURE

        now = self._clock()
        if self.start_time is not None and math.isfinite(self.definition.max_duration):
            if now - self.start_time > self.definition.max_duration:
                logger.info("%s exceeded its maximum duration", self.id)
                self._set_status(TaskStatus.FAILED)
                return TaskResult.FAILURE

        if self.definition.is_expired(now):
            logger.info("%s missed its deadline", self.id)
            self._set_status(TaskStatus.FAILED)
            return TaskResult.FAILURE

        result = self._on_update(delta_time, workers)

        if result == TaskResult.SUCCESS:
            self._set_status(TaskStatus.IN_PROGRESS)
            return self.complete()
        if result == TaskResult.FAILURE:
            self._set_status(TaskStatus.FAILED)
        elif result == TaskResult.BLOCKED:
            self._set_status(TaskStatus.BLOCKED)
        elif result == TaskResult.IN_PROGRESS:
            self._set_status(TaskStatus.IN_PROGRESS)
        return result

    def complete(self) -> TaskResult:
        if self._status != TaskStatus.IN_PROGRESS:
            return TaskResult.FAILURE

        self.completion_time = self._clock()
        self._set_progress(1.0)
        self._set_status(TaskStatus.COMPLETED)
        return TaskResult.SUCCESS

    def cancel(self) -> bool:
        """Force CANCELLED from any non-terminal state."""
        if self.is_terminal:
            return False
        self._set_status(TaskStatus.CANCELLED)
        return True

    def describe(self) -> str:
        definition = self.definition
        lines = [
            f"Task: {definition.name}",
            f"Type: {definition.type.value}",
            f"Priority: {definition.priority.name}",
            f"Status: {self._status.value}",
            f"Progress: {self._progress:.0%}",
            f"Assigned: {len(self._assigned)}/{definition.max_assigned_characters}",
        ]
        if self.start_time is not None:
            lines.append(f"Started: {datetime.fromtimestamp(self.start_time).isoformat()}")
        if self.completion_time is not None:
            lines.append(f"Completed: {datetime.fromtimestamp(self.completion_time).isoformat()}")
        if definition.skill_requirements:
            lines.append("Skill requirements:")
            lines.extend(
                f"  - {req.skill.value}: level {req.min_level}"
                for req in definition.skill_requirements
            )
        return "\n".join(lines)

    @abstractmethod
    def _on_update(self, delta_time: float, workers: Sequence[Character] | None) -> TaskResult:
        """Accumulate work for one tick and report the outcome."""

    def _advance(self, efficiency: float, delta_time: float) -> TaskResult:
        self._work_done += efficiency * delta_time * self.WORK_RATE
        self._set_progress(self._work_done / self.required_work)
        if self._work_done >= self.required_work:
            return TaskResult.SUCCESS
        return TaskResult.IN_PROGRESS

    def _eligible_levels(
        self, skill: SkillType, workers: Sequence[Character] | None
    ) -> list[int]:
        """Skill levels of workers meeting the requirement on ``skill``."""
        req = self.definition.get_skill_requirement(skill)
        min_level = req.min_level if req else 0
        if workers is None:
            return [min_level] * len(self._assigned)
        return [
            w.skill_level(skill)
            for w in workers
            if w.id in self._assigned and w.skill_level(skill) >= min_level
        ]

    def _set_status(self, new_status: TaskStatus) -> None:
        if self._status == new_status:
            return
        old_status = self._status
        self._status = new_status
        logger.debug("%s: %s -> %s", self.id, old_status.value, new_status.value)
        for listener in list(self._status_listeners):
            listener(self, old_status, new_status)

    def _set_progress(self, progress: float) -> None:
        progress = max(0.0, min(1.0, progress))
        if abs(self._progress - progress) < PROGRESS_EPSILON:
            return
        self._progress = progress
        for listener in list(self._progress_listeners):
            listener(self, progress)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id}, {self._status.value}, {self._progress:.0%})"


class GenericTask(BaseTask):
    """Any work kind without a dedicated progress rule."""

    COLLABORATION_BONUS = 0.3

    def _on_update(self, delta_time: float, workers: Sequence[Character] | None) -> TaskResult:
        count = len(self._assigned)
        if count == 0:
            return TaskResult.BLOCKED

        requirements = self.definition.skill_requirements
        if not requirements:
            efficiency = 1.0
        else:
            efficiency = 0.0
            for req in requirements:
                levels = self._eligible_levels(req.skill, workers) or [req.min_level]
                average = sum(levels) / len(levels)
                efficiency += max(0.1, average / 20) * req.weight

        if count > 1:
            efficiency *= 1 + (count - 1) * self.COLLABORATION_BONUS

        return self._advance(max(0.1, efficiency), delta_time)


class ConstructionTask(BaseTask):
    """Scales with construction skill; extra builders add diminishing help."""

    WORK_PER_SECOND = 150.0
    COLLABORATION_BONUS = 0.3

    def _on_update(self, delta_time: float, workers: Sequence[Character] | None) -> TaskResult:
        if not self._assigned:
            return TaskResult.BLOCKED

        if not self.definition.has_skill_requirement(SkillType.CONSTRUCTION):
            efficiency = 1.0
            builders = len(self._assigned) if workers is None else len(
                [w for w in workers if w.id in self._assigned]
            )
        else:
            levels = self._eligible_levels(SkillType.CONSTRUCTION, workers)
            builders = len(levels)
            if builders == 0:
                return TaskResult.BLOCKED
            efficiency = max(0.5, (sum(levels) / builders) / 15)

        if builders == 0:
            return TaskResult.BLOCKED
        efficiency *= 1 + (builders - 1) * self.COLLABORATION_BONUS
        return self._advance(efficiency, delta_time)


class MiningTask(BaseTask):
    """Blocked outright unless some worker meets the mining requirement."""

    WORK_PER_SECOND = 120.0
    WORK_RATE = 80.0

    def _on_update(self, delta_time: float, workers: Sequence[Character] | None) -> TaskResult:
        if not self._assigned:
            return TaskResult.BLOCKED

        if not self.definition.has_skill_requirement(SkillType.MINING):
            return self._advance(1.0, delta_time)

        levels = self._eligible_levels(SkillType.MINING, workers)
        if not levels:
            return TaskResult.BLOCKED
        return self._advance(max(0.3, max(levels) / 12), delta_time)


class ResearchTask(BaseTask):
    """Slow and steady; unqualified researchers make no progress at all."""

    WORK_PER_SECOND = 200.0
    WORK_RATE = 50.0
    UNSKILLED_RATE = 0.1

    def _on_update(self, delta_time: float, workers: Sequence[Character] | None) -> TaskResult:
        if not self._assigned:
            return TaskResult.BLOCKED

        if not self.definition.has_skill_requirement(SkillType.RESEARCH):
            return self._advance(self.UNSKILLED_RATE, delta_time)

        levels = self._eligible_levels(SkillType.RESEARCH, workers)
        if not levels:
            return TaskResult.IN_PROGRESS
        return self._advance(max(0.2, max(levels) / 10), delta_time)
