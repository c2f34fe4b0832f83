"""Task Model - Identifiers, enums and the static description of a unit of work."""

from __future__ import annotations

import copy
import math
import time
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import Any


@dataclass(frozen=True, order=True)
class TaskId:
    """Opaque task identifier. ``TaskId(0)`` asks the manager to pick one."""

    value: int = 0

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError(f"TaskId must be non-negative, got {self.value}")

    @property
    def is_unassigned(self) -> bool:
        return self.value == 0

    def __str__(self) -> str:
        return f"Task_{self.value}"


class TaskType(StrEnum):
    """Work kinds."""

    CONSTRUCTION = "construction"
    MINING = "mining"
    GROWING = "growing"
    COOKING = "cooking"
    CRAFTING = "crafting"
    RESEARCH = "research"
    HAULING = "hauling"
    CLEANING = "cleaning"
    HUNTING = "hunting"
    SOCIAL = "social"
    MEDICAL = "medical"
    ART = "art"
    MAINTENANCE = "maintenance"
    DEFENSE = "defense"


class TaskPriority(IntEnum):
    """Task urgency. Lower value is more urgent."""

    CRITICAL = 1
    HIGH = 2
    NORMAL = 3
    LOW = 4
    IDLE = 5


class TaskStatus(StrEnum):
    """Runtime task states."""

    PENDING = "pending"
    AVAILABLE = "available"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED})


class TaskResult(StrEnum):
    """Outcome of a lifecycle call or a single work tick."""

    SUCCESS = "success"
    FAILURE = "failure"
    IN_PROGRESS = "in_progress"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"


class SkillType(StrEnum):
    """Character skill kinds."""

    MINING = "mining"
    CONSTRUCTION = "construction"
    GROWING = "growing"
    COOKING = "cooking"
    CRAFTING = "crafting"
    RESEARCH = "research"
    MEDICINE = "medicine"
    COMBAT = "combat"
    SOCIAL = "social"
    ANIMALS = "animals"


@dataclass(frozen=True)
class Vector3:
    """World position."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def distance_to(self, other: Vector3) -> float:
        return math.sqrt(
            (self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2
        )

    def floor(self) -> Vector3:
        """Snap to the containing grid cell."""
        return Vector3(float(math.floor(self.x)), float(math.floor(self.y)), float(math.floor(self.z)))

    def __str__(self) -> str:
        return f"({self.x:g}, {self.y:g}, {self.z:g})"


@dataclass(frozen=True)
class SkillRequirement:
    """Minimum skill level a worker needs, weighted for fitness scoring."""

    skill: SkillType
    min_level: int
    weight: float = 1.0


@dataclass
class TaskDefinition:
    """
    Static description a task is instantiated from.

    Immutable by convention once handed to the manager; the manager only fills in
    ``id`` when it is unassigned.
    """

    name: str
    type: TaskType = TaskType.HAULING
    priority: TaskPriority = TaskPriority.NORMAL
    id: TaskId = field(default_factory=TaskId)
    description: str = ""

    target_position: Vector3 | None = None
    work_radius: float = 1.0

    skill_requirements: list[SkillRequirement] = field(default_factory=list)

    prerequisites: list[TaskId] = field(default_factory=list)
    dependents: list[TaskId] = field(default_factory=list)

    estimated_duration: float = 1.0  # seconds of work at unit efficiency
    max_duration: float = math.inf  # wall seconds after start before the task fails

    required_items: dict[str, int] = field(default_factory=dict)
    produced_items: dict[str, int] = field(default_factory=dict)

    can_be_interrupted: bool = True
    requires_tools: bool = False
    max_assigned_characters: int = 1
    created_at: float = field(default_factory=time.time)
    deadline: float | None = None

    custom_properties: dict[str, Any] = field(default_factory=dict)

    def add_skill_requirement(self, skill: SkillType, min_level: int, weight: float = 1.0) -> None:
        self.skill_requirements.append(SkillRequirement(skill, min_level, weight))

    def add_prerequisite(self, task_id: TaskId) -> None:
        if task_id not in self.prerequisites:
            self.prerequisites.append(task_id)

    def add_dependent(self, task_id: TaskId) -> None:
        if task_id not in self.dependents:
            self.dependents.append(task_id)

    def has_skill_requirement(self, skill: SkillType) -> bool:
        return any(req.skill == skill for req in self.skill_requirements)

    def get_skill_requirement(self, skill: SkillType) -> SkillRequirement | None:
        for req in self.skill_requirements:
            if req.skill == skill:
                return req
        return None

    def min_skill_level(self, skill: SkillType) -> int:
        req = self.get_skill_requirement(skill)
        return req.min_level if req else 0

    def is_expired(self, now: float | None = None) -> bool:
        if self.deadline is None:
            return False
        return (time.time() if now is None else now) > self.deadline

    def remaining_time(self, now: float | None = None) -> float | None:
        """Seconds until the deadline, clamped at zero. None without a deadline."""
        if self.deadline is None:
            return None
        remaining = self.deadline - (time.time() if now is None else now)
        return max(0.0, remaining)

    def clone(self) -> TaskDefinition:
        return copy.deepcopy(self)

    def __str__(self) -> str:
        return f"{self.name} ({self.type.value}, {self.priority.name})"
