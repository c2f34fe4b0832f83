"""Collaboration records - Groups, participants, reservations and coordination results."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from colonysched.tasks.models import SkillRequirement, TaskId, TaskType, Vector3


class CollaborationType(StrEnum):
    GENERAL = "general"
    CONSTRUCTION = "construction"
    RESEARCH = "research"
    MINING = "mining"
    DEFENSE = "defense"
    CRAFTING = "crafting"
    HAULING = "hauling"


class CollaborationStatus(StrEnum):
    FORMING = "forming"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"


CLOSED_GROUP_STATUSES = frozenset({CollaborationStatus.COMPLETED, CollaborationStatus.FAILED})


class CollaborationRole(StrEnum):
    LEADER = "leader"
    WORKER = "worker"
    SPECIALIST = "specialist"
    ASSISTANT = "assistant"
    OBSERVER = "observer"


class ParticipantStatus(StrEnum):
    ACTIVE = "active"
    IDLE = "idle"
    BUSY = "busy"
    UNAVAILABLE = "unavailable"


class ResourceType(StrEnum):
    WORK_AREA = "work_area"
    MATERIAL = "material"
    TOOL = "tool"
    EQUIPMENT = "equipment"
    STORAGE = "storage"


class ConflictType(StrEnum):
    CHARACTER_OVERASSIGNMENT = "character_overassignment"
    RESOURCE_CONFLICT = "resource_conflict"
    TIME_CONFLICT = "time_conflict"
    SKILL_CONFLICT = "skill_conflict"
    MISSING_ROLE = "missing_role"


# Group rules per collaboration type
MIN_PARTICIPANTS = {
    CollaborationType.CONSTRUCTION: 2,
    CollaborationType.DEFENSE: 2,
    CollaborationType.RESEARCH: 1,
    CollaborationType.MINING: 1,
}
REQUIRED_ROLES = {
    CollaborationType.CONSTRUCTION: CollaborationRole.LEADER,
    CollaborationType.RESEARCH: CollaborationRole.SPECIALIST,
}
RECOMMENDED_PARTICIPANTS = {
    CollaborationType.CONSTRUCTION: 3,
    CollaborationType.MINING: 2,
    CollaborationType.RESEARCH: 2,
    CollaborationType.DEFENSE: 4,
}

_TASK_TYPE_COLLABORATION = {
    TaskType.CONSTRUCTION: CollaborationType.CONSTRUCTION,
    TaskType.RESEARCH: CollaborationType.RESEARCH,
    TaskType.MINING: CollaborationType.MINING,
}


def min_participants(kind: CollaborationType) -> int:
    return MIN_PARTICIPANTS.get(kind, 1)


def recommended_participants(kind: CollaborationType) -> int:
    return RECOMMENDED_PARTICIPANTS.get(kind, 2)


def collaboration_type_for(task_type: TaskType) -> CollaborationType:
    """Collaboration flavour implied by a task's work kind."""
    return _TASK_TYPE_COLLABORATION.get(task_type, CollaborationType.GENERAL)


@dataclass
class CollaborationParticipant:
    """One character's seat in a group."""

    character_id: int
    role: CollaborationRole
    join_time: float
    status: ParticipantStatus = ParticipantStatus.ACTIVE
    leave_time: float | None = None
    contribution_score: float = 0.0


@dataclass
class CollaborationGroup:
    """Characters jointly working one multi-assignee task."""

    task_id: TaskId
    type: CollaborationType
    max_participants: int
    created_at: float = field(default_factory=time.time)
    status: CollaborationStatus = CollaborationStatus.FORMING
    participants: list[CollaborationParticipant] = field(default_factory=list)
    required_skills: list[SkillRequirement] = field(default_factory=list)
    start_time: float | None = None
    end_time: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == CollaborationStatus.ACTIVE

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_GROUP_STATUSES

    @property
    def can_accept_more(self) -> bool:
        return len(self.participants) < self.max_participants

    @property
    def duration(self) -> float | None:
        if self.start_time is None or self.end_time is None:
            return None
        return self.end_time - self.start_time

    @property
    def participant_ids(self) -> list[int]:
        return [p.character_id for p in self.participants]

    def get_participant(self, character_id: int) -> CollaborationParticipant | None:
        for participant in self.participants:
            if participant.character_id == character_id:
                return participant
        return None

    def has_role(self, role: CollaborationRole) -> bool:
        return any(p.role == role for p in self.participants)

    def __str__(self) -> str:
        return (
            f"Group {self.task_id}: {self.type.value} ({self.status.value}) - "
            f"{len(self.participants)}/{self.max_participants} participants"
        )


@dataclass
class ResourceReservation:
    """Time-bounded exclusive claim on a grid cell."""

    position: Vector3
    character_id: int
    resource_type: ResourceType
    reserved_at: float
    expires_at: float
    active: bool = True

    @property
    def cell(self) -> Vector3:
        return self.position.floor()

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def is_active_at(self, now: float) -> bool:
        return self.active and not self.is_expired(now)

    def remaining_time(self, now: float) -> float:
        return max(0.0, self.expires_at - now)


@dataclass
class CollaborationResult:
    is_success: bool
    message: str = ""
    group: CollaborationGroup | None = None

    @classmethod
    def success(cls, message: str, group: CollaborationGroup | None = None) -> CollaborationResult:
        return cls(True, message, group)

    @classmethod
    def failure(cls, message: str) -> CollaborationResult:
        return cls(False, message)


@dataclass
class ReservationResult:
    is_success: bool
    message: str = ""
    reservation: ResourceReservation | None = None

    @classmethod
    def success(cls, reservation: ResourceReservation) -> ReservationResult:
        return cls(True, "Resource reserved", reservation)

    @classmethod
    def failure(cls, message: str) -> ReservationResult:
        return cls(False, message)


@dataclass
class ResourceConflictResult:
    has_conflict: bool
    conflicting_reservations: list[ResourceReservation] = field(default_factory=list)
    conflict_radius: float = 0.0
    reason: str = ""


@dataclass
class CollaborationConflict:
    """Why a character cannot be in two groups at once."""

    has_conflict: bool = False
    reason: str = ""
    conflict_type: ConflictType | None = None
    conflicting_groups: list[CollaborationGroup] = field(default_factory=list)


@dataclass
class CollaborationAssignment:
    task_id: TaskId
    character_id: int
    role: CollaborationRole
    score: float
    assigned_at: float = field(default_factory=time.time)


@dataclass
class AssignmentConflict:
    type: ConflictType
    character_id: int | None = None
    task_id: TaskId | None = None
    conflicting_assignments: list[CollaborationAssignment] = field(default_factory=list)
    description: str = ""


@dataclass
class ConflictResolution:
    conflict_type: ConflictType
    resolution: str
    selected_assignment: CollaborationAssignment | None = None
    is_resolved: bool = True
    resolved_at: float = field(default_factory=time.time)


@dataclass
class TaskCoordinationResult:
    created_groups: list[CollaborationGroup] = field(default_factory=list)
    assignments: list[CollaborationAssignment] = field(default_factory=list)
    conflicts: list[AssignmentConflict] = field(default_factory=list)
    resolutions: list[ConflictResolution] = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return all(r.is_resolved for r in self.resolutions)

    @property
    def unresolved(self) -> list[ConflictResolution]:
        return [r for r in self.resolutions if not r.is_resolved]


@dataclass
class CollaborationStats:
    total_groups: int = 0
    active_groups: int = 0
    total_participants: int = 0
    active_reservations: int = 0
    characters_in_collaboration: int = 0
    groups_by_type: dict[CollaborationType, int] = field(default_factory=dict)
    participants_by_role: dict[CollaborationRole, int] = field(default_factory=dict)

    @property
    def efficiency(self) -> float:
        """Share of groups currently active."""
        return self.active_groups / self.total_groups if self.total_groups else 0.0

    def __str__(self) -> str:
        return (
            f"{self.active_groups}/{self.total_groups} active groups, "
            f"{self.total_participants} participants, "
            f"{self.active_reservations} reservations, efficiency {self.efficiency:.0%}"
        )


@dataclass
class CollaborationEfficiencyReport:
    stats: CollaborationStats
    task_completion_rate: float = 0.0
    average_group_size: float = 0.0
    resource_utilization: float = 0.0
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_groups": self.stats.total_groups,
            "active_groups": self.stats.active_groups,
            "total_participants": self.stats.total_participants,
            "active_reservations": self.stats.active_reservations,
            "efficiency": round(self.stats.efficiency, 4),
            "task_completion_rate": round(self.task_completion_rate, 4),
            "average_group_size": round(self.average_group_size, 4),
            "resource_utilization": round(self.resource_utilization, 4),
            "recommendations": list(self.recommendations),
        }

    def __str__(self) -> str:
        return (
            f"Completion {self.task_completion_rate:.0%}, "
            f"average group size {self.average_group_size:.1f}, "
            f"resource utilisation {self.resource_utilization:.0%}, "
            f"{len(self.recommendations)} recommendations"
        )
