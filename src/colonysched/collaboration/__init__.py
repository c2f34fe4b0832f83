"""Multi-character collaboration: groups, reservations and conflict arbitration."""

from colonysched.collaboration.manager import (
    CONFLICT_DETECTED,
    GROUP_SUSPENDED,
    CollaborationManager,
)
from colonysched.collaboration.models import (
    AssignmentConflict,
    CollaborationAssignment,
    CollaborationConflict,
    CollaborationEfficiencyReport,
    CollaborationGroup,
    CollaborationParticipant,
    CollaborationResult,
    CollaborationRole,
    CollaborationStats,
    CollaborationStatus,
    CollaborationType,
    ConflictResolution,
    ConflictType,
    ParticipantStatus,
    ReservationResult,
    ResourceConflictResult,
    ResourceReservation,
    ResourceType,
    TaskCoordinationResult,
)
from colonysched.collaboration.system import CollaborationSystem

__all__ = [
    "CONFLICT_DETECTED",
    "GROUP_SUSPENDED",
    "AssignmentConflict",
    "CollaborationAssignment",
    "CollaborationConflict",
    "CollaborationEfficiencyReport",
    "CollaborationGroup",
    "CollaborationManager",
    "CollaborationParticipant",
    "CollaborationResult",
    "CollaborationRole",
    "CollaborationStats",
    "CollaborationStatus",
    "CollaborationSystem",
    "CollaborationType",
    "ConflictResolution",
    "ConflictType",
    "ParticipantStatus",
    "ReservationResult",
    "ResourceConflictResult",
    "ResourceReservation",
    "ResourceType",
    "TaskCoordinationResult",
]
