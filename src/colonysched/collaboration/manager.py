"""Collaboration Manager - Groups, spatial reservations and conflict arbitration."""

from __future__ import annotations

import logging
import time
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable

from colonysched.collaboration.models import (
    REQUIRED_ROLES,
    AssignmentConflict,
    CollaborationAssignment,
    CollaborationConflict,
    CollaborationGroup,
    CollaborationParticipant,
    CollaborationResult,
    CollaborationRole,
    CollaborationStats,
    CollaborationStatus,
    CollaborationType,
    ConflictResolution,
    ConflictType,
    ReservationResult,
    ResourceConflictResult,
    ResourceReservation,
    ResourceType,
    TaskCoordinationResult,
    collaboration_type_for,
    min_participants,
)
from colonysched.config import SchedulerConfig
from colonysched.events import EventHub
from colonysched.tasks.assignment import score_task
from colonysched.tasks.characters import Character
from colonysched.tasks.errors import TaskNotFoundError
from colonysched.tasks.manager import TaskManager
from colonysched.tasks.models import TaskId, TaskStatus, Vector3
from colonysched.tasks.task import BaseTask

logger = logging.getLogger(__name__)

GROUP_SUSPENDED = "group_suspended"
CONFLICT_DETECTED = "conflict_detected"

_FAILED_TASK_STATUSES = (TaskStatus.FAILED, TaskStatus.CANCELLED)


class CollaborationManager:
    """
    Arbitrates shared work between characters.

    Holds one group per multi-assignee task, one reservation per grid cell and, for
    each character, the group it currently works in.
    """

    def __init__(
        self,
        tasks: TaskManager,
        config: SchedulerConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.tasks = tasks
        self.config = config or tasks.config
        self._clock = clock
        self._groups: dict[TaskId, CollaborationGroup] = {}
        self._reservations: dict[Vector3, ResourceReservation] = {}
        self._memberships: dict[int, TaskId] = {}
        self.events = EventHub()

    # -- groups ----------------------------------------------------------------

    def create_collaboration_group(
        self, task_id: TaskId, kind: CollaborationType | None = None
    ) -> CollaborationGroup:
        """
        Open a group for a task.

        An existing live group with participants is returned unchanged; an empty or
        closed one is replaced.

        Raises:
            TaskNotFoundError: the task does not exist.
        """
        task = self.tasks.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Unknown task {task_id}")

        existing = self._groups.get(task_id)
        if existing is not None and not existing.is_closed and existing.participants:
            return existing

        definition = task.definition
        group = CollaborationGroup(
            task_id=task_id,
            type=kind or collaboration_type_for(definition.type),
            max_participants=definition.max_assigned_characters,
            created_at=self._clock(),
            required_skills=list(definition.skill_requirements),
        )
        self._groups[task_id] = group
        logger.debug("Opened %s collaboration for %s", group.type.value, task_id)
        return group

    def join_collaboration(
        self,
        task_id: TaskId,
        character_id: int,
        role: CollaborationRole = CollaborationRole.WORKER,
    ) -> CollaborationResult:
        group = self._groups.get(task_id)
        if group is None:
            return CollaborationResult.failure("Collaboration group does not exist")
        if group.is_closed:
            return CollaborationResult.failure(f"Collaboration group is {group.status.value}")
        if not group.can_accept_more:
            return CollaborationResult.failure("Collaboration group is full")
        if group.get_participant(character_id) is not None:
            return CollaborationResult.failure("Character is already in this group")
        if role == CollaborationRole.LEADER and group.has_role(CollaborationRole.LEADER):
            return CollaborationResult.failure("Collaboration group already has a leader")

        current = self.get_character_active_collaboration(character_id)
        if current is not None and current is not group:
            conflict = self.check_collaboration_conflict(group, current)
            if conflict.has_conflict:
                return CollaborationResult.failure(
                    f"Conflicts with existing collaboration: {conflict.reason}"
                )

        now = self._clock()
        group.participants.append(CollaborationParticipant(character_id, role, join_time=now))
        self._memberships[character_id] = task_id

        if group.status != CollaborationStatus.ACTIVE and self._can_start(group):
            group.status = CollaborationStatus.ACTIVE
            if group.start_time is None:
                group.start_time = now
            logger.info("Collaboration on %s is active", task_id)

        return CollaborationResult.success(f"Joined as {role.value}", group)

    def leave_collaboration(self, task_id: TaskId, character_id: int) -> CollaborationResult:
        group = self._groups.get(task_id)
        if group is None:
            return CollaborationResult.failure("Collaboration group does not exist")

        participant = group.get_participant(character_id)
        if participant is None:
            return CollaborationResult.failure("Character is not in this group")

        group.participants.remove(participant)
        participant.leave_time = self._clock()
        if self._memberships.get(character_id) == task_id:
            del self._memberships[character_id]

        if group.is_active and len(group.participants) < min_participants(group.type):
            group.status = CollaborationStatus.SUSPENDED
            logger.warning("Collaboration on %s suspended: not enough participants", task_id)
            self.events.emit(GROUP_SUSPENDED, group)

        return CollaborationResult.success("Left collaboration", group)

    def get_group(self, task_id: TaskId) -> CollaborationGroup | None:
        return self._groups.get(task_id)

    def get_all_groups(self) -> list[CollaborationGroup]:
        return list(self._groups.values())

    def get_character_active_collaboration(self, character_id: int) -> CollaborationGroup | None:
        task_id = self._memberships.get(character_id)
        if task_id is None:
            return None
        group = self._groups.get(task_id)
        if group is None or group.is_closed:
            return None
        return group

    def check_collaboration_conflict(
        self, group: CollaborationGroup, other: CollaborationGroup
    ) -> CollaborationConflict:
        """Time overlap (both active) or spatial overlap of the two task sites."""
        if group.is_active and other.is_active:
            return CollaborationConflict(
                has_conflict=True,
                reason="Both collaborations are active",
                conflict_type=ConflictType.TIME_CONFLICT,
                conflicting_groups=[other],
            )

        first = self.tasks.get_task(group.task_id)
        second = self.tasks.get_task(other.task_id)
        if first is not None and second is not None:
            a = first.definition.target_position
            b = second.definition.target_position
            if a is not None and b is not None:
                if a.distance_to(b) < self.config.spatial_conflict_distance:
                    return CollaborationConflict(
                        has_conflict=True,
                        reason="Task sites overlap",
                        conflict_type=ConflictType.RESOURCE_CONFLICT,
                        conflicting_groups=[other],
                    )

        return CollaborationConflict()

    # -- reservations ----------------------------------------------------------

    def reserve_resource(
        self,
        position: Vector3,
        character_id: int,
        resource_type: ResourceType = ResourceType.WORK_AREA,
        duration: float | None = None,
    ) -> ReservationResult:
        """
        Claim the grid cell containing ``position``.

        A cell held by another character's live reservation is refused. The holder may
        renew; expired reservations are simply overwritten.
        """
        duration = self.config.default_reservation_seconds if duration is None else duration
        if duration <= 0:
            return ReservationResult.failure("Reservation duration must be positive")

        now = self._clock()
        cell = position.floor()
        existing = self._reservations.get(cell)
        if (
            existing is not None
            and existing.is_active_at(now)
            and existing.character_id != character_id
        ):
            return ReservationResult.failure(
                f"Position already reserved by character {existing.character_id}"
            )

        reservation = ResourceReservation(
            position=position,
            character_id=character_id,
            resource_type=resource_type,
            reserved_at=now,
            expires_at=now + duration,
        )
        self._reservations[cell] = reservation
        return ReservationResult.success(reservation)

    def release_resource(self, position: Vector3, character_id: int) -> bool:
        cell = position.floor()
        reservation = self._reservations.get(cell)
        if reservation is None or reservation.character_id != character_id:
            return False
        reservation.active = False
        del self._reservations[cell]
        return True

    def get_reservation(self, position: Vector3) -> ResourceReservation | None:
        """Live reservation covering ``position``, if any."""
        reservation = self._reservations.get(position.floor())
        if reservation is None or not reservation.is_active_at(self._clock()):
            return None
        return reservation

    def check_resource_conflict(
        self, position: Vector3, character_id: int, radius: float | None = None
    ) -> ResourceConflictResult:
        """Other characters' live reservations within ``radius`` of ``position``."""
        radius = self.config.conflict_radius if radius is None else radius
        now = self._clock()
        conflicts = [
            r
            for r in self._reservations.values()
            if r.is_active_at(now)
            and r.character_id != character_id
            and position.distance_to(r.position) <= radius
        ]
        return ResourceConflictResult(
            has_conflict=bool(conflicts),
            conflicting_reservations=conflicts,
            conflict_radius=radius,
            reason=f"{len(conflicts)} reservation(s) within {radius:g} units" if conflicts else "",
        )

    # -- coordination ----------------------------------------------------------

    def coordinate_task_assignment(
        self, characters: Iterable[Character], tasks: Iterable[BaseTask]
    ) -> TaskCoordinationResult:
        """
        Staff multi-assignee tasks in one pass.

        1. Open (or reuse) a group per task.
        2. Rank feasible characters per task; the best becomes leader.
        3. Resolve characters picked for several tasks by keeping their best score.
        4. Commit the survivors: join the group and assign the task.
        5. Report groups still lacking a required role.
        """
        result = TaskCoordinationResult()
        candidates = list(characters)
        collaborative = [t for t in tasks if t.definition.max_assigned_characters > 1]

        for task in collaborative:
            existing = self._groups.get(task.id)
            if existing is None or existing.is_closed:
                result.created_groups.append(self.create_collaboration_group(task.id))

        proposals = self._propose_assignments(candidates, collaborative)
        overassigned = self.detect_assignment_conflicts(proposals)
        resolutions = self.resolve_conflicts(overassigned)

        dropped = self._dropped(overassigned, resolutions)
        kept = [a for a in proposals if id(a) not in dropped]
        self._promote_leaders(kept)

        for assignment in kept:
            joined = self.join_collaboration(
                assignment.task_id, assignment.character_id, assignment.role
            )
            if not joined.is_success:
                logger.debug(
                    "Could not seat %s on %s: %s",
                    assignment.character_id,
                    assignment.task_id,
                    joined.message,
                )
                continue
            if not self.tasks.assign_task(assignment.task_id, assignment.character_id):
                self.leave_collaboration(assignment.task_id, assignment.character_id)
                continue
            result.assignments.append(assignment)

        missing = self._missing_roles(collaborative)
        result.conflicts = overassigned + missing
        result.resolutions = resolutions + self.resolve_conflicts(missing)

        for conflict in result.conflicts:
            self.events.emit(CONFLICT_DETECTED, conflict)
        for resolution in result.unresolved:
            logger.warning("Unresolved conflict: %s", resolution.resolution)

        return result

    def detect_assignment_conflicts(
        self, assignments: list[CollaborationAssignment]
    ) -> list[AssignmentConflict]:
        by_character: dict[int, list[CollaborationAssignment]] = defaultdict(list)
        for assignment in assignments:
            by_character[assignment.character_id].append(assignment)

        return [
            AssignmentConflict(
                type=ConflictType.CHARACTER_OVERASSIGNMENT,
                character_id=character_id,
                conflicting_assignments=picks,
                description=f"Character {character_id} picked for {len(picks)} tasks",
            )
            for character_id, picks in by_character.items()
            if len(picks) > 1
        ]

    def resolve_conflicts(self, conflicts: list[AssignmentConflict]) -> list[ConflictResolution]:
        resolutions = []
        for conflict in conflicts:
            if conflict.type == ConflictType.CHARACTER_OVERASSIGNMENT:
                best = max(conflict.conflicting_assignments, key=lambda a: a.score)
                resolutions.append(
                    ConflictResolution(
                        conflict_type=conflict.type,
                        resolution=f"Kept highest-scoring assignment: {best.task_id}",
                        selected_assignment=best,
                        resolved_at=self._clock(),
                    )
                )
            else:
                resolutions.append(
                    ConflictResolution(
                        conflict_type=conflict.type,
                        resolution=conflict.description,
                        is_resolved=False,
                        resolved_at=self._clock(),
                    )
                )
        return resolutions

    # -- sweep -----------------------------------------------------------------

    def update_collaborations(self, delta_time: float = 0.0) -> None:
        """Close groups whose task has finished and purge expired reservations."""
        now = self._clock()
        for group in list(self._groups.values()):
            if group.is_closed:
                continue
            task = self.tasks.get_task(group.task_id)
            if task is None or task.status in _FAILED_TASK_STATUSES:
                self._close(group, CollaborationStatus.FAILED, now)
            elif task.status == TaskStatus.COMPLETED:
                self._close(group, CollaborationStatus.COMPLETED, now)

        expired = [cell for cell, r in self._reservations.items() if r.is_expired(now)]
        for cell in expired:
            self._reservations[cell].active = False
            del self._reservations[cell]

    def get_stats(self) -> CollaborationStats:
        now = self._clock()
        groups = list(self._groups.values())
        return CollaborationStats(
            total_groups=len(groups),
            active_groups=sum(1 for g in groups if g.is_active),
            total_participants=sum(len(g.participants) for g in groups),
            active_reservations=sum(1 for r in self._reservations.values() if r.is_active_at(now)),
            characters_in_collaboration=sum(
                1 for c in self._memberships if self.get_character_active_collaboration(c)
            ),
            groups_by_type=dict(Counter(g.type for g in groups)),
            participants_by_role=dict(Counter(p.role for g in groups for p in g.participants)),
        )

    # -- internals -------------------------------------------------------------

    def _can_start(self, group: CollaborationGroup) -> bool:
        if len(group.participants) < min_participants(group.type):
            return False
        required = REQUIRED_ROLES.get(group.type)
        return required is None or group.has_role(required)

    def _close(self, group: CollaborationGroup, status: CollaborationStatus, now: float) -> None:
        group.status = status
        group.end_time = now
        for participant in group.participants:
            if self._memberships.get(participant.character_id) == group.task_id:
                del self._memberships[participant.character_id]
        logger.info("Collaboration on %s %s", group.task_id, status.value)

    def _propose_assignments(
        self, characters: list[Character], tasks: list[BaseTask]
    ) -> list[CollaborationAssignment]:
        now = self._clock()
        proposals = []
        for task in tasks:
            group = self._groups[task.id]
            seats = group.max_participants - len(group.participants)
            if seats <= 0:
                continue

            ranked = sorted(
                (
                    (score_task(task, c, now, self.config), c)
                    for c in characters
                    if group.get_participant(c.id) is None and task.can_execute(c)
                ),
                key=lambda pair: pair[0],
                reverse=True,
            )[:seats]

            has_leader = group.has_role(CollaborationRole.LEADER)
            for index, (score, character) in enumerate(ranked):
                lead = index == 0 and not has_leader
                proposals.append(
                    CollaborationAssignment(
                        task_id=task.id,
                        character_id=character.id,
                        role=CollaborationRole.LEADER if lead else CollaborationRole.WORKER,
                        score=score,
                        assigned_at=now,
                    )
                )
        return proposals

    @staticmethod
    def _dropped(
        conflicts: list[AssignmentConflict], resolutions: list[ConflictResolution]
    ) -> set[int]:
        dropped: set[int] = set()
        for conflict, resolution in zip(conflicts, resolutions):
            for assignment in conflict.conflicting_assignments:
                if assignment is not resolution.selected_assignment:
                    dropped.add(id(assignment))
        return dropped

    def _promote_leaders(self, kept: list[CollaborationAssignment]) -> None:
        by_task: dict[TaskId, list[CollaborationAssignment]] = defaultdict(list)
        for assignment in kept:
            by_task[assignment.task_id].append(assignment)

        for task_id, picks in by_task.items():
            group = self._groups[task_id]
            if group.has_role(CollaborationRole.LEADER):
                continue
            if any(a.role == CollaborationRole.LEADER for a in picks):
                continue
            best = max(picks, key=lambda a: a.score)
            best.role = CollaborationRole.LEADER
            logger.debug("Promoted %s to leader of %s", best.character_id, task_id)

    def _missing_roles(self, tasks: list[BaseTask]) -> list[AssignmentConflict]:
        missing = []
        for task in tasks:
            group = self._groups.get(task.id)
            if group is None:
                continue
            required = REQUIRED_ROLES.get(group.type)
            if required is not None and not group.has_role(required):
                missing.append(
                    AssignmentConflict(
                        type=ConflictType.MISSING_ROLE,
                        task_id=task.id,
                        description=f"{task.id} has no {required.value}",
                    )
                )
        return missing
