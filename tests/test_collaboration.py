"""Tests for collaboration groups, reservations and coordination."""

from __future__ import annotations

import pytest

from colonysched.collaboration import (
    CONFLICT_DETECTED,
    GROUP_SUSPENDED,
    CollaborationRole,
    CollaborationStatus,
    CollaborationSystem,
    CollaborationType,
    ConflictType,
)
from colonysched.collaboration.system import (
    could_benefit_from_collaboration,
    skill_complementarity,
)
from colonysched.demo import SimulationClock
from colonysched.system import TaskSystem
from colonysched.tasks import (
    CharacterSnapshot,
    SkillType,
    StaticRoster,
    TaskDefinition,
    TaskId,
    TaskNotFoundError,
    TaskPriority,
    TaskStatus,
    TaskType,
    Vector3,
)


def _construction_definition(name: str = "Hall", **kwargs) -> TaskDefinition:
    definition = TaskDefinition(name=name, type=TaskType.CONSTRUCTION, **kwargs)
    definition.add_skill_requirement(SkillType.CONSTRUCTION, 3)
    return definition


class TestReservations:
    """Grid-cell reservations."""

    def test_same_cell_refused_for_other_character(self, collaboration: CollaborationSystem) -> None:
        """Test that a held cell refuses a second character."""
        first = collaboration.reserve_work_area(Vector3(10.2, 5.7, 0), 1)
        second = collaboration.reserve_work_area(Vector3(10.9, 5.1, 0.4), 2)

        assert first.is_success
        assert first.reservation.cell == Vector3(10, 5, 0)
        assert not second.is_success
        assert second.message == "Position already reserved by character 1"

    def test_holder_may_renew(
        self, collaboration: CollaborationSystem, clock: SimulationClock
    ) -> None:
        """Test renewing one's own reservation."""
        collaboration.reserve_work_area(Vector3(0, 0, 0), 1, duration=10)
        clock.advance(5)

        renewed = collaboration.reserve_work_area(Vector3(0.5, 0.5, 0), 1, duration=10)

        assert renewed.is_success
        assert renewed.reservation.expires_at == 1015.0

    def test_expired_reservation_does_not_block(
        self, collaboration: CollaborationSystem, clock: SimulationClock
    ) -> None:
        """Test that expired reservations never block."""
        manager = collaboration.manager
        manager.reserve_resource(Vector3(3, 3, 0), 1, duration=10)
        clock.advance(10)

        assert manager.get_reservation(Vector3(3, 3, 0)) is None
        assert manager.reserve_resource(Vector3(3, 3, 0), 2).is_success
        assert manager.get_reservation(Vector3(3.5, 3.5, 0)).character_id == 2

    def test_non_positive_duration(self, collaboration: CollaborationSystem) -> None:
        """Test reserving for zero seconds."""
        result = collaboration.reserve_work_area(Vector3(0, 0, 0), 1, duration=0)
        assert not result.is_success

    def test_release(self, collaboration: CollaborationSystem) -> None:
        """Test releasing a reservation."""
        collaboration.reserve_work_area(Vector3(1, 1, 0), 1)

        assert not collaboration.release_work_area(Vector3(1, 1, 0), 2)
        assert collaboration.release_work_area(Vector3(1.2, 1.9, 0), 1)
        assert collaboration.reserve_work_area(Vector3(1, 1, 0), 2).is_success

    def test_conflict_radius(self, collaboration: CollaborationSystem) -> None:
        """Test conflict detection around a position."""
        collaboration.reserve_work_area(Vector3(0, 0, 0), 1)

        near = collaboration.check_position_conflict(Vector3(1.5, 0, 0), 2)
        far = collaboration.check_position_conflict(Vector3(3, 0, 0), 2)
        own = collaboration.check_position_conflict(Vector3(0, 0, 0), 1)
        wide = collaboration.check_position_conflict(Vector3(3, 0, 0), 2, radius=5)

        assert near.has_conflict
        assert near.conflict_radius == 2.0
        assert [r.character_id for r in near.conflicting_reservations] == [1]
        assert not far.has_conflict
        assert not own.has_conflict
        assert wide.has_conflict

    def test_sweep_purges_expired(
        self, collaboration: CollaborationSystem, clock: SimulationClock
    ) -> None:
        """Test that the sweep drops expired reservations."""
        reservation = collaboration.reserve_work_area(Vector3(0, 0, 0), 1, duration=5).reservation
        clock.advance(6)

        assert collaboration.update(1.0)

        assert not reservation.active
        assert collaboration.get_stats().active_reservations == 0


class TestGroups:
    """Group creation, joining and leaving."""

    def test_group_opened_for_multi_assignee_tasks(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test that shared tasks get a group."""
        wall = system.create_construction_task("Wall", Vector3(1, 0, 0))
        chore = system.create_simple_task("Sweep")

        group = collaboration.manager.get_group(wall)
        assert group is not None
        assert group.type == CollaborationType.CONSTRUCTION
        assert group.max_participants == 2
        assert group.status == CollaborationStatus.FORMING
        assert collaboration.manager.get_group(chore) is None

    def test_unknown_task(self, collaboration: CollaborationSystem) -> None:
        """Test opening a group for an unknown task."""
        with pytest.raises(TaskNotFoundError):
            collaboration.manager.create_collaboration_group(TaskId(99))

    def test_collaborative_task_is_sized_for_its_kind(
        self, collaboration: CollaborationSystem
    ) -> None:
        """Test group sizing per collaboration type."""
        result = collaboration.create_collaborative_task(
            _construction_definition(), CollaborationType.CONSTRUCTION
        )

        assert result.is_success
        assert result.group.max_participants == 3
        task = collaboration.task_system.get_task(result.group.task_id)
        assert task.definition.max_assigned_characters == 3

    def test_construction_becomes_active_with_leader_and_worker(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test group activation."""
        wall = system.create_construction_task("Wall", Vector3(1, 0, 0))

        first = collaboration.join_collaboration(wall, 1, CollaborationRole.LEADER)
        assert first.is_success
        assert first.group.status == CollaborationStatus.FORMING

        second = collaboration.join_collaboration(wall, 2)
        assert second.group.status == CollaborationStatus.ACTIVE
        assert second.group.start_time == 1000.0
        assert collaboration.get_character_collaboration(2) is second.group

        third = collaboration.join_collaboration(wall, 3)
        assert not third.is_success
        assert third.message == "Collaboration group is full"

    def test_join_refusals(self, collaboration: CollaborationSystem) -> None:
        """Test the reasons a join is refused."""
        group = collaboration.create_collaborative_task(
            _construction_definition(), CollaborationType.CONSTRUCTION
        ).group

        missing = collaboration.join_collaboration(TaskId(99), 1)
        assert missing.message == "Collaboration group does not exist"

        collaboration.join_collaboration(group.task_id, 1, CollaborationRole.LEADER)
        again = collaboration.join_collaboration(group.task_id, 1)
        assert again.message == "Character is already in this group"

        second_leader = collaboration.join_collaboration(group.task_id, 2, CollaborationRole.LEADER)
        assert not second_leader.is_success
        assert second_leader.message == "Collaboration group already has a leader"

    def test_research_needs_specialist(self, collaboration: CollaborationSystem) -> None:
        """Test that research groups wait for a specialist."""
        definition = TaskDefinition(name="Optics", type=TaskType.RESEARCH)
        group = collaboration.create_collaborative_task(
            definition, CollaborationType.RESEARCH
        ).group

        collaboration.join_collaboration(group.task_id, 2)
        assert group.status == CollaborationStatus.FORMING

        collaboration.join_collaboration(group.task_id, 3, CollaborationRole.SPECIALIST)
        assert group.status == CollaborationStatus.ACTIVE

    def test_leaving_below_minimum_suspends(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test suspension when an active group shrinks."""
        suspended = []
        collaboration.subscribe(GROUP_SUSPENDED, suspended.append)
        wall = system.create_construction_task("Wall", Vector3(1, 0, 0))
        collaboration.join_collaboration(wall, 1, CollaborationRole.LEADER)
        collaboration.join_collaboration(wall, 2)

        result = collaboration.leave_collaboration(wall, 2)

        assert result.is_success
        assert result.group.status == CollaborationStatus.SUSPENDED
        assert suspended == [result.group]
        assert collaboration.get_character_collaboration(2) is None
        assert not collaboration.leave_collaboration(wall, 2).is_success

    def test_leaving_forming_group_does_not_suspend(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test leaving a group that is still forming."""
        wall = system.create_construction_task("Wall", Vector3(1, 0, 0))
        collaboration.join_collaboration(wall, 1, CollaborationRole.LEADER)

        result = collaboration.leave_collaboration(wall, 1)
        assert result.group.status == CollaborationStatus.FORMING


class TestGroupConflicts:
    """A character may not join groups that clash with their current one."""

    def test_overlapping_sites(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test spatial conflicts between groups."""
        here = system.create_construction_task("Here", Vector3(0, 0, 0))
        near = system.create_construction_task("Near", Vector3(3, 0, 0))
        collaboration.join_collaboration(here, 1, CollaborationRole.LEADER)

        result = collaboration.join_collaboration(near, 1, CollaborationRole.LEADER)

        assert not result.is_success
        assert result.message == "Conflicts with existing collaboration: Task sites overlap"

    def test_two_active_groups(self, collaboration: CollaborationSystem) -> None:
        """Test that a character cannot work in two groups."""
        first = collaboration.create_collaborative_task(
            _construction_definition("West", target_position=Vector3(0, 0, 0)),
            CollaborationType.CONSTRUCTION,
        ).group
        second = collaboration.create_collaborative_task(
            _construction_definition("East", target_position=Vector3(40, 0, 0)),
            CollaborationType.CONSTRUCTION,
        ).group
        collaboration.join_collaboration(first.task_id, 1, CollaborationRole.LEADER)
        collaboration.join_collaboration(first.task_id, 2)
        collaboration.join_collaboration(second.task_id, 3, CollaborationRole.LEADER)
        collaboration.join_collaboration(second.task_id, 4)

        conflict = collaboration.manager.check_collaboration_conflict(second, first)
        assert conflict.conflict_type == ConflictType.TIME_CONFLICT

        result = collaboration.join_collaboration(second.task_id, 1)
        assert result.message == "Conflicts with existing collaboration: Both collaborations are active"


class TestCoordination:
    """Batch staffing of collaborative tasks."""

    def test_overassignment_keeps_best_score(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test resolving a character proposed to two groups."""
        conflicts = []
        collaboration.subscribe(CONFLICT_DETECTED, conflicts.append)
        urgent = system.create_construction_task("Keep", Vector3(0, 0, 0), TaskPriority.HIGH)
        normal = system.create_construction_task("Shed", Vector3(2, 0, 0))

        result = collaboration.auto_assign_collaborative_tasks()

        assert result.created_groups == []
        assert {(a.task_id, a.character_id) for a in result.assignments} == {(urgent, 1), (urgent, 2)}
        assert system.get_task(urgent).assigned_characters == (1, 2)
        assert system.get_task(urgent).status == TaskStatus.ASSIGNED
        assert collaboration.manager.get_group(urgent).status == CollaborationStatus.ACTIVE

        overassigned = [c for c in result.conflicts if c.type == ConflictType.CHARACTER_OVERASSIGNMENT]
        assert sorted(c.character_id for c in overassigned) == [1, 2]
        assert all(
            r.selected_assignment.task_id == urgent
            for r in result.resolutions
            if r.conflict_type == ConflictType.CHARACTER_OVERASSIGNMENT
        )

        assert not result.is_success
        assert [(r.conflict_type, r.is_resolved) for r in result.unresolved] == [
            (ConflictType.MISSING_ROLE, False)
        ]
        assert [c.task_id for c in result.conflicts if c.type == ConflictType.MISSING_ROLE] == [normal]
        assert len(conflicts) == 3

    def test_leader_promoted_when_chosen_leader_is_taken(self, clock: SimulationClock) -> None:
        """Test leader promotion after conflict resolution."""
        roster = StaticRoster(
            [
                CharacterSnapshot(id=8, skills={SkillType.CONSTRUCTION: 8}, position=Vector3(3, 0, 0)),
                CharacterSnapshot(id=6, skills={SkillType.CONSTRUCTION: 6}, position=Vector3(0, 0, 0)),
                CharacterSnapshot(id=4, skills={SkillType.CONSTRUCTION: 4}, position=Vector3(6, 0, 0)),
            ]
        )
        system = TaskSystem(directory=roster, clock=clock)
        collaboration = CollaborationSystem(system)
        west = system.create_construction_task("West", Vector3(0, 0, 0), TaskPriority.HIGH)
        east = system.create_construction_task("East", Vector3(6, 0, 0))

        result = collaboration.auto_assign_collaborative_tasks()

        roles = {(a.task_id, a.character_id): a.role for a in result.assignments}
        assert roles == {
            (west, 6): CollaborationRole.LEADER,
            (west, 8): CollaborationRole.WORKER,
            (east, 4): CollaborationRole.LEADER,
        }
        assert result.is_success
        assert collaboration.manager.get_group(east).status == CollaborationStatus.FORMING

    def test_busy_characters_are_skipped(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test that auto-assignment skips busy characters."""
        chore = system.create_simple_task("Sweep")
        assert system.assign_task(chore, 1)
        wall = system.create_construction_task("Wall", Vector3(1, 0, 0))

        collaboration.auto_assign_collaborative_tasks()

        assert sorted(system.get_task(wall).assigned_characters) == [2, 3]

    def test_rebalance_considers_everyone(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test rebalancing over the whole roster."""
        chore = system.create_simple_task("Sweep")
        system.assign_task(chore, 1)
        wall = system.create_construction_task("Wall", Vector3(1, 0, 0))

        result = collaboration.rebalance_collaborations()

        assert (wall, 1) in {(a.task_id, a.character_id) for a in result.assignments}


class TestSweep:
    """Periodic group maintenance."""

    def test_cadence(self, collaboration: CollaborationSystem) -> None:
        """Test the sweep cadence."""
        assert not collaboration.update(0.4)
        assert not collaboration.update(0.4)
        assert collaboration.update(0.4)
        assert not collaboration.update(0.4)

    def test_completed_task_closes_group(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test closing a group when its task completes."""
        wall = system.create_construction_task("Wall", Vector3(1, 0, 0))
        collaboration.auto_assign_collaborative_tasks()
        system.start_task(wall)
        system.complete_task(wall)

        collaboration.update(1.0)

        group = collaboration.manager.get_group(wall)
        assert group.status == CollaborationStatus.COMPLETED
        assert group.end_time == 1000.0
        assert collaboration.get_character_collaboration(1) is None

    def test_cancelled_task_fails_group(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test failing a group when its task is cancelled."""
        wall = system.create_construction_task("Wall", Vector3(1, 0, 0))
        collaboration.join_collaboration(wall, 1, CollaborationRole.LEADER)

        system.cancel_task(wall)
        group = collaboration.manager.get_group(wall)
        assert group.participants == []

        collaboration.update(1.0)
        assert group.status == CollaborationStatus.FAILED

    def test_removed_task_fails_group(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test failing a group when its task is removed."""
        wall = system.create_construction_task("Wall", Vector3(1, 0, 0))
        system.remove_task(wall)

        collaboration.update(1.0)
        assert collaboration.manager.get_group(wall).status == CollaborationStatus.FAILED

    def test_shutdown_detaches(self, system: TaskSystem, collaboration: CollaborationSystem) -> None:
        """Test that shutdown stops listening for task events."""
        collaboration.shutdown()
        wall = system.create_construction_task("Wall", Vector3(1, 0, 0))
        assert collaboration.manager.get_group(wall) is None


class TestReporting:
    """Stats, efficiency report and advisory helpers."""

    def test_empty_report(self, collaboration: CollaborationSystem) -> None:
        """Test the report with no groups."""
        report = collaboration.get_efficiency_report()
        assert report.resource_utilization == 0.0
        assert report.average_group_size == 0.0
        assert report.recommendations == []

    def test_report_after_coordination(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test the report after coordinating work."""
        system.create_construction_task("Keep", Vector3(0, 0, 0), TaskPriority.HIGH)
        system.create_construction_task("Shed", Vector3(2, 0, 0))
        collaboration.auto_assign_collaborative_tasks()
        collaboration.reserve_work_area(Vector3(0, 0, 0), 1)

        report = collaboration.get_efficiency_report()

        assert report.stats.total_groups == 2
        assert report.stats.active_groups == 1
        assert report.stats.participants_by_role == {
            CollaborationRole.LEADER: 1,
            CollaborationRole.WORKER: 1,
        }
        assert report.average_group_size == pytest.approx(1.0)
        assert report.resource_utilization == pytest.approx(0.5)
        assert report.task_completion_rate == 0.0
        assert report.to_dict()["efficiency"] == 0.5

    def test_low_efficiency_recommendation(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test the low efficiency recommendation."""
        system.create_construction_task("Wall", Vector3(1, 0, 0))
        report = collaboration.get_efficiency_report()
        assert "Collaboration efficiency is low; consider reassigning tasks" in report.recommendations
        assert "No active collaboration groups; check task assignments" in report.recommendations

    def test_recommended_collaborators(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test ranking collaborators for a character."""
        wall = system.create_construction_task("Wall", Vector3(1, 0, 0))

        ranked = collaboration.get_recommended_collaborators(1, wall)
        assert [c.id for c in ranked] == [2, 3]
        assert [c.id for c in collaboration.get_recommended_collaborators(1, wall, 1)] == [2]
        assert collaboration.get_recommended_collaborators(1, TaskId(99)) == []

    def test_skill_complementarity(self, system: TaskSystem, roster: StaticRoster) -> None:
        """Test skill complementarity between characters."""
        wall = system.get_task(system.create_construction_task("Wall", Vector3(1, 0, 0)))
        first, second, third = roster.all_characters()
        assert skill_complementarity(first, second, wall) == pytest.approx(7.2)
        assert skill_complementarity(first, third, wall) == pytest.approx(6.4)

    def test_collaboration_opportunities(
        self, system: TaskSystem, collaboration: CollaborationSystem
    ) -> None:
        """Test finding tasks that benefit from a group."""
        wall = system.create_construction_task("Wall", Vector3(1, 0, 0))
        system.assign_task(wall, 1)

        assert collaboration.find_collaboration_opportunities() == [wall]
        assert could_benefit_from_collaboration(system.get_task(wall))
        research = system.get_task(system.create_research_task("Optics"))
        assert not could_benefit_from_collaboration(research)
