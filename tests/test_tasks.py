"""Tests for the task state machine and per-kind progress rules."""

from __future__ import annotations

import pytest

from colonysched.demo import SimulationClock
from colonysched.tasks import (
    CharacterSnapshot,
    ConstructionTask,
    GenericTask,
    MiningTask,
    ResearchTask,
    SkillType,
    TaskDefinition,
    TaskId,
    TaskResult,
    TaskStatus,
    TaskType,
    Vector3,
)


def _definition(**kwargs) -> TaskDefinition:
    kwargs.setdefault("name", "work")
    kwargs.setdefault("id", TaskId(1))
    return TaskDefinition(**kwargs)


def _started(task, *character_ids: int):
    task.make_available()
    for character_id in character_ids or (1,):
        assert task.assign_character(character_id)
    assert task.start() == TaskResult.IN_PROGRESS
    return task


class TestTransitions:
    """State machine transitions and guards."""

    def test_happy_path(self, clock: SimulationClock) -> None:
        """Test the full lifecycle."""
        task = GenericTask(_definition(), clock=clock)
        assert task.status == TaskStatus.PENDING

        assert task.make_available()
        assert not task.make_available()
        assert task.assign_character(7)
        assert task.status == TaskStatus.ASSIGNED

        assert task.start() == TaskResult.IN_PROGRESS
        assert task.start_time == 1000.0

        clock.advance(5)
        assert task.complete() == TaskResult.SUCCESS
        assert task.status == TaskStatus.COMPLETED
        assert task.progress == 1.0
        assert task.completion_time == 1005.0

    def test_pending_task_refuses_assignment(self) -> None:
        """Test assigning a pending task."""
        task = GenericTask(_definition())
        assert not task.assign_character(1)
        assert task.assigned_characters == ()

    def test_start_requires_assignment(self) -> None:
        """Test starting without assignees."""
        task = GenericTask(_definition())
        task.make_available()
        assert task.start() == TaskResult.FAILURE
        assert task.status == TaskStatus.AVAILABLE

    def test_complete_requires_in_progress(self) -> None:
        """Test completing a task that is not running."""
        task = GenericTask(_definition())
        task.make_available()
        task.assign_character(1)
        assert task.complete() == TaskResult.FAILURE
        assert task.status == TaskStatus.ASSIGNED

    def test_capacity(self) -> None:
        """Test the assignee limit."""
        task = GenericTask(_definition(max_assigned_characters=2))
        task.make_available()

        assert task.assign_character(1)
        assert not task.assign_character(1)
        assert task.assign_character(2)
        assert not task.assign_character(3)
        assert task.assigned_characters == (1, 2)

    def test_last_unassign_returns_to_available(self) -> None:
        """Test unassigning the last character."""
        task = GenericTask(_definition(max_assigned_characters=2))
        task.make_available()
        task.assign_character(1)
        task.assign_character(2)

        assert task.unassign_character(1)
        assert task.status == TaskStatus.ASSIGNED
        assert task.unassign_character(2)
        assert task.status == TaskStatus.AVAILABLE
        assert not task.unassign_character(2)

    def test_cancel_from_any_live_state(self) -> None:
        """Test cancelling from each live state."""
        pending = GenericTask(_definition())
        assert pending.cancel()
        assert pending.status == TaskStatus.CANCELLED
        assert not pending.cancel()

        running = _started(GenericTask(_definition()))
        assert running.cancel()
        assert running.is_terminal
        assert not running.assign_character(2)

    def test_status_listener_sees_old_and_new(self) -> None:
        """Test status listener arguments."""
        task = GenericTask(_definition())
        seen = []
        task.on_status_changed(lambda t, old, new: seen.append((old, new, t.status)))

        _started(task)

        assert seen == [
            (TaskStatus.PENDING, TaskStatus.AVAILABLE, TaskStatus.AVAILABLE),
            (TaskStatus.AVAILABLE, TaskStatus.ASSIGNED, TaskStatus.ASSIGNED),
            (TaskStatus.ASSIGNED, TaskStatus.IN_PROGRESS, TaskStatus.IN_PROGRESS),
        ]

    def test_removed_listener_is_silent(self) -> None:
        """Test removing a listener."""
        task = GenericTask(_definition())
        seen = []

        def listener(t, old, new):
            seen.append(new)

        task.on_status_changed(listener)
        task.remove_status_listener(listener)
        task.make_available()
        assert seen == []

    def test_update_ignored_outside_running_states(self) -> None:
        """Test ticking an idle task."""
        task = GenericTask(_definition())
        task.make_available()
        assert task.update(1.0) == TaskResult.FAILURE
        assert task.status == TaskStatus.AVAILABLE

    def test_describe(self) -> None:
        """Test the task description."""
        definition = _definition(name="Dig well")
        definition.add_skill_requirement(SkillType.MINING, 3)
        task = GenericTask(definition)

        text = task.describe()
        assert "Task: Dig well" in text
        assert "Status: pending" in text
        assert "mining: level 3" in text


class TestTimeouts:
    """Max duration and deadline checks on tick."""

    def test_max_duration_fails_task(self, clock: SimulationClock) -> None:
        """Test failing after the maximum duration."""
        task = _started(GenericTask(_definition(estimated_duration=100, max_duration=10), clock=clock))

        clock.advance(5)
        assert task.update(0.1) == TaskResult.IN_PROGRESS
        clock.advance(6)
        assert task.update(0.1) == TaskResult.FAILURE
        assert task.status == TaskStatus.FAILED

    def test_deadline_fails_task(self, clock: SimulationClock) -> None:
        """Test failing after the deadline."""
        task = _started(GenericTask(_definition(estimated_duration=100, deadline=1010.0), clock=clock))

        assert task.update(0.1) == TaskResult.IN_PROGRESS
        clock.advance(11)
        assert task.update(0.1) == TaskResult.FAILURE
        assert task.status == TaskStatus.FAILED


class TestGenericProgress:
    """Generic work rule."""

    def test_unskilled_work_completes_on_schedule(self) -> None:
        """Test generic work progress."""
        task = _started(GenericTask(_definition(estimated_duration=1.0)))

        assert task.update(0.5) == TaskResult.IN_PROGRESS
        assert task.progress == pytest.approx(0.5)
        assert task.update(0.5) == TaskResult.SUCCESS
        assert task.status == TaskStatus.COMPLETED
        assert task.progress == 1.0

    def test_blocked_without_workers_then_resumes(self) -> None:
        """Test blocking and resuming."""
        task = _started(GenericTask(_definition(estimated_duration=10.0)))
        task.unassign_character(1)

        assert task.update(1.0) == TaskResult.BLOCKED
        assert task.status == TaskStatus.BLOCKED

        task.assign_character(2)
        assert task.update(1.0) == TaskResult.IN_PROGRESS
        assert task.status == TaskStatus.IN_PROGRESS

    def test_skill_weighted_efficiency(self) -> None:
        """Test skill-weighted work speed."""
        definition = _definition(estimated_duration=10.0)
        definition.add_skill_requirement(SkillType.CRAFTING, 2)
        task = _started(GenericTask(definition))
        worker = CharacterSnapshot(id=1, skills={SkillType.CRAFTING: 10})

        task.update(1.0, [worker])
        # efficiency 10/20 = 0.5 -> 50 of 1000 work units
        assert task.progress == pytest.approx(0.05)

    def test_progress_listener_respects_epsilon(self) -> None:
        """Test that tiny progress changes are not reported."""
        task = _started(GenericTask(_definition(estimated_duration=100.0)))
        reports = []
        task.on_progress(lambda t, p: reports.append(p))

        task.update(0.04)
        assert reports == []
        task.update(0.2)
        assert reports == [pytest.approx(0.0024)]


class TestKindRules:
    """Construction, mining and research progress."""

    def test_mining_blocked_until_qualified_worker(self) -> None:
        """Test mining with unqualified workers."""
        definition = _definition(type=TaskType.MINING, estimated_duration=1.0)
        definition.add_skill_requirement(SkillType.MINING, 5)
        task = _started(MiningTask(definition))
        novice = CharacterSnapshot(id=1, skills={SkillType.MINING: 2})
        expert = CharacterSnapshot(id=1, skills={SkillType.MINING: 6})

        assert task.update(1.0, [novice]) == TaskResult.BLOCKED
        assert task.status == TaskStatus.BLOCKED
        assert task.progress == 0.0

        assert task.update(1.0, [expert]) == TaskResult.IN_PROGRESS
        assert task.status == TaskStatus.IN_PROGRESS
        assert task.progress == pytest.approx(1 / 3)

    def test_research_without_researcher_makes_no_progress(self) -> None:
        """Test research without a researcher."""
        definition = _definition(type=TaskType.RESEARCH, estimated_duration=1.0)
        definition.add_skill_requirement(SkillType.RESEARCH, 5)
        task = _started(ResearchTask(definition))
        layman = CharacterSnapshot(id=1, skills={SkillType.RESEARCH: 2})

        assert task.update(1.0, [layman]) == TaskResult.IN_PROGRESS
        assert task.status == TaskStatus.IN_PROGRESS
        assert task.progress == 0.0

    def test_two_builders_outpace_one(self) -> None:
        """Test construction speed with two builders."""
        def build(*workers: CharacterSnapshot) -> float:
            definition = _definition(
                type=TaskType.CONSTRUCTION, estimated_duration=1.0, max_assigned_characters=2
            )
            definition.add_skill_requirement(SkillType.CONSTRUCTION, 3)
            task = _started(ConstructionTask(definition), *(w.id for w in workers))
            task.update(1.0, list(workers))
            return task.progress

        first = CharacterSnapshot(id=1, skills={SkillType.CONSTRUCTION: 15})
        second = CharacterSnapshot(id=2, skills={SkillType.CONSTRUCTION: 15})

        assert build(first) == pytest.approx(100 / 150)
        assert build(first, second) == pytest.approx(130 / 150)

    def test_construction_ignores_unqualified_builder(self) -> None:
        """Test that unqualified builders add nothing."""
        definition = _definition(type=TaskType.CONSTRUCTION, estimated_duration=1.0)
        definition.add_skill_requirement(SkillType.CONSTRUCTION, 3)
        task = _started(ConstructionTask(definition))
        helper = CharacterSnapshot(id=1, skills={SkillType.CONSTRUCTION: 1})

        assert task.update(1.0, [helper]) == TaskResult.BLOCKED


class TestCanExecute:
    """Feasibility filter."""

    def test_distance_tolerance(self) -> None:
        """Test the work radius tolerance."""
        definition = _definition(target_position=Vector3(0, 0, 0), work_radius=2.0)
        task = GenericTask(definition)
        task.make_available()

        near = CharacterSnapshot(id=1, position=Vector3(4, 0, 0))
        far = CharacterSnapshot(id=2, position=Vector3(4.5, 0, 0))
        nowhere = CharacterSnapshot(id=3)

        assert task.can_execute(near)
        assert not task.can_execute(far)
        assert task.can_execute(nowhere)

    def test_skill_and_status(self, builder: CharacterSnapshot) -> None:
        """Test executability by skill and status."""
        definition = _definition()
        definition.add_skill_requirement(SkillType.CONSTRUCTION, 9)
        task = GenericTask(definition)
        assert not task.can_execute(builder)

        task.make_available()
        assert not task.can_execute(builder)

        definition.skill_requirements.clear()
        assert task.can_execute(builder)
        task.assign_character(builder.id)
        assert not task.can_execute(builder)
