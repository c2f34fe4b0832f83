"""Shared fixtures."""

from __future__ import annotations

import pytest

from colonysched.collaboration import CollaborationSystem
from colonysched.demo import SimulationClock
from colonysched.system import TaskSystem
from colonysched.tasks import (
    CharacterSnapshot,
    SkillType,
    StaticRoster,
    TaskManager,
    Vector3,
)


@pytest.fixture
def clock() -> SimulationClock:
    """Deterministic clock starting at a fixed epoch."""
    return SimulationClock(start=1000.0)


@pytest.fixture
def manager(clock: SimulationClock) -> TaskManager:
    return TaskManager(clock=clock)


@pytest.fixture
def builder() -> CharacterSnapshot:
    return CharacterSnapshot(
        id=1,
        skills={SkillType.CONSTRUCTION: 8, SkillType.MINING: 4},
        position=Vector3(0, 0, 0),
    )


@pytest.fixture
def roster() -> StaticRoster:
    return StaticRoster(
        [
            CharacterSnapshot(
                id=1,
                skills={SkillType.CONSTRUCTION: 8, SkillType.MINING: 4},
                position=Vector3(1, 0, 0),
            ),
            CharacterSnapshot(
                id=2,
                skills={SkillType.CONSTRUCTION: 6, SkillType.RESEARCH: 7},
                position=Vector3(1, 0, 0),
            ),
            CharacterSnapshot(
                id=3,
                skills={SkillType.CONSTRUCTION: 4, SkillType.MINING: 9},
                position=Vector3(1, 0, 0),
            ),
        ]
    )


@pytest.fixture
def system(clock: SimulationClock, roster: StaticRoster) -> TaskSystem:
    return TaskSystem(directory=roster, clock=clock)


@pytest.fixture
def collaboration(system: TaskSystem) -> CollaborationSystem:
    return CollaborationSystem(system)
