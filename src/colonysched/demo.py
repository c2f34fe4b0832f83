"""Scripted colony used by the CLI and the HTTP server for demonstrations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from colonysched.collaboration.system import CollaborationSystem
from colonysched.config import SchedulerConfig
from colonysched.system import TaskSystem
from colonysched.tasks.characters import Character, CharacterSnapshot, StaticRoster
from colonysched.tasks.models import (
    SkillType,
    TaskDefinition,
    TaskId,
    TaskPriority,
    TaskType,
    Vector3,
)

logger = logging.getLogger(__name__)

DEMO_EPOCH = 1_700_000_000.0


class SimulationClock:
    """Manually advanced clock, so timeouts follow simulated rather than wall time."""

    def __init__(self, start: float = DEMO_EPOCH) -> None:
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


def demo_characters() -> list[CharacterSnapshot]:
    return [
        CharacterSnapshot(
            id=1,
            skills={SkillType.CONSTRUCTION: 8, SkillType.MINING: 3},
            position=Vector3(2, 0, 0),
        ),
        CharacterSnapshot(
            id=2,
            skills={SkillType.CONSTRUCTION: 4, SkillType.MINING: 6},
            position=Vector3(1, 1, 0),
        ),
        CharacterSnapshot(
            id=3,
            skills={SkillType.RESEARCH: 9, SkillType.CRAFTING: 4},
            position=Vector3(0, 0, 0),
        ),
        CharacterSnapshot(
            id=4,
            skills={SkillType.CONSTRUCTION: 5, SkillType.COMBAT: 6},
            position=Vector3(3, 1, 0),
            happiness=0.6,
        ),
    ]


@dataclass
class DemoColony:
    """A small colony wired end to end."""

    system: TaskSystem
    collaboration: CollaborationSystem
    roster: StaticRoster
    clock: SimulationClock
    task_ids: dict[str, TaskId] = field(default_factory=dict)
    ticks: int = 0

    def idle_characters(self) -> list[Character]:
        manager = self.system.manager
        return [c for c in self.roster.all_characters() if not manager.get_tasks_for_character(c.id)]

    def tick(self, delta_time: float = 1.0) -> None:
        """One frame: staff group work, hand out solo work, then advance everything."""
        self.collaboration.auto_assign_collaborative_tasks()
        self.system.assign_tasks(self.idle_characters())
        self.system.update(delta_time)
        self.collaboration.update(delta_time)
        self.clock.advance(delta_time)
        self.ticks += 1

    def run(self, ticks: int, delta_time: float = 1.0) -> None:
        for _ in range(ticks):
            self.tick(delta_time)
        logger.info("Demo ran %d ticks", ticks)


def build_demo_colony(config: SchedulerConfig | None = None) -> DemoColony:
    """
    Four colonists and a short build order::

        Clear rubble -> Build wall (two builders)
                     -> Haul stone
        Study botany (independent)
    """
    clock = SimulationClock()
    roster = StaticRoster(demo_characters())
    system = TaskSystem(config, directory=roster, clock=clock)
    collaboration = CollaborationSystem(system)
    colony = DemoColony(system, collaboration, roster, clock)

    rubble = system.create_mining_task("Clear rubble", Vector3(2, 1, 0), TaskPriority.HIGH)
    wall = TaskDefinition(
        name="Build wall",
        type=TaskType.CONSTRUCTION,
        target_position=Vector3(3, 0, 0),
        work_radius=2.0,
        estimated_duration=10.0,
        max_assigned_characters=2,
        created_at=clock(),
    )
    wall.add_skill_requirement(SkillType.CONSTRUCTION, 3)
    wall.add_prerequisite(rubble)
    haul = TaskDefinition(
        name="Haul stone",
        priority=TaskPriority.LOW,
        estimated_duration=5.0,
        created_at=clock(),
    )
    haul.add_prerequisite(rubble)

    colony.task_ids["Clear rubble"] = rubble
    colony.task_ids["Build wall"] = system.create_task(wall)
    colony.task_ids["Haul stone"] = system.create_task(haul)
    colony.task_ids["Study botany"] = system.create_research_task("Study botany")
    return colony
