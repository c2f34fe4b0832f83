"""Task Factory - Work kind to task constructor table."""

from __future__ import annotations

import time
from collections.abc import Callable

from colonysched.tasks.errors import UnsupportedTaskTypeError
from colonysched.tasks.models import TaskDefinition, TaskType
from colonysched.tasks.task import (
    BaseTask,
    ConstructionTask,
    GenericTask,
    MiningTask,
    ResearchTask,
)

TaskConstructor = Callable[..., BaseTask]

SPECIALISED_TASKS: dict[TaskType, TaskConstructor] = {
    TaskType.CONSTRUCTION: ConstructionTask,
    TaskType.MINING: MiningTask,
    TaskType.RESEARCH: ResearchTask,
}


class TaskFactory:
    """Builds runtime tasks from definitions by work kind."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        execute_radius_factor: float = 2.0,
    ) -> None:
        self._constructors: dict[TaskType, TaskConstructor] = {}
        self._clock = clock
        self.execute_radius_factor = execute_radius_factor

    def register(self, kind: TaskType, constructor: TaskConstructor) -> None:
        """Register or replace the constructor for ``kind``."""
        self._constructors[kind] = constructor

    def unregister(self, kind: TaskType) -> bool:
        return self._constructors.pop(kind, None) is not None

    def supports(self, kind: TaskType) -> bool:
        return kind in self._constructors

    @property
    def supported_types(self) -> list[TaskType]:
        return list(self._constructors)

    def create(self, definition: TaskDefinition) -> BaseTask:
        """
        Instantiate the task for ``definition``.

        Raises:
            UnsupportedTaskTypeError: nothing is registered for the definition's kind.
        """
        constructor = self._constructors.get(definition.type)
        if constructor is None:
            raise UnsupportedTaskTypeError(f"Unsupported task type: {definition.type.value}")
        return constructor(
            definition,
            clock=self._clock,
            execute_radius_factor=self.execute_radius_factor,
        )


def default_factory(
    clock: Callable[[], float] = time.time, execute_radius_factor: float = 2.0
) -> TaskFactory:
    """Factory with a dedicated variant for construction, mining and research."""
    factory = TaskFactory(clock=clock, execute_radius_factor=execute_radius_factor)
    for kind in TaskType:
        factory.register(kind, SPECIALISED_TASKS.get(kind, GenericTask))
    return factory
