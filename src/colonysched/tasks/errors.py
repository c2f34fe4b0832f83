"""Scheduler exceptions.

Structural and dependency problems abort the mutation that raised them. Assignment,
collaboration and reservation outcomes are reported through result objects instead.
"""

from __future__ import annotations

from collections.abc import Sequence


class SchedulerError(Exception):
    """Base class for scheduling errors."""


class TaskValidationError(SchedulerError):
    """A task definition failed structural validation."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Invalid task definition: {', '.join(self.errors)}")


class DependencyError(SchedulerError):
    """A dependency reference could not be honoured."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Invalid task dependencies: {', '.join(self.errors)}")


class CyclicDependencyError(DependencyError):
    """Inserting an edge (or computing an order) ran into a cycle."""


class UnsupportedTaskTypeError(SchedulerError):
    """No factory is registered for the requested work kind."""


class TaskNotFoundError(SchedulerError):
    """Lookup of an unknown task id."""
