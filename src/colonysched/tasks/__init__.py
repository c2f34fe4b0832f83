"""Task model, dependency graph, state machine, registry and assignment."""

from colonysched.tasks.assignment import (
    AssignmentResult,
    ReassignmentResult,
    TaskAssigner,
    TaskRecommendation,
    score_task,
)
from colonysched.tasks.characters import (
    Character,
    CharacterDirectory,
    CharacterSnapshot,
    StaticRoster,
)
from colonysched.tasks.dependencies import DependencyResolver, DependencyStats
from colonysched.tasks.errors import (
    CyclicDependencyError,
    DependencyError,
    SchedulerError,
    TaskNotFoundError,
    TaskValidationError,
    UnsupportedTaskTypeError,
)
from colonysched.tasks.factory import TaskFactory, default_factory
from colonysched.tasks.manager import TaskManager, TaskManagerStats
from colonysched.tasks.models import (
    SkillRequirement,
    SkillType,
    TaskDefinition,
    TaskId,
    TaskPriority,
    TaskResult,
    TaskStatus,
    TaskType,
    Vector3,
)
from colonysched.tasks.task import (
    BaseTask,
    ConstructionTask,
    GenericTask,
    MiningTask,
    ResearchTask,
)
from colonysched.tasks.validation import TaskValidator, ValidationResult

__all__ = [
    "AssignmentResult",
    "BaseTask",
    "Character",
    "CharacterDirectory",
    "CharacterSnapshot",
    "ConstructionTask",
    "CyclicDependencyError",
    "DependencyError",
    "DependencyResolver",
    "DependencyStats",
    "GenericTask",
    "MiningTask",
    "ReassignmentResult",
    "ResearchTask",
    "SchedulerError",
    "SkillRequirement",
    "SkillType",
    "StaticRoster",
    "TaskAssigner",
    "TaskDefinition",
    "TaskFactory",
    "TaskId",
    "TaskManager",
    "TaskManagerStats",
    "TaskNotFoundError",
    "TaskPriority",
    "TaskRecommendation",
    "TaskResult",
    "TaskStatus",
    "TaskType",
    "TaskValidationError",
    "TaskValidator",
    "UnsupportedTaskTypeError",
    "ValidationResult",
    "Vector3",
    "default_factory",
    "score_task",
]
