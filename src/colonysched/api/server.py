"""FastAPI server for inspecting and driving a colony scheduler."""

from __future__ import annotations

import math
import time
from typing import Annotated, Any

import click
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from colonysched import __version__
from colonysched.collaboration.system import CollaborationSystem
from colonysched.system import TaskSystem
from colonysched.tasks.errors import (
    DependencyError,
    TaskNotFoundError,
    TaskValidationError,
    UnsupportedTaskTypeError,
)
from colonysched.tasks.models import (
    SkillRequirement,
    SkillType,
    TaskDefinition,
    TaskId,
    TaskPriority,
    TaskStatus,
    TaskType,
    Vector3,
)
from colonysched.tasks.task import BaseTask


class Position(BaseModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class SkillRequirementBody(BaseModel):
    skill: SkillType
    min_level: int
    weight: float = 1.0


class TaskCreateRequest(BaseModel):
    """Body of ``POST /api/tasks``."""

    name: str
    type: TaskType = TaskType.HAULING
    priority: TaskPriority = TaskPriority.NORMAL
    description: str = ""
    target_position: Position | None = None
    work_radius: float = 1.0
    estimated_duration: float = 1.0
    max_duration: float | None = None
    max_assigned_characters: int = 1
    deadline: float | None = None
    skill_requirements: list[SkillRequirementBody] = Field(default_factory=list)
    prerequisites: list[Annotated[int, Field(gt=0)]] = Field(default_factory=list)

    def to_definition(self, now: float) -> TaskDefinition:
        position = self.target_position
        return TaskDefinition(
            name=self.name,
            type=self.type,
            priority=self.priority,
            description=self.description,
            target_position=Vector3(position.x, position.y, position.z) if position else None,
            work_radius=self.work_radius,
            estimated_duration=self.estimated_duration,
            max_duration=math.inf if self.max_duration is None else self.max_duration,
            max_assigned_characters=self.max_assigned_characters,
            deadline=self.deadline,
            skill_requirements=[
                SkillRequirement(r.skill, r.min_level, r.weight) for r in self.skill_requirements
            ],
            prerequisites=[TaskId(p) for p in self.prerequisites],
            created_at=now,
        )


class AssignRequest(BaseModel):
    character_id: int


class TickRequest(BaseModel):
    dt: float = Field(default=1.0, gt=0)


def task_to_dict(task: BaseTask) -> dict[str, Any]:
    definition = task.definition
    position = definition.target_position
    return {
        "id": task.id.value,
        "name": definition.name,
        "type": definition.type.value,
        "priority": definition.priority.name.lower(),
        "status": task.status.value,
        "progress": round(task.progress, 4),
        "assigned_characters": list(task.assigned_characters),
        "max_assigned_characters": definition.max_assigned_characters,
        "prerequisites": [p.value for p in definition.prerequisites],
        "target_position": [position.x, position.y, position.z] if position else None,
    }


def create_app(
    system: TaskSystem | None = None,
    collaboration: CollaborationSystem | None = None,
) -> FastAPI:
    """Build an app bound to one scheduler instance."""
    system = system or TaskSystem()
    collaboration = collaboration or CollaborationSystem(system)
    start_time = time.monotonic()

    app = FastAPI(
        title="Colony Scheduler API",
        version=__version__,
        description="Task scheduling and collaboration for colony simulations",
    )
    app.state.system = system
    app.state.collaboration = collaboration

    @app.exception_handler(TaskValidationError)
    @app.exception_handler(DependencyError)
    async def invalid_task(request: Request, exc: TaskValidationError | DependencyError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc), "errors": exc.errors})

    @app.exception_handler(UnsupportedTaskTypeError)
    async def unsupported_type(request: Request, exc: UnsupportedTaskTypeError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(TaskNotFoundError)
    async def unknown_task(request: Request, exc: TaskNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    def lookup(task_id: int) -> BaseTask:
        if task_id <= 0:
            raise TaskNotFoundError(f"Unknown task {task_id}")
        return system.manager.require_task(TaskId(task_id))

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        """Health check."""
        uptime = time.monotonic() - start_time
        return {"status": "ok", "version": __version__, "uptime_seconds": round(uptime, 1)}

    @app.get("/api/tasks")
    async def list_tasks(status: TaskStatus | None = None) -> dict[str, Any]:
        tasks = (
            system.manager.get_tasks_by_status(status)
            if status is not None
            else system.manager.get_all_tasks()
        )
        return {"tasks": [task_to_dict(t) for t in tasks], "count": len(tasks)}

    @app.post("/api/tasks", status_code=201)
    async def create_task(body: TaskCreateRequest) -> dict[str, Any]:
        task_id = system.create_task(body.to_definition(system.clock()))
        return task_to_dict(system.manager.require_task(task_id))

    @app.get("/api/tasks/{task_id}")
    async def get_task(task_id: int) -> dict[str, Any]:
        task = lookup(task_id)
        return {**task_to_dict(task), "description": task.describe()}

    @app.post("/api/tasks/{task_id}/assign")
    async def assign_task(task_id: int, body: AssignRequest) -> dict[str, Any]:
        task = lookup(task_id)
        if not system.assign_task(task.id, body.character_id):
            raise HTTPException(status_code=409, detail="Assignment refused")
        return task_to_dict(task)

    @app.post("/api/tasks/{task_id}/start")
    async def start_task(task_id: int) -> dict[str, Any]:
        task = lookup(task_id)
        result = system.start_task(task.id)
        return {**task_to_dict(task), "result": result.value}

    @app.post("/api/tasks/{task_id}/complete")
    async def complete_task(task_id: int) -> dict[str, Any]:
        task = lookup(task_id)
        if not system.complete_task(task.id):
            raise HTTPException(status_code=409, detail=f"Task is {task.status.value}")
        return task_to_dict(task)

    @app.post("/api/tasks/{task_id}/cancel")
    async def cancel_task(task_id: int) -> dict[str, Any]:
        task = lookup(task_id)
        if not system.cancel_task(task.id):
            raise HTTPException(status_code=409, detail=f"Task is {task.status.value}")
        return task_to_dict(task)

    @app.delete("/api/tasks/{task_id}")
    async def delete_task(task_id: int) -> dict[str, Any]:
        task = lookup(task_id)
        system.remove_task(task.id)
        return {"removed": task.id.value}

    @app.post("/api/tick")
    async def tick(body: TickRequest) -> dict[str, Any]:
        system.update(body.dt)
        swept = collaboration.update(body.dt)
        return {"dt": body.dt, "collaboration_sweep": swept, **system.get_stats().to_dict()}

    @app.get("/api/stats")
    async def stats() -> dict[str, Any]:
        return system.get_stats().to_dict()

    @app.get("/api/plan")
    async def plan() -> dict[str, Any]:
        order = system.manager.get_topological_order()
        return {"order": [task_id.value for task_id in order]}

    @app.get("/api/collaboration/report")
    async def collaboration_report() -> dict[str, Any]:
        return collaboration.get_efficiency_report().to_dict()

    return app


app = create_app()


@click.command()
@click.option("--port", default=3850, help="Port to listen on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--demo", is_flag=True, help="Serve the scripted demo colony")
def main(port: int, host: str, demo: bool) -> None:
    """Start the Colony Scheduler API server."""
    import uvicorn

    served = app
    if demo:
        from colonysched.demo import build_demo_colony

        colony = build_demo_colony()
        served = create_app(colony.system, colony.collaboration)
    uvicorn.run(served, host=host, port=port)
