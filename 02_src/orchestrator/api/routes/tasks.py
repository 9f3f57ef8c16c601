"""Task API routes."""

from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Query

from ...app import Application
from ...models import TaskStatus


class TaskSubmitRequest(BaseModel):
    """Request model for submitting a background task."""

    prompt: str
    project: str = "default"
    task_id: str | None = None


class TaskSubmitResponse(BaseModel):
    task_id: str


class StatusResponse(BaseModel):
    """Response model for status."""

    status: str


class SyncResponse(BaseModel):
    interrupted: list[str]


def create_tasks_router(app: Application) -> APIRouter:
    """Create tasks router."""
    router = APIRouter(prefix="/api/tasks", tags=["tasks"])

    @router.post("", response_model=TaskSubmitResponse, status_code=201)
    async def submit_task(request: TaskSubmitRequest) -> dict:
        """Start a task in a background worker."""
        options: dict[str, Any] = {"project": request.project}
        if request.task_id:
            options["task_id"] = request.task_id
        try:
            task_id = await app.task_service.submit_task(request.prompt, options)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        return {"task_id": task_id}

    @router.get("")
    async def list_tasks(
        project: str | None = Query(None, description="Filter by project"),
        status: TaskStatus | None = Query(None, description="Filter by status"),
    ) -> list[dict]:
        """Task summaries, newest first."""
        service = app.task_service
        if project:
            found = await service.list_project_tasks(project)
        elif status is TaskStatus.RUNNING:
            found = await service.list_running_tasks()
        else:
            found = await app.state_manager.get_all_tasks()
        if status is not None:
            found = [t for t in found if t.status is status]
        return [app.state_manager.format_task_summary(t) for t in found]

    @router.post("/sync", response_model=SyncResponse)
    async def sync_tasks() -> dict:
        """Interrupt running tasks whose worker is gone."""
        return {"interrupted": await app.task_service.sync()}

    @router.get("/{task_id}")
    async def get_task(task_id: str) -> dict:
        task = await app.task_service.get_task_status(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
        return task.to_dict()

    @router.post("/{task_id}/cancel", response_model=StatusResponse)
    async def cancel_task(task_id: str) -> dict:
        if await app.task_service.cancel_task(task_id):
            return {"status": "cancelled"}
        task = await app.task_service.get_task_status(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
        raise HTTPException(
            status_code=409, detail=f"Task {task_id} is already {task.status.value}"
        )

    @router.get("/{task_id}/subtasks")
    async def get_subtasks(task_id: str) -> list[dict]:
        return [s.to_dict() for s in await app.task_service.get_subtasks(task_id)]

    return router
