"""Workflow and action API routes."""

from typing import Any

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException

from ...app import Application
from ...errors import (
    LockHeld,
    RecipientNotFound,
    StepFailed,
    UnknownAction,
    UnknownWorkflow,
)


class WorkflowRunRequest(BaseModel):
    params: dict[str, Any] = Field(default_factory=dict)


class ActionRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


def create_workflows_router(app: Application) -> APIRouter:
    """Create workflows router."""
    router = APIRouter(prefix="/api", tags=["workflows"])

    @router.get("/workflows")
    async def list_workflows() -> list[dict]:
        return [
            {
                "name": w.name,
                "description": w.description,
                "steps": [
                    {"name": s.name, "action": s.action, "optional": s.optional}
                    for s in w.steps
                ],
            }
            for w in app.orchestrator.workflows
        ]

    @router.post("/workflows/{name}/run")
    async def run_workflow(name: str, request: WorkflowRunRequest) -> dict:
        """Execute a workflow; a failed run comes back as 422 with the run."""
        try:
            run = await app.orchestrator.execute_workflow(name, request.params)
        except UnknownWorkflow as e:
            raise HTTPException(status_code=404, detail=str(e))
        except StepFailed as e:
            raise HTTPException(
                status_code=422,
                detail={
                    "error": str(e),
                    "step": e.step_name,
                    "run": e.run.to_dict() if e.run is not None else None,
                },
            )
        return run.to_dict()

    @router.post("/actions/{action}")
    async def route_action(action: str, request: ActionRequest) -> Any:
        """Route a single action to the agent that handles it."""
        try:
            return await app.orchestrator.route_task(action, request.payload)
        except UnknownAction as e:
            raise HTTPException(status_code=400, detail=str(e))
        except RecipientNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        except LockHeld as e:
            raise HTTPException(status_code=409, detail=str(e))

    return router
