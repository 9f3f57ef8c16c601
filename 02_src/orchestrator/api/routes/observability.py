"""Observability API routes."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Query

from ...app import Application


class TaskEventResponse(BaseModel):
    """Response model for task event."""

    id: str
    task_id: str
    event_type: str
    status_from: str | None
    status_to: str | None
    details: dict[str, Any]
    timestamp: datetime


class MessageLogResponse(BaseModel):
    mode: str
    address: str
    payload: dict[str, Any]
    sender: str | None
    logged_at: datetime


class StatusResponse(BaseModel):
    status: str


def create_observability_router(app: Application) -> APIRouter:
    """Create observability router."""
    router = APIRouter(prefix="/api", tags=["observability"])

    @router.get("/task-events", response_model=list[TaskEventResponse])
    async def get_task_events(
        task_id: str | None = Query(None, description="Filter by task"),
        event_type: str | None = Query(None, description="Filter by event type"),
        limit: int = Query(100, ge=1, le=1000),
    ) -> list[dict]:
        """Get task lifecycle events, newest first."""
        events = await app.storage.get_task_events(
            task_id=task_id,
            event_types=[event_type] if event_type else None,
            limit=limit,
        )
        return [
            {
                "id": e.id,
                "task_id": e.task_id,
                "event_type": e.event_type,
                "status_from": e.status_from,
                "status_to": e.status_to,
                "details": e.details,
                "timestamp": e.timestamp.isoformat(),
            }
            for e in events
        ]

    @router.get("/messages", response_model=list[MessageLogResponse])
    async def get_messages(limit: int = Query(100, ge=1, le=1000)) -> list[dict]:
        """Recent bus traffic, oldest first."""
        return [
            {
                "mode": entry.mode.value,
                "address": entry.address,
                "payload": entry.payload,
                "sender": entry.sender,
                "logged_at": entry.logged_at.isoformat(),
            }
            for entry in app.bus.get_message_log(limit)
        ]

    @router.get("/agents")
    async def get_agents() -> list[dict]:
        return app.orchestrator.get_agents()

    @router.get("/agents/{agent_id}/health")
    async def get_agent_health(agent_id: str) -> dict:
        agent = app.bus.registry.get(agent_id)
        if agent is None:
            raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")
        return await agent.health_check()

    @router.get("/stats")
    async def get_stats() -> dict:
        return {
            "bus": app.bus.get_stats(),
            "orchestrator": app.orchestrator.get_stats(),
            "locks": len(app.locks.active_locks),
        }

    @router.post("/control/reset", response_model=StatusResponse)
    async def reset_system() -> dict:
        """Reset system data between test runs."""
        try:
            await app.reset()
            return {"status": "ok"}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    return router
