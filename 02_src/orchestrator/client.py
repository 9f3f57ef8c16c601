"""Async HTTP client for the orchestrator API."""

from typing import Any

import httpx

from .logging_config import get_logger

logger = get_logger(__name__)


class OrchestratorClient:
    """Thin wrapper over the task and workflow endpoints.

    Usable as an async context manager. Non-2xx responses raise
    `httpx.HTTPStatusError`, except `get_task` which returns None on 404.
    """

    def __init__(
        self,
        api_url: str = "http://localhost:8000",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=api_url, timeout=timeout, transport=transport
        )

    async def __aenter__(self) -> "OrchestratorClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # Tasks

    async def submit_task(
        self, prompt: str, project: str = "default", task_id: str | None = None
    ) -> str:
        body: dict[str, Any] = {"prompt": prompt, "project": project}
        if task_id:
            body["task_id"] = task_id
        data = await self._request("POST", "/api/tasks", json=body)
        logger.info("Submitted task %s", data["task_id"])
        return data["task_id"]

    async def get_task(self, task_id: str) -> dict | None:
        response = await self._client.get(f"/api/tasks/{task_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    async def list_tasks(
        self, project: str | None = None, status: str | None = None
    ) -> list[dict]:
        params = {k: v for k, v in {"project": project, "status": status}.items() if v}
        return await self._request("GET", "/api/tasks", params=params)

    async def cancel_task(self, task_id: str) -> dict:
        return await self._request("POST", f"/api/tasks/{task_id}/cancel")

    async def get_subtasks(self, task_id: str) -> list[dict]:
        return await self._request("GET", f"/api/tasks/{task_id}/subtasks")

    async def sync_tasks(self) -> list[str]:
        data = await self._request("POST", "/api/tasks/sync")
        return data["interrupted"]

    # Workflows

    async def list_workflows(self) -> list[dict]:
        return await self._request("GET", "/api/workflows")

    async def run_workflow(self, name: str, params: dict | None = None) -> dict:
        return await self._request(
            "POST", f"/api/workflows/{name}/run", json={"params": params or {}}
        )

    async def route_action(self, action: str, payload: dict | None = None) -> Any:
        return await self._request(
            "POST", f"/api/actions/{action}", json={"payload": payload or {}}
        )

    # Observability

    async def get_task_events(
        self, task_id: str | None = None, limit: int = 100
    ) -> list[dict]:
        params: dict[str, Any] = {"limit": limit}
        if task_id:
            params["task_id"] = task_id
        return await self._request("GET", "/api/task-events", params=params)

    async def get_stats(self) -> dict:
        return await self._request("GET", "/api/stats")

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        response = await self._client.request(method, url, **kwargs)
        response.raise_for_status()
        return response.json()
