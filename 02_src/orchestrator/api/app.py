"""FastAPI application setup."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..app import Application
from ..errors import InvalidTransition, OrchestratorError
from .routes import observability, tasks, workflows


# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    The lifespan starts and stops `application` (the global instance by
    default).
    """
    application = application or get_app()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await application.start()
        yield
        await application.stop()

    fastapi_app = FastAPI(
        title="Orchestrator API",
        description="Task orchestration API",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Enable CORS
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:5174"],  # Vite default
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @fastapi_app.exception_handler(OrchestratorError)
    async def orchestrator_error_handler(request: Request, exc: OrchestratorError):
        status_code = 409 if isinstance(exc, InvalidTransition) else 400
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "error": type(exc).__name__},
        )

    @fastapi_app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "agents": len(application.orchestrator.get_agents()),
            "running_tasks": len(await application.state_manager.get_running_tasks()),
        }

    # Include routers
    fastapi_app.include_router(tasks.create_tasks_router(application))
    fastapi_app.include_router(workflows.create_workflows_router(application))
    fastapi_app.include_router(observability.create_observability_router(application))

    return fastapi_app
