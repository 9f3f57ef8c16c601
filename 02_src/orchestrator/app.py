"""Application bootstrap and lifecycle management."""

import functools
from typing import Protocol

from .agents import (
    AIAgent,
    ParallelAgent,
    RecordOperationsAgent,
    SchemaAgent,
    ValidationAgent,
)
from .collaborators import (
    InMemoryRecordService,
    InMemorySchemaSource,
    IRecordService,
    ISchemaSource,
)
from .config import Settings, resolve_db_path
from .llm import ILLMProvider, LLMProvider
from .locking import LockManager
from .logging_config import get_logger
from .message_bus import AgentRegistry, MessageBus
from .orchestrator import Orchestrator
from .storage import IStorage, Storage
from .tasks import TaskService, TaskStateManager, spawn_worker
from .tasks.service import Launcher
from .tracker import ITracker, Tracker

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Reset data between test runs."""
        ...


class Application:
    """Main application bootstrap."""

    def __init__(
        self,
        settings: Settings | None = None,
        db_path: str | None = None,
        llm_provider: ILLMProvider | None = None,
        records: IRecordService | None = None,
        schema_source: ISchemaSource | None = None,
        launcher: Launcher | None = None,
    ):
        self._settings = settings or Settings.from_env()
        self._db_path = (
            resolve_db_path(db_path) if db_path is not None else self._settings.db_path
        )
        self._llm = llm_provider
        self._records = records or InMemoryRecordService()
        self._schema_source = schema_source or InMemorySchemaSource()
        self._launcher = launcher or functools.partial(spawn_worker, db_path=self._db_path)

        # Components (will be initialized in start())
        self._storage: IStorage | None = None
        self._registry: AgentRegistry | None = None
        self._bus: MessageBus | None = None
        self._tracker: ITracker | None = None
        self._locks: LockManager | None = None
        self._orchestrator: Orchestrator | None = None
        self._state_manager: TaskStateManager | None = None
        self._task_service: TaskService | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")
        settings = self._settings

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. MessageBus with its agent registry
        self._registry = AgentRegistry()
        self._bus = MessageBus(self._registry, max_log_size=settings.message_log_size)
        logger.info("MessageBus initialized")

        # 3. Tracker (depends on Storage)
        self._tracker = Tracker(self._storage)

        # 4. LockManager
        self._locks = LockManager(default_ttl=settings.lock_ttl_seconds)

        # 5. Agents (depend on MessageBus, LockManager, collaborators)
        self._register_agents()
        await self._registry.start_all()
        logger.info("Agents started: %s", len(self._registry))

        # 6. Orchestrator as the bus sink
        self._orchestrator = Orchestrator(self._bus, self._registry)
        self._orchestrator.attach()
        logger.info("Orchestrator attached")

        # 7. Task lifecycle (depends on Storage + Tracker)
        self._state_manager = TaskStateManager(
            self._storage,
            self._tracker,
            heartbeat_grace=settings.heartbeat_grace_seconds,
        )
        self._task_service = TaskService(
            self._state_manager, self._tracker, launcher=self._launcher
        )
        interrupted = await self._state_manager.sync_task_states()
        if interrupted:
            logger.warning("Interrupted orphaned tasks: %s", interrupted)
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._orchestrator:
            self._orchestrator.detach()
        if self._registry:
            await self._registry.stop_all()
        if self._locks:
            self._locks.shutdown()
        if self._bus:
            await self._bus.shutdown()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Reset data between test runs."""
        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")
        if self._bus:
            self._bus.clear_message_log()
        logger.info("Reset complete")

    def _register_agents(self) -> None:
        settings = self._settings
        bus = self._bus
        bus.register_agent(
            SchemaAgent(
                bus,
                self._schema_source,
                refresh_interval=settings.schema_refresh_seconds,
                agent_id="schema_agent",
            )
        )
        bus.register_agent(ValidationAgent(bus, agent_id="validation_agent"))
        bus.register_agent(
            RecordOperationsAgent(
                bus,
                self._records,
                self._locks,
                lock_ttl=settings.lock_ttl_seconds,
                agent_id="record_ops_agent",
            )
        )
        bus.register_agent(ParallelAgent(bus, agent_id="parallel_agent"))

        llm = self._llm
        if llm is None:
            try:
                llm = LLMProvider(model=settings.llm_model)
            except ValueError as e:
                logger.warning("AI agent disabled: %s", e)
        if llm is not None:
            self._llm = llm
            bus.register_agent(AIAgent(bus, llm, agent_id="ai_agent"))

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def bus(self) -> MessageBus:
        if not self._bus:
            raise RuntimeError("Application not started")
        return self._bus

    @property
    def locks(self) -> LockManager:
        if not self._locks:
            raise RuntimeError("Application not started")
        return self._locks

    @property
    def orchestrator(self) -> Orchestrator:
        if not self._orchestrator:
            raise RuntimeError("Application not started")
        return self._orchestrator

    @property
    def tracker(self) -> ITracker:
        if not self._tracker:
            raise RuntimeError("Application not started")
        return self._tracker

    @property
    def state_manager(self) -> TaskStateManager:
        if not self._state_manager:
            raise RuntimeError("Application not started")
        return self._state_manager

    @property
    def task_service(self) -> TaskService:
        """Get task service instance."""
        if not self._task_service:
            raise RuntimeError("Application not started")
        return self._task_service
