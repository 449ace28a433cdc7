"""Composition root: builds, starts and stops every component."""

import os
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Protocol

from .agents import (
    CodeExtractor,
    DecisionEngine,
    EditCoordinator,
    ProgressCoordinator,
    RepositoryScannerManager,
    RoadmapOrchestrator,
    UserCompiler,
)
from .communication import ResponseChannel, UserCommunicationHub, UserMessageProcessor
from .config import Settings, resolve_db_path
from .errors import ErrorHandler
from .health import HealthMonitor
from .llm import ILLMProvider, MeteredLLM, create_provider
from .logging_config import get_logger
from .message_router import MessageRouter
from .models import AgentMessage, MessageType, Priority, user_compiler_id
from .repository import DocumentRepositorySource, IRepositorySource
from .scheduler import Scheduler
from .storage import IStorage, Storage
from .token_manager import TokenManager
from .tracker import Tracker

logger = get_logger(__name__)

SOURCE = "agent_manager"


class IAgentManager(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Clear all data and restart the agents."""
        ...


class AgentManager:
    """Owns storage, router, scheduler, LLM clients and every agent."""

    def __init__(
        self,
        settings: Settings | None = None,
        db_path: str | None = None,
        llm_factory: Callable[[str], ILLMProvider] = create_provider,
        repository_source: Callable[[IStorage], IRepositorySource] = DocumentRepositorySource,
    ):
        self._settings = settings or Settings()
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self._llm_factory = llm_factory
        self._repository_source = repository_source
        self._llms: dict[str, ILLMProvider] = {}

        # Outlives resets so open websocket connections keep receiving events
        self._channel = ResponseChannel()

        self._storage: Storage | None = None
        self._router: MessageRouter | None = None
        self._error_handler: ErrorHandler | None = None
        self._tracker: Tracker | None = None
        self._scheduler: Scheduler | None = None
        self._hub: UserCommunicationHub | None = None
        self._health: HealthMonitor | None = None
        self._tokens: TokenManager | None = None
        self._agents: dict[str, object] = {}
        self._started = False

    def _llm(self, model: str, agent_id: str) -> ILLMProvider:
        """One client per model name, created on first use and metered per agent."""
        if model not in self._llms:
            self._llms[model] = self._llm_factory(model)
        return MeteredLLM(self._llms[model], partial(self._tokens.record_usage, agent_id))

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting agent manager")
        settings = self._settings
        models = settings.models

        # 1. Storage
        self._storage = Storage(self._db_path)
        await self._storage.init()

        # 2. Router, error handler, tracker
        self._router = MessageRouter(self._storage, history_size=settings.history_size)
        self._error_handler = ErrorHandler(
            self._storage, storm_threshold=settings.error_storm_threshold
        )
        self._router.set_error_handler(self._error_handler)
        self._tracker = Tracker(self._router, self._storage)
        await self._tracker.start()

        # 3. Scheduler and token accounting
        self._scheduler = Scheduler(self._error_handler)
        self._tokens = TokenManager(
            self._storage,
            self._scheduler,
            interval=settings.token_flush_interval,
            hourly_budget=settings.token_hourly_budget,
            history_size=settings.history_size,
        )
        await self._tokens.start()

        # 4. Agents in dependency order
        common = (self._router, self._storage, self._scheduler)
        await self._add(
            RoadmapOrchestrator(
                *common,
                self._llm(models.roadmap_orchestrator, "roadmap_orchestrator"),
                model=models.roadmap_orchestrator,
                interval=settings.roadmap_interval,
            )
        )
        await self._add(
            RepositoryScannerManager(
                *common,
                self._llm(models.repository_scanner, "repository_scanner_manager"),
                self._repository_source(self._storage),
                model=models.repository_scanner,
                max_scanners=settings.max_scanners,
                core_interval=settings.core_scan_interval,
                temp_ttl=settings.temp_scanner_ttl,
            )
        )
        await self._add(
            ProgressCoordinator(
                *common,
                self._llm(models.progress_coordinator, "progress_coordinator"),
                model=models.progress_coordinator,
                interval=settings.coordination_interval,
            )
        )
        await self._add(
            DecisionEngine(
                *common,
                self._llm(models.decision_engine, "decision_engine"),
                model=models.decision_engine,
                interval=settings.decision_interval,
            )
        )
        for user in await self._storage.find_documents("users"):
            if user.get("status", "active") != "inactive":
                await self._add(self._user_compiler(user["id"]))
        await self._add(
            CodeExtractor(
                *common,
                self._llm(models.code_extractor, "code_extractor"),
                model=models.code_extractor,
                scan_timeout=settings.request_timeout,
            )
        )
        await self._add(
            EditCoordinator(
                *common,
                self._llm(models.edit_coordinator, "edit_coordinator"),
                model=models.edit_coordinator,
            )
        )

        # 5. Communication hub with its two processors
        processors = [
            UserMessageProcessor(
                f"processor_{n}",
                self._llm(models.processor, f"processor_{n}"),
                self._router,
                self._storage,
                model=models.processor,
                pending_limit=settings.processor_pending_limit,
            )
            for n in (1, 2)
        ]
        self._hub = UserCommunicationHub(
            self._router,
            self._storage,
            processors,
            self._channel,
            self._scheduler,
            error_handler=self._error_handler,
            poll_interval=settings.intake_poll_interval,
        )
        await self._add(self._hub)

        # 6. Health monitor
        self._health = HealthMonitor(
            self._storage,
            self._scheduler,
            lambda: self._agents,
            interval=settings.health_interval,
        )
        await self._health.start()

        self._started = True
        logger.info("Agent manager started with %d agents", len(self._agents))

    async def _add(self, agent) -> None:
        await agent.start()
        self._agents[agent.agent_id] = agent

    def _user_compiler(self, user_id: str) -> UserCompiler:
        model = self._settings.models.user_compiler
        return UserCompiler(
            user_id,
            self._router,
            self._storage,
            self._scheduler,
            self._llm(model, user_compiler_id(user_id)),
            channel=self._channel,
            model=model,
            interval=self._settings.user_monitor_interval,
        )

    async def stop(self) -> None:
        """Scheduler first, then agents in reverse order, storage last."""
        await self._shutdown_agents()
        if self._storage:
            await self._storage.close()
            self._storage = None
            logger.info("Storage closed")

    async def _shutdown_agents(self) -> None:
        if self._scheduler:
            await self._scheduler.stop()
        for agent_id in reversed(list(self._agents)):
            try:
                await self._agents[agent_id].stop()
            except Exception as e:
                logger.error("Failed to stop %s: %s", agent_id, e)
        self._agents.clear()
        if self._tokens:
            await self._tokens.stop()
        if self._tracker:
            await self._tracker.stop()
        self._started = False

    async def reset(self) -> None:
        """Clear stored data and rebuild every component."""
        await self._shutdown_agents()
        if self._storage:
            await self._storage.clear()
            await self._storage.close()
            self._storage = None
        self._channel.clear()
        await self.start()
        logger.info("Reset complete")

    async def add_user(self, user_id: str, data: dict) -> dict:
        """Register a participant, start their compiler and tell the orchestrator."""
        now = datetime.now(timezone.utc).isoformat()
        user = {
            "name": user_id,
            "skills": [],
            **data,
            "status": "active",
            "joined_at": now,
            "last_activity": now,
        }
        await self.storage.set_document("users", user_id, user)

        compiler_id = user_compiler_id(user_id)
        if compiler_id not in self._agents:
            await self._add(self._user_compiler(user_id))

        await self.router.send(
            AgentMessage(
                type=MessageType.USER_REGISTERED,
                source=SOURCE,
                target="roadmap_orchestrator",
                payload={"user": {"id": user_id, **user}},
                priority=Priority.CRITICAL,
            )
        )
        logger.info("User %s added", user_id)
        return {"id": user_id, **user}

    async def remove_user(self, user_id: str) -> bool:
        user = await self.storage.get_document("users", user_id)
        if user is None:
            return False

        await self.router.send(
            AgentMessage(
                type=MessageType.USER_DEPARTED,
                source=SOURCE,
                target="roadmap_orchestrator",
                payload={"user_id": user_id},
                priority=Priority.CRITICAL,
            )
        )

        compiler = self._agents.pop(user_compiler_id(user_id), None)
        if compiler:
            await compiler.stop()

        await self.storage.update_document(
            "users",
            user_id,
            {"status": "inactive", "departed_at": datetime.now(timezone.utc).isoformat()},
        )
        logger.info("User %s removed", user_id)
        return True

    def get_agent(self, agent_id: str):
        return self._agents.get(agent_id)

    async def get_status(self) -> dict:
        agents = {}
        for agent_id, agent in self._agents.items():
            entry = {"type": type(agent).__name__, "active": True}
            get_status = getattr(agent, "get_status", None)
            if get_status:
                entry["details"] = get_status()
            agents[agent_id] = entry
        return {
            "started": self._started,
            "agents": agents,
            "health": self._health.get_health_report() if self._health else {},
            "bus": self._router.get_metrics() if self._router else {},
            "errors": await self._error_handler.get_error_report() if self._error_handler else {},
            "tokens": self._tokens.get_usage_report() if self._tokens else {},
            "timers": self._scheduler.names if self._scheduler else [],
        }

    @property
    def storage(self) -> IStorage:
        if not self._storage:
            raise RuntimeError("AgentManager not started")
        return self._storage

    @property
    def router(self) -> MessageRouter:
        if not self._router:
            raise RuntimeError("AgentManager not started")
        return self._router

    @property
    def hub(self) -> UserCommunicationHub:
        if not self._hub:
            raise RuntimeError("AgentManager not started")
        return self._hub

    @property
    def channel(self) -> ResponseChannel:
        return self._channel

    @property
    def tracker(self) -> Tracker | None:
        return self._tracker

    @property
    def scanner_manager(self) -> RepositoryScannerManager:
        manager = self._agents.get("repository_scanner_manager")
        if manager is None:
            raise RuntimeError("AgentManager not started")
        return manager
