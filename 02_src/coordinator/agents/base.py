"""Common shape of a bus-driven agent."""

from typing import Protocol

from ..logging_config import get_logger
from ..message_router import IMessageRouter
from ..models import AgentMessage, MessageType, Priority
from ..scheduler import IScheduler
from ..storage import IStorage


class IAgent(Protocol):
    """A long-lived component subscribed to bus message types."""

    @property
    def agent_id(self) -> str:
        """Agent identifier."""
        ...

    async def start(self) -> None:
        """Register on the router and schedule timers."""
        ...

    async def stop(self) -> None:
        """Unregister and cancel timers."""
        ...

    async def handle(self, message: AgentMessage) -> None:
        """Dispatch one incoming message."""
        ...


class BaseAgent:
    """Router registration, timer ownership and send helper shared by agents.

    Subclasses set `message_types`, implement `handle` and optionally
    override `on_start` / `on_stop`.
    """

    message_types: tuple[MessageType, ...] = ()

    def __init__(
        self,
        agent_id: str,
        router: IMessageRouter,
        storage: IStorage,
        scheduler: IScheduler,
    ):
        self._agent_id = agent_id
        self._router = router
        self._storage = storage
        self._scheduler = scheduler
        self._timers: list[str] = []
        self._logger = get_logger(type(self).__module__, agent_id=agent_id)

    @property
    def agent_id(self) -> str:
        return self._agent_id

    async def start(self) -> None:
        self._router.register_agent(self._agent_id, self.message_types, self.handle)
        await self.on_start()
        self._logger.info("Agent %s started", self._agent_id)

    async def stop(self) -> None:
        for name in self._timers:
            self._scheduler.cancel(name)
        self._timers.clear()
        self._router.unregister_agent(self._agent_id)
        await self.on_stop()
        self._logger.info("Agent %s stopped", self._agent_id)

    async def restart(self) -> None:
        await self.stop()
        await self.start()

    async def on_start(self) -> None:
        return

    async def on_stop(self) -> None:
        return

    async def handle(self, message: AgentMessage) -> None:
        raise NotImplementedError

    def every(self, label: str, interval: float, fn, run_immediately: bool = False) -> None:
        """Schedule a periodic tick owned by this agent."""
        name = f"{self._agent_id}:{label}"
        self._scheduler.every(name, interval, fn, run_immediately=run_immediately)
        self._timers.append(name)

    async def send(
        self,
        type: MessageType,
        target: str,
        payload: dict,
        priority: int = Priority.MEDIUM,
        correlation_id: str | None = None,
    ) -> AgentMessage:
        return await self._router.send(
            AgentMessage(
                type=type,
                source=self._agent_id,
                target=target,
                payload=payload,
                priority=priority,
                correlation_id=correlation_id,
            )
        )

    async def health_check(self) -> dict:
        return {}
