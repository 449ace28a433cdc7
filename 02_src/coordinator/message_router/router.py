"""MessageRouter: typed in-process pub/sub with broadcast groups and request/response."""

import asyncio
import random
import string
import time
from collections import deque
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Iterable, Protocol

from ..errors import ErrorSeverity, IErrorHandler
from ..logging_config import get_logger
from ..models import (
    ALL_AGENTS,
    ALL_USER_COMPILERS,
    USER_COMPILER_PREFIX,
    AgentMessage,
    MessageType,
)
from ..storage import IStorage

logger = get_logger(__name__)


MessageHandler = Callable[[AgentMessage], Awaitable[None]]

# Members of the all_agents broadcast group
DEFAULT_ALL_AGENTS = (
    "roadmap_orchestrator",
    "repository_scanner_manager",
    "progress_coordinator",
    "decision_engine",
    "code_extractor",
    "edit_coordinator",
    "communication_hub",
)

_BASE36 = string.digits + string.ascii_lowercase


def generate_correlation_id() -> str:
    """msg_<epoch-ms>_<9 base36 chars>."""
    suffix = "".join(random.choices(_BASE36, k=9))
    return f"msg_{int(time.time() * 1000)}_{suffix}"


class IMessageRouter(Protocol):
    """Typed pub/sub bus between agents."""

    def register_agent(
        self,
        agent_id: str,
        message_types: Iterable[MessageType],
        handler: MessageHandler,
    ) -> None:
        """Subscribe an agent's handler to message types (idempotent)."""
        ...

    def unregister_agent(self, agent_id: str) -> None:
        """Remove an agent from every routing entry."""
        ...

    async def send(self, message: AgentMessage) -> AgentMessage:
        """Record, persist and deliver a message. Returns it with its correlation id."""
        ...

    async def request(
        self,
        message: AgentMessage,
        response_type: MessageType,
        timeout: float = 30.0,
    ) -> AgentMessage:
        """Send and wait for the reply of response_type carrying the same correlation id."""
        ...


class MessageRouter:
    """In-memory message router backed by Storage for persistence."""

    def __init__(
        self,
        storage: IStorage,
        all_agents: Iterable[str] = DEFAULT_ALL_AGENTS,
        history_size: int = 1000,
        error_handler: IErrorHandler | None = None,
    ):
        self._storage = storage
        self._error_handler = error_handler
        # Ordered sets: dict keys keep registration order
        self._routing: dict[str, dict[str, None]] = {
            ALL_AGENTS: dict.fromkeys(all_agents),
            ALL_USER_COMPILERS: {},
        }
        self._handlers: dict[str, MessageHandler] = {}
        self._observers: list[MessageHandler] = []
        self._history: deque[AgentMessage] = deque(maxlen=history_size)
        self._pending: dict[str, tuple[MessageType, asyncio.Future]] = {}

    def set_error_handler(self, error_handler: IErrorHandler) -> None:
        self._error_handler = error_handler

    def register_agent(
        self,
        agent_id: str,
        message_types: Iterable[MessageType],
        handler: MessageHandler,
    ) -> None:
        """Subscribe an agent's handler to message types (idempotent)."""
        types = list(message_types)
        logger.info(
            "Registering agent %s for message types: %s",
            agent_id,
            [t.value for t in types],
        )

        for message_type in types:
            self._routing.setdefault(message_type.value, {})[agent_id] = None
        self._handlers[agent_id] = handler

        if agent_id.startswith(USER_COMPILER_PREFIX):
            self._routing[ALL_USER_COMPILERS][agent_id] = None

    def unregister_agent(self, agent_id: str) -> None:
        """Remove an agent from every routing entry. The all_agents group stays fixed."""
        logger.info("Unregistering agent %s", agent_id)

        for key, agents in self._routing.items():
            if key != ALL_AGENTS:
                agents.pop(agent_id, None)
        self._handlers.pop(agent_id, None)

    def subscribe_all(self, observer: MessageHandler) -> None:
        """Observe every message sent (wildcard channel)."""
        self._observers.append(observer)

    def unsubscribe_all(self, observer: MessageHandler) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def is_registered(self, agent_id: str) -> bool:
        return agent_id in self._handlers

    async def send(self, message: AgentMessage) -> AgentMessage:
        """Record, persist and deliver a message. Returns it with its correlation id."""
        if not message.correlation_id:
            message = replace(message, correlation_id=generate_correlation_id())

        logger.debug(
            "Routing message: %s from %s to %s",
            message.type.value,
            message.source,
            message.target,
        )

        self._history.append(message)

        # Liveness over durability: persistence errors never block delivery
        try:
            await self._storage.save_bus_message(message)
        except Exception as e:
            logger.error("Failed to persist message %s: %s", message.correlation_id, e)

        self._resolve_pending(message)

        # Recipients are fixed synchronously, before the first await of delivery
        deliveries = self._recipients(message)
        deliveries.extend(("*", observer, message) for observer in list(self._observers))

        if deliveries:
            results = await asyncio.gather(
                *[handler(msg) for _, handler, msg in deliveries],
                return_exceptions=True,
            )

            for (agent_id, _, msg), result in zip(deliveries, results):
                if isinstance(result, Exception):
                    logger.error(
                        "Error in handler %s for %s: %s",
                        agent_id,
                        msg.type.value,
                        result,
                    )
                    await self._report(result, agent_id, msg)

        return message

    def _recipients(
        self, message: AgentMessage
    ) -> list[tuple[str, MessageHandler, AgentMessage]]:
        if message.target == ALL_AGENTS:
            targets = list(self._routing[ALL_AGENTS])
            rewrite = True
        elif message.target == ALL_USER_COMPILERS:
            targets = list(self._routing[ALL_USER_COMPILERS])
            rewrite = True
        else:
            # Target is metadata here; subscribers sharing a type filter on it
            targets = list(self._routing.get(message.type.value, {}))
            rewrite = False

        deliveries = []
        for agent_id in targets:
            handler = self._handlers.get(agent_id)
            if handler is None:
                logger.debug("No handler registered for %s, skipping", agent_id)
                continue
            msg = replace(message, target=agent_id) if rewrite else message
            deliveries.append((agent_id, handler, msg))
        return deliveries

    async def _report(self, error: Exception, agent_id: str, message: AgentMessage) -> None:
        if not self._error_handler:
            return
        try:
            await self._error_handler.handle_error(
                error,
                ErrorSeverity.MEDIUM,
                {
                    "agent_id": agent_id,
                    "operation": message.type.value,
                    "correlation_id": message.correlation_id,
                },
            )
        except Exception as e:
            logger.error("Failed to report handler error: %s", e)

    async def request(
        self,
        message: AgentMessage,
        response_type: MessageType,
        timeout: float = 30.0,
    ) -> AgentMessage:
        """Send and wait for the reply of response_type carrying the same correlation id.

        Raises:
            asyncio.TimeoutError: no matching reply within timeout seconds
        """
        if not message.correlation_id:
            message = replace(message, correlation_id=generate_correlation_id())

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[message.correlation_id] = (response_type, future)
        try:
            await self.send(message)
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            self._pending.pop(message.correlation_id, None)

    def _resolve_pending(self, message: AgentMessage) -> None:
        pending = self._pending.get(message.correlation_id)
        if not pending:
            return
        response_type, future = pending
        if message.type == response_type and not future.done():
            future.set_result(message)

    def get_history(
        self,
        type: MessageType | None = None,
        source: str | None = None,
        target: str | None = None,
        since: datetime | None = None,
    ) -> list[AgentMessage]:
        """Buffered messages, oldest first, optionally filtered."""
        return [
            msg
            for msg in self._history
            if (type is None or msg.type == type)
            and (source is None or msg.source == source)
            and (target is None or msg.target == target)
            and (since is None or msg.timestamp >= since)
        ]

    def get_routing_table(self) -> dict[str, list[str]]:
        return {key: list(agents) for key, agents in self._routing.items()}

    def get_metrics(self) -> dict:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=5)
        recent = [msg for msg in self._history if msg.timestamp > cutoff]

        message_types: dict[str, int] = {}
        for msg in recent:
            message_types[msg.type.value] = message_types.get(msg.type.value, 0) + 1

        return {
            "total_messages": len(self._history),
            "recent_messages": len(recent),
            "message_types": message_types,
            "routing_table_size": len(self._routing),
        }
