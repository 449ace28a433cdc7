"""UserCommunicationHub: intake queue, processor dispatch and user responses."""

import asyncio
from datetime import datetime, timezone
from typing import Protocol

from ..errors import ErrorSeverity, IErrorHandler
from ..logging_config import get_logger
from ..message_router import IMessageRouter, generate_correlation_id
from ..models import AgentMessage, MessageType, Priority, ProcessedMessage, UserMessage
from ..scheduler import IScheduler
from ..storage import IStorage
from ..utils import PriorityQueue
from .processor import UserMessageProcessor
from .response_channel import ResponseChannel

logger = get_logger(__name__)

AGENT_ID = "communication_hub"

URGENT_KEYWORDS = ("blocked", "critical", "urgent", "help", "error", "broken")

INTENT_RESPONSES = {
    "help": "I've identified team members who can help with your issue. Connecting you now...",
    "question": "Let me find that information for you...",
    "feedback": "Thank you for your feedback. I've shared it with the team.",
    "issue": "I've logged this issue and notified the relevant team members.",
    "status_update": "Status update received. The progress map has been updated.",
    "collaboration": "I'm setting up a collaboration session for you.",
}
DEFAULT_RESPONSE = "Message received and being processed."
FAILURE_RESPONSE = "Failed to process message. Please try again."


def calculate_intake_priority(content: str, user_status: str | None) -> Priority:
    """Cheap pre-classification priority for the intake queue."""
    lowered = content.lower()
    if any(keyword in lowered for keyword in URGENT_KEYWORDS):
        return Priority.HIGH
    if user_status == "blocked":
        return Priority.MEDIUM
    return Priority.LOW


class IUserCommunicationHub(Protocol):
    """Ingestion entry point for user messages."""

    async def submit(self, user_id: str, content: str, context: dict | None = None) -> str:
        """Enqueue a user message. Returns its id immediately."""
        ...


class UserCommunicationHub:
    """Owns the intake PriorityQueue and both UserMessageProcessors."""

    def __init__(
        self,
        router: IMessageRouter,
        storage: IStorage,
        processors: list[UserMessageProcessor],
        channel: ResponseChannel,
        scheduler: IScheduler,
        error_handler: IErrorHandler | None = None,
        poll_interval: float = 0.1,
    ):
        if len(processors) != 2:
            raise ValueError("UserCommunicationHub requires exactly two processors")
        self._router = router
        self._storage = storage
        self._processors = processors
        self._channel = channel
        self._scheduler = scheduler
        self._error_handler = error_handler
        self._poll_interval = poll_interval
        self._queue: PriorityQueue[UserMessage] = PriorityQueue()
        self._in_flight: set[asyncio.Task] = set()

    @property
    def agent_id(self) -> str:
        return AGENT_ID

    @property
    def channel(self) -> ResponseChannel:
        return self._channel

    @property
    def queue(self) -> PriorityQueue[UserMessage]:
        return self._queue

    async def start(self) -> None:
        """Register on the router and start the intake poller."""
        self._router.register_agent(
            AGENT_ID,
            [MessageType.CRITICAL_ISSUE, MessageType.ASSISTANCE_SUGGESTION],
            self.handle,
        )
        self._scheduler.every("intake_poller", self._poll_interval, self.drain)
        logger.info("UserCommunicationHub started")

    async def stop(self) -> None:
        """Stop polling and wait for in-flight messages."""
        self._scheduler.cancel("intake_poller")
        self._router.unregister_agent(AGENT_ID)
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        logger.info("UserCommunicationHub stopped")

    async def handle(self, message: AgentMessage) -> None:
        match message.type:
            case MessageType.CRITICAL_ISSUE:
                for user_id in self._channel.connected_users:
                    await self._channel.emit(user_id, "alert", message.payload)
            case MessageType.ASSISTANCE_SUGGESTION:
                user_id = message.payload.get("user_id")
                if user_id:
                    await self._channel.emit(user_id, "assistance", message.payload)
            case _:
                pass

    async def submit(self, user_id: str, content: str, context: dict | None = None) -> str:
        """Enqueue a user message. Returns its id immediately."""
        user = await self._storage.get_document("users", user_id) or {}
        user_status = user.get("status", "active")

        message = UserMessage(
            id=generate_correlation_id(),
            user_id=user_id,
            user_name=user.get("name", "Unknown User"),
            content=content,
            context={
                **(context or {}),
                "current_tasks": await self._current_tasks(user_id),
                "user_status": user_status,
            },
            timestamp=datetime.now(timezone.utc),
        )

        priority = calculate_intake_priority(content, user_status)
        self._queue.enqueue(message, priority)
        logger.info(
            "Queued message %s from %s with priority %s", message.id, user_id, priority.name
        )

        await self._channel.emit(
            user_id, "acknowledgment", {"message_id": message.id, "status": "received"}
        )
        return message.id

    async def _current_tasks(self, user_id: str) -> list[dict]:
        tasks = await self._storage.find_documents("tasks", {"assigned_to": user_id})
        return [t for t in tasks if t.get("status") in ("in_progress", "not_started")]

    def select_processor(self) -> UserMessageProcessor | None:
        """Least-loaded available processor; None when both are saturated."""
        first, second = self._processors
        if first.is_available():
            if not second.is_available():
                return first
            return first if first.queue_size <= second.queue_size else second
        if second.is_available():
            return second
        return None

    async def drain(self) -> None:
        """Dispatch queued messages while a processor is available (one poll tick)."""
        while not self._queue.is_empty():
            processor = self.select_processor()
            if processor is None:
                # Backpressure: leave the rest queued for the next tick
                return
            message = self._queue.dequeue()
            processor.reserve(message.id)
            task = asyncio.create_task(self._process(processor, message))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            # Let the task enter its LLM calls so availability reflects it
            await asyncio.sleep(0)

    async def _process(self, processor: UserMessageProcessor, message: UserMessage) -> None:
        try:
            processed = await processor.process(message)
        except Exception as e:
            logger.error("Error processing message %s: %s", message.id, e, exc_info=True)
            await self._handle_processing_error(e, message)
            return
        await self._send_user_response(processed)

    async def _send_user_response(self, processed: ProcessedMessage) -> None:
        await self._channel.emit(
            processed.original.user_id,
            "response",
            {
                "message_id": processed.original.id,
                "response": INTENT_RESPONSES.get(processed.intent, DEFAULT_RESPONSE),
                "intent": processed.intent,
                "urgency": processed.urgency,
            },
        )

    async def _handle_processing_error(self, error: Exception, message: UserMessage) -> None:
        try:
            await self._storage.add_document(
                "processing_errors",
                {
                    "message_id": message.id,
                    "user_id": message.user_id,
                    "error": str(error),
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )
            if self._error_handler:
                await self._error_handler.handle_error(
                    error,
                    ErrorSeverity.HIGH,
                    {"agent_id": AGENT_ID, "user_id": message.user_id, "operation": "process_message"},
                )
        except Exception as e:
            logger.error("Failed to record processing error: %s", e)

        await self._channel.emit(
            message.user_id,
            "error",
            {"message_id": message.id, "error": FAILURE_RESPONSE},
        )

    def get_status(self) -> dict:
        return {
            "queue_size": self._queue.size(),
            "in_flight": len(self._in_flight),
            "connected_users": len(self._channel.connected_users),
            "processors": [p.get_stats() for p in self._processors],
        }

    async def health_check(self) -> dict:
        rates = [(await p.health_check())["error_rate"] for p in self._processors]
        return {"error_rate": max(rates)}
