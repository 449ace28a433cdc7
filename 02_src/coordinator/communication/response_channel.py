"""ResponseChannel: push to connected users, outbox for everyone else."""

from collections import deque
from datetime import datetime, timezone
from typing import Awaitable, Callable, Protocol

from ..logging_config import get_logger

logger = get_logger(__name__)


Sender = Callable[[dict], Awaitable[None]]


class IResponseChannel(Protocol):
    """Delivers events (acknowledgment, response, error, alert) back to users."""

    async def emit(self, user_id: str, event: str, data: dict) -> None:
        """Push to the user's live connection, or queue for polling."""
        ...


class ResponseChannel:
    """Per-user delivery: a live sender (websocket) when connected, else an outbox."""

    def __init__(self, outbox_size: int = 200):
        self._outbox_size = outbox_size
        self._senders: dict[str, Sender] = {}
        self._outboxes: dict[str, deque[dict]] = {}

    def connect(self, user_id: str, sender: Sender) -> None:
        self._senders[user_id] = sender
        logger.info("User %s connected", user_id)

    def disconnect(self, user_id: str, sender: Sender | None = None) -> None:
        """Drop the user's live sender. With `sender`, only if it is still the registered one."""
        current = self._senders.get(user_id)
        if current is None or (sender is not None and current is not sender):
            return
        del self._senders[user_id]
        logger.info("User %s disconnected", user_id)

    def is_connected(self, user_id: str) -> bool:
        return user_id in self._senders

    @property
    def connected_users(self) -> list[str]:
        return list(self._senders)

    async def emit(self, user_id: str, event: str, data: dict) -> None:
        """Push to the user's live connection, or queue for polling."""
        envelope = {
            "event": event,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        sender = self._senders.get(user_id)
        if sender:
            try:
                await sender(envelope)
                return
            except Exception as e:
                # Dead connection: fall back to the outbox
                logger.warning("Push to %s failed, queueing: %s", user_id, e)
                self.disconnect(user_id, sender)

        outbox = self._outboxes.setdefault(user_id, deque(maxlen=self._outbox_size))
        outbox.append(envelope)

    def poll(self, user_id: str) -> list[dict]:
        """Drain and return queued events for a user."""
        outbox = self._outboxes.pop(user_id, None)
        return list(outbox) if outbox else []

    def clear(self) -> None:
        self._outboxes.clear()
