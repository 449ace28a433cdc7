"""Tracker implementation for creating TraceEvents."""

import uuid
from datetime import datetime, timezone
from typing import Protocol

from ..message_router import IMessageRouter
from ..models import AgentMessage, TraceEvent
from ..storage import IStorage


class ITracker(Protocol):
    """Creating TraceEvents. Two channels: router wildcard subscription + direct calls."""

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        ...


class Tracker:
    """Creates TraceEvents for every routed message and for direct track() calls."""

    def __init__(self, router: IMessageRouter, storage: IStorage):
        self._router = router
        self._storage = storage

    async def start(self) -> None:
        """Observe every message on the router."""
        self._router.subscribe_all(self._handle_bus_message)

    async def stop(self) -> None:
        self._router.unsubscribe_all(self._handle_bus_message)

    async def _handle_bus_message(self, message: AgentMessage) -> None:
        """Record a summary of a routed message."""
        # Extract payload summary (first 100 chars)
        payload_summary = str(message.payload)[:100]

        await self.track(
            event_type="bus_message",
            actor=message.source,
            data={
                "type": message.type.value,
                "target": message.target,
                "priority": int(message.priority),
                "correlation_id": message.correlation_id,
                "payload_summary": payload_summary,
            },
        )

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        trace_event = TraceEvent(
            id=str(uuid.uuid4()),
            event_type=event_type,
            actor=actor,
            data=data,
            timestamp=datetime.now(timezone.utc),
        )
        await self._storage.save_trace_event(trace_event)
