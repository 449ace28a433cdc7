"""Observability API routes."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Query

from ...agent_manager import AgentManager
from ...models import MessageType


class TraceEventResponse(BaseModel):
    """Response model for trace event."""

    id: str
    event_type: str
    actor: str
    data: dict[str, Any]
    timestamp: datetime


class BusMessageResponse(BaseModel):
    """Response model for a routed bus message."""

    type: str
    source: str
    target: str
    payload: dict[str, Any]
    priority: int
    timestamp: datetime
    correlation_id: str | None


def create_observability_router(manager: AgentManager) -> APIRouter:
    """Create observability router."""
    router = APIRouter(prefix="/api", tags=["observability"])

    @router.get("/trace-events", response_model=list[TraceEventResponse])
    async def get_trace_events(
        after: str | None = Query(None, description="ISO timestamp filter"),
        limit: int = Query(100, ge=1, le=1000),
        event_type: str | None = Query(None, description="Filter by event type"),
        actor: str | None = Query(None, description="Filter by actor"),
    ) -> list[dict]:
        """Get trace events with optional filters."""
        try:
            after_dt = None
            if after:
                try:
                    after_dt = datetime.fromisoformat(after)
                except ValueError:
                    raise HTTPException(
                        status_code=400, detail="Invalid after timestamp format"
                    )

            events = await manager.storage.get_trace_events(
                after=after_dt,
                event_types=[event_type] if event_type else None,
                actor=actor,
                limit=limit,
            )
            return [e.to_dict() for e in events]

        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/bus/history", response_model=list[BusMessageResponse])
    async def get_bus_history(
        limit: int = Query(100, ge=1, le=1000),
        message_type: str | None = Query(None, alias="type", description="Filter by message type"),
    ) -> list[dict]:
        """Persisted bus messages, newest first."""
        msg_type = None
        if message_type:
            try:
                msg_type = MessageType(message_type)
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Unknown message type: {message_type}")
        try:
            messages = await manager.storage.get_bus_messages(limit=limit, message_type=msg_type)
            return [m.to_dict() for m in messages]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/bus/metrics")
    async def get_bus_metrics() -> dict:
        return manager.router.get_metrics()

    @router.get("/bus/routing")
    async def get_bus_routing() -> dict[str, list[str]]:
        return manager.router.get_routing_table()

    return router
