"""Messaging API routes: intake, response polling and websocket push."""

from typing import Any

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from ...agent_manager import AgentManager
from ...logging_config import get_logger

logger = get_logger(__name__)


class MessageRequest(BaseModel):
    """Request model for submitting a user message."""

    user_id: str = Field(min_length=1)
    content: str = Field(min_length=1)
    context: dict[str, Any] = Field(default_factory=dict)


class MessageAccepted(BaseModel):
    """Response model for a queued message."""

    message_id: str
    status: str


class ChannelEvent(BaseModel):
    """Event pushed to (or polled by) a user."""

    event: str
    data: dict[str, Any]
    timestamp: str


def create_messaging_router(manager: AgentManager) -> APIRouter:
    """Create messaging router."""
    router = APIRouter(prefix="/api", tags=["messaging"])

    @router.post("/messages", response_model=MessageAccepted)
    async def send_message(request: MessageRequest) -> dict:
        """Queue a message for processing; returns immediately."""
        try:
            message_id = await manager.hub.submit(
                request.user_id, request.content, request.context
            )
            return {"message_id": message_id, "status": "queued"}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/messages/{user_id}/responses", response_model=list[ChannelEvent])
    async def poll_responses(user_id: str) -> list[dict]:
        """Drain events queued for a user without a live connection."""
        return manager.channel.poll(user_id)

    return router


def create_websocket_router(manager: AgentManager) -> APIRouter:
    """Create websocket router for push delivery."""
    router = APIRouter(tags=["messaging"])

    @router.websocket("/ws/{user_id}")
    async def user_socket(websocket: WebSocket, user_id: str) -> None:
        await websocket.accept()

        async def push(envelope: dict) -> None:
            await websocket.send_json(envelope)

        # Flush anything queued while offline, then switch to push
        for envelope in manager.channel.poll(user_id):
            await websocket.send_json(envelope)
        manager.channel.connect(user_id, push)

        try:
            while True:
                try:
                    frame = await websocket.receive_json()
                except ValueError:
                    await manager.channel.emit(user_id, "error", {"error": "Invalid JSON frame"})
                    continue
                content = frame.get("message") if isinstance(frame, dict) else None
                if not content:
                    await manager.channel.emit(user_id, "error", {"error": "Empty message"})
                    continue
                await manager.hub.submit(user_id, content, frame.get("context") or {})
        except WebSocketDisconnect:
            pass
        finally:
            manager.channel.disconnect(user_id, push)
            logger.info("Websocket for %s closed", user_id)

    return router
