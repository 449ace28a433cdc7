"""Control API routes."""

from typing import Any

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException

from ...agent_manager import AgentManager
from ...agents import determine_scan_mode
from ...models import AgentMessage, MessageType, Priority, ScanMode


class StatusResponse(BaseModel):
    """Response model for status."""

    status: str


class UserRequest(BaseModel):
    """Request model for registering a participant."""

    user_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    skills: list[str] = Field(default_factory=list)
    available_hours: float | None = None
    experience: str | None = None


class ScannerRequest(BaseModel):
    """Scanner allocation directive."""

    requested_scanners: int = Field(ge=0, le=64)
    mode: ScanMode | None = None
    focus_areas: list[str] = Field(default_factory=list)
    priority: str = "normal"


# Global SIM instance (will be set by main app)
_sim_instance: Any = None


def set_sim_instance(sim: Any) -> None:
    """Set the global SIM instance."""
    global _sim_instance
    _sim_instance = sim


def get_sim_instance() -> Any:
    """Get the global SIM instance."""
    return _sim_instance


def create_control_router(manager: AgentManager) -> APIRouter:
    """Create control router."""
    router = APIRouter(prefix="/api/control", tags=["control"])

    @router.get("/status")
    async def get_status() -> dict:
        try:
            return await manager.get_status()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/users")
    async def add_user(request: UserRequest) -> dict:
        """Register a participant and start their compiler."""
        data = request.model_dump(exclude={"user_id"}, exclude_none=True)
        try:
            return await manager.add_user(request.user_id, data)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.delete("/users/{user_id}", response_model=StatusResponse)
    async def remove_user(user_id: str) -> dict:
        try:
            removed = await manager.remove_user(user_id)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not removed:
            raise HTTPException(status_code=404, detail=f"User {user_id} not found")
        return {"status": "ok"}

    @router.post("/scanners")
    async def allocate_scanners(request: ScannerRequest) -> dict:
        """Send a SCANNER_ALLOCATION directive and report the resulting pool."""
        mode = request.mode or determine_scan_mode(request.requested_scanners)
        try:
            await manager.router.send(
                AgentMessage(
                    type=MessageType.SCANNER_ALLOCATION,
                    source="control_api",
                    target="repository_scanner_manager",
                    payload={
                        "requested_scanners": request.requested_scanners,
                        "mode": mode.value,
                        "focus_areas": request.focus_areas,
                        "priority": request.priority,
                    },
                    priority=Priority.HIGH,
                )
            )
            return manager.scanner_manager.get_status()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/reset", response_model=StatusResponse)
    async def reset_system() -> dict:
        """Reset system data between test runs."""
        try:
            await manager.reset()
            return {"status": "ok"}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/sim/start", response_model=StatusResponse)
    async def start_sim() -> dict:
        """Start SIM simulation."""
        try:
            if _sim_instance:
                await _sim_instance.start()
                return {"status": "ok"}
            else:
                raise HTTPException(status_code=404, detail="SIM not configured")
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/sim/stop", response_model=StatusResponse)
    async def stop_sim() -> dict:
        """Stop SIM simulation."""
        try:
            if _sim_instance:
                await _sim_instance.stop()
                return {"status": "ok"}
            else:
                raise HTTPException(status_code=404, detail="SIM not configured")
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    return router
