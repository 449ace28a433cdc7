"""FastAPI application setup."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..agent_manager import AgentManager
from .routes import control, messaging, observability


# Global manager instance
_manager: AgentManager | None = None


def get_manager() -> AgentManager:
    """Get the global agent manager instance."""
    global _manager
    if not _manager:
        _manager = AgentManager()
    return _manager


def create_fastapi_app(manager: AgentManager | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    manager = manager or get_manager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await manager.start()
        sim_instance = control.get_sim_instance()
        if sim_instance and hasattr(sim_instance, "set_tracker") and manager.tracker:
            sim_instance.set_tracker(manager.tracker)
        yield
        if sim_instance and getattr(sim_instance, "running", False):
            await sim_instance.stop()
        await manager.stop()

    fastapi_app = FastAPI(
        title="Hackathon Coordinator API",
        description="Message intake, observability and control for the hackathon coordinator",
        version="0.1.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:5174"],  # Vite default
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    fastapi_app.include_router(messaging.create_messaging_router(manager))
    fastapi_app.include_router(messaging.create_websocket_router(manager))
    fastapi_app.include_router(observability.create_observability_router(manager))
    fastapi_app.include_router(control.create_control_router(manager))

    return fastapi_app
