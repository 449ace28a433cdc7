"""Main entry point for the Hackathon Coordinator."""

from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from coordinator.agent_manager import AgentManager
from coordinator.api import create_fastapi_app
from coordinator.api.routes import control
from coordinator.config import Settings
from coordinator.logging_config import setup_logging
from sim import Sim


def main():
    """Run the application."""
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    setup_logging()

    settings = Settings.from_env()
    api_url = f"http://{settings.api_host}:{settings.api_port}"

    # SIM drives the API over HTTP
    control.set_sim_instance(Sim(api_url=api_url))

    app = create_fastapi_app(AgentManager(settings))

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
