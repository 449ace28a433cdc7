"""SIM implementation - scripted hackathon scenario driving the HTTP API."""

import asyncio
import random
from typing import Protocol

import httpx

from coordinator.logging_config import get_logger
from coordinator.tracker import ITracker

logger = get_logger(__name__)

TEAM = [
    {"user_id": "alex", "name": "Alex", "skills": ["react", "typescript", "css"]},
    {"user_id": "sam", "name": "Sam", "skills": ["python", "fastapi", "postgres"]},
    {"user_id": "jordan", "name": "Jordan", "skills": ["ml", "python", "pytorch"]},
    {"user_id": "casey", "name": "Casey", "skills": ["devops", "docker", "ci"]},
]

MESSAGES = {
    "alex": [
        "Starting on the landing page components",
        "I'm blocked on the API contract for the dashboard, need help",
        "Dashboard is wired up, moving to polish",
    ],
    "sam": [
        "Setting up the FastAPI skeleton and database schema",
        "Auth endpoints are done, who needs them?",
        "Getting a critical error on migrations in staging",
    ],
    "jordan": [
        "Training the baseline model now",
        "Model accuracy looks good, how do I expose predictions?",
        "Can someone review the inference endpoint?",
    ],
    "casey": [
        "CI pipeline is green",
        "Docker build is broken after the last merge, urgent",
        "Deploy to staging done",
    ],
}


class ISim(Protocol):
    """Generate load against the API with a scripted scenario."""

    async def start(self) -> None:
        """Start scenario."""
        ...

    async def stop(self) -> None:
        """Stop scenario."""
        ...


class Sim:
    """Registers a four-person team, then plays three rounds of status messages."""

    def __init__(
        self,
        api_url: str = "http://localhost:8000",
        tracker: ITracker | None = None,
        min_delay: float = 1.0,
        max_delay: float = 3.0,
    ):
        self._api_url = api_url
        self._tracker = tracker
        self._min_delay = min_delay
        self._max_delay = max_delay
        self._running = False
        self._task: asyncio.Task | None = None
        self._client: httpx.AsyncClient | None = None

    def set_tracker(self, tracker: ITracker) -> None:
        """Inject tracker for SIM trace events."""
        self._tracker = tracker

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._client = httpx.AsyncClient(base_url=self._api_url, timeout=10.0)
        self._task = asyncio.create_task(self._run_scenario())

    async def stop(self) -> None:
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._client:
            await self._client.aclose()
            self._client = None

    async def _run_scenario(self) -> None:
        summary = {
            "scenario": "hackathon",
            "user_count": len(TEAM),
            "message_count": sum(len(m) for m in MESSAGES.values()),
        }
        try:
            if self._tracker:
                await self._tracker.track("sim_started", "sim", summary)

            for member in TEAM:
                await self._register(member)

            rounds = max(len(m) for m in MESSAGES.values())
            for i in range(rounds):
                for member in TEAM:
                    if not self._running:
                        return
                    texts = MESSAGES[member["user_id"]]
                    if i < len(texts):
                        await self._send_message(member["user_id"], texts[i])
                        await asyncio.sleep(random.uniform(self._min_delay, self._max_delay))
                for member in TEAM:
                    await self._poll_responses(member["user_id"])
                await asyncio.sleep(self._max_delay)

        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("SIM scenario error: %s", e)
        finally:
            self._running = False
            if self._tracker:
                await self._tracker.track("sim_completed", "sim", summary)

    async def _register(self, member: dict) -> None:
        if not self._client:
            return
        try:
            response = await self._client.post(
                "/api/control/users",
                json={
                    "user_id": member["user_id"],
                    "name": member["name"],
                    "skills": member["skills"],
                },
            )
            if response.status_code == 200:
                logger.info("SIM: registered %s", member["name"])
            else:
                logger.error("SIM: Error registering %s: %s", member["name"], response.status_code)
        except Exception as e:
            logger.error("SIM: Failed to register %s: %s", member["name"], e)

    async def _send_message(self, user_id: str, content: str) -> None:
        """Send a message via HTTP API."""
        if not self._client:
            return
        try:
            response = await self._client.post(
                "/api/messages",
                json={"user_id": user_id, "content": content, "context": {"source": "sim"}},
            )
            if response.status_code == 200:
                logger.info("SIM: %s -> %s (%s)", user_id, content, response.json().get("message_id"))
            else:
                logger.error("SIM: Error sending message: %s", response.status_code)
        except Exception as e:
            logger.error("SIM: Failed to send message: %s", e)

    async def _poll_responses(self, user_id: str) -> None:
        if not self._client:
            return
        try:
            response = await self._client.get(f"/api/messages/{user_id}/responses")
            if response.status_code == 200:
                for event in response.json():
                    logger.info("SIM: %s <- %s", user_id, event.get("event"))
        except Exception as e:
            logger.error("SIM: Failed to poll responses: %s", e)
