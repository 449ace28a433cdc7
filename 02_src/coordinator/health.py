"""HealthMonitor: periodic health checks over every running agent."""

import time
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping

from .logging_config import get_logger
from .scheduler import IScheduler
from .storage import IStorage

logger = get_logger(__name__)

DEGRADED_RESPONSE_MS = 5000
DEGRADED_ERROR_RATE = 0.1
UNHEALTHY_ERROR_RATE = 0.5
HISTORY_LIMIT = 100


@dataclass
class HealthMetrics:
    agent_id: str
    status: str  # healthy|degraded|unhealthy
    response_time: float  # ms
    error_rate: float
    last_check: str


def classify(response_time: float, error_rate: float) -> str:
    if error_rate > UNHEALTHY_ERROR_RATE:
        return "unhealthy"
    if response_time > DEGRADED_RESPONSE_MS or error_rate > DEGRADED_ERROR_RATE:
        return "degraded"
    return "healthy"


class HealthMonitor:
    """Checks agents every interval, stores `health_metrics`, raises `alerts`.

    Unhealthy agents get one restart attempt per check.
    """

    TIMER = "health_monitor"

    def __init__(
        self,
        storage: IStorage,
        scheduler: IScheduler,
        agents: Callable[[], Mapping[str, object]],
        interval: float = 30.0,
    ):
        self._storage = storage
        self._scheduler = scheduler
        self._agents = agents
        self._interval = interval
        self._metrics: dict[str, HealthMetrics] = {}

    async def start(self) -> None:
        await self.load_history()
        self._scheduler.every(self.TIMER, self._interval, self.perform_health_check)

    def stop(self) -> None:
        self._scheduler.cancel(self.TIMER)

    async def load_history(self) -> None:
        """Seed the report with the last stored metrics of each agent."""
        docs = await self._storage.find_documents(
            "health_metrics", order_by="last_check", descending=True, limit=HISTORY_LIMIT
        )
        for doc in docs:
            agent_id = doc.get("agent_id")
            if agent_id and agent_id not in self._metrics:
                self._metrics[agent_id] = HealthMetrics(
                    agent_id=agent_id,
                    status=doc.get("status", "healthy"),
                    response_time=doc.get("response_time") or 0.0,
                    error_rate=doc.get("error_rate") or 0.0,
                    last_check=doc.get("last_check", ""),
                )

    async def perform_health_check(self) -> dict[str, HealthMetrics]:
        agents = dict(self._agents())
        for agent_id, agent in agents.items():
            self._metrics[agent_id] = await self.check_agent(agent_id, agent)
        for agent_id in set(self._metrics) - set(agents):
            del self._metrics[agent_id]

        if self._metrics:
            await self._storage.set_documents(
                "health_metrics",
                {uuid.uuid4().hex: asdict(m) for m in self._metrics.values()},
            )
        for agent_id, metrics in list(self._metrics.items()):
            if metrics.status == "unhealthy":
                await self._alert(agent_id, metrics, "health_alert", "critical")
                await self.attempt_recovery(agent_id, agents.get(agent_id))
            elif metrics.status == "degraded":
                await self._alert(agent_id, metrics, "health_warning", "warning")
        return dict(self._metrics)

    async def check_agent(self, agent_id: str, agent) -> HealthMetrics:
        started = time.monotonic()
        try:
            health = await agent.health_check()
            error_rate = float(health.get("error_rate", 0.0))
            response_time = (time.monotonic() - started) * 1000
            status = classify(response_time, error_rate)
        except Exception as e:
            logger.error("Health check failed for %s: %s", agent_id, e)
            response_time = (time.monotonic() - started) * 1000
            error_rate = 1.0
            status = "unhealthy"
        return HealthMetrics(
            agent_id=agent_id,
            status=status,
            response_time=response_time,
            error_rate=error_rate,
            last_check=datetime.now(timezone.utc).isoformat(),
        )

    async def _alert(self, agent_id: str, metrics: HealthMetrics, kind: str, severity: str) -> None:
        log = logger.error if severity == "critical" else logger.warning
        log("Agent %s is %s", agent_id, metrics.status)
        await self._storage.add_document(
            "alerts",
            {
                "type": kind,
                "severity": severity,
                "agent_id": agent_id,
                "metrics": asdict(metrics),
                "timestamp": metrics.last_check,
            },
        )

    async def attempt_recovery(self, agent_id: str, agent) -> bool:
        restart = getattr(agent, "restart", None)
        if restart is None:
            return False
        logger.info("Attempting to restart agent %s", agent_id)
        try:
            await restart()
        except Exception as e:
            logger.error("Failed to restart agent %s: %s", agent_id, e)
            return False
        logger.info("Restarted agent %s", agent_id)
        return True

    def get_health_report(self) -> dict:
        statuses = [m.status for m in self._metrics.values()]
        if "unhealthy" in statuses:
            overall = "unhealthy"
        elif "degraded" in statuses:
            overall = "degraded"
        else:
            overall = "healthy"
        return {
            "overall": overall,
            "agents": {agent_id: asdict(m) for agent_id, m in self._metrics.items()},
        }
